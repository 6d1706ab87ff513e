from datetime import timedelta

import pytest
from conftest import T0

from sentinel.errors import InvalidInput, InvalidToken, NotFound
from sentinel.models import LogLevel


def test_create_token_for_unknown_device(services):
    with pytest.raises(NotFound):
        services.tokens.create_token("dev-ghost")


def test_create_token_rejects_non_positive_ttl(services):
    with pytest.raises(InvalidInput):
        services.tokens.create_token("dev-pixel8", ttl_seconds=0)


def test_create_token_records_expiry_and_log(services):
    token = services.tokens.create_token("dev-pixel8", ttl_seconds=90)

    assert len(token.token) == 8
    assert token.expires_at == T0 + timedelta(seconds=90)
    assert services.store.list_tokens() == [token]
    log = services.store.get_logs()[0]
    assert log.level == LogLevel.INFO
    assert log.details == "TTL 90s"


def test_token_redeems_exactly_once(services):
    token = services.tokens.create_token("dev-pixel8")

    assert services.tokens.redeem_token("dev-pixel8", token.token).id == token.id
    with pytest.raises(InvalidToken):
        services.tokens.redeem_token("dev-pixel8", token.token)


def test_token_bound_to_its_device(services):
    token = services.tokens.create_token("dev-pixel8")

    with pytest.raises(InvalidToken):
        services.tokens.redeem_token("dev-main-win11", token.token)
    assert len(services.store.list_tokens()) == 1


def test_expired_token_is_removed_and_rejected(services, clock):
    token = services.tokens.create_token("dev-pixel8", ttl_seconds=60)
    clock.advance(seconds=61)

    with pytest.raises(InvalidToken):
        services.tokens.redeem_token("dev-pixel8", token.token)
    assert services.store.list_tokens() == []


def test_outstanding_tokens_are_independent(services):
    a = services.tokens.create_token("dev-pixel8")
    b = services.tokens.create_token("dev-pixel8")
    if a.token == b.token:
        pytest.skip("random collision")

    services.tokens.redeem_token("dev-pixel8", a.token)

    assert [t.id for t in services.store.list_tokens()] == [b.id]
    assert services.tokens.redeem_token("dev-pixel8", b.token).id == b.id
