from sentinel.services.health import HISTORY_SIZE, HealthMonitor, PingStats, parse_ping

PING_OUTPUT = """PING 1.1.1.1 (1.1.1.1) 56(84) bytes of data.
64 bytes from 1.1.1.1: icmp_seq=1 ttl=57 time=10.0 ms
64 bytes from 1.1.1.1: icmp_seq=2 ttl=57 time=12.0 ms
64 bytes from 1.1.1.1: icmp_seq=3 ttl=57 time=14.0 ms

--- 1.1.1.1 ping statistics ---
3 packets transmitted, 3 received, 0% packet loss, time 2003ms
"""


def test_parse_ping():
    stats = parse_ping(PING_OUTPUT)
    assert stats.average_ms == 12.0
    assert stats.jitter_ms == 2.0
    assert stats.packet_loss == 0.0


def test_parse_ping_total_loss():
    stats = parse_ping("3 packets transmitted, 0 received, 100% packet loss, time 2043ms")
    assert stats == PingStats(packet_loss=100.0)


def test_history_is_bounded_and_snapshot_reports_last_loss():
    monitor = HealthMonitor(target="127.0.0.1")
    for i in range(HISTORY_SIZE + 5):
        monitor.record(PingStats(average_ms=float(i), packet_loss=float(i % 2)))

    snap = monitor.snapshot(active_tunnels=3)

    assert len(snap.latency) == HISTORY_SIZE
    assert snap.latency[0].ping == 5.0
    assert snap.active_tunnels == 3
    assert snap.packet_loss == float((HISTORY_SIZE + 4) % 2)
    assert 0.0 <= snap.cpu_usage <= 100.0
    assert snap.uptime.endswith("h")
