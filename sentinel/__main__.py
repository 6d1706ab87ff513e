import uvicorn

from .config import HOST, PORT, setup_logging


def main():
    setup_logging()
    uvicorn.run("sentinel.main:app", host=HOST, port=PORT)


if __name__ == "__main__":
    main()
