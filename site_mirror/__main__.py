import uvicorn

from site_mirror.vars import HOST, LOG_LEVEL, PORT


def main() -> None:
    # Date and Server come from the upstream response (see proxy.headers)
    uvicorn.run(
        "site_mirror.server:app",
        host=HOST,
        port=PORT,
        log_level=LOG_LEVEL,
        server_header=False,
        date_header=False,
    )


if __name__ == "__main__":
    main()
