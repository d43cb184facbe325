import uvicorn

from search_proxy.vars import HOST, LOG_LEVEL, PORT


def main():
    uvicorn.run("search_proxy.server:app", host=HOST, port=PORT, log_level=LOG_LEVEL)


if __name__ == "__main__":
    main()
