"""Entry point for the backup web API."""

import os

import uvicorn


def main():
    host = os.getenv("WEB_HOST", "127.0.0.1")
    port = int(os.getenv("WEB_PORT", "8000"))
    uvicorn.run("posadmin.web.app:create_app", factory=True, host=host, port=port)


if __name__ == "__main__":
    main()
