"""Helper for running the Trolley ASGI application."""

from __future__ import annotations

import os

import uvicorn

from trolley.config import get_settings


def main() -> None:
    """Entry point for the `trolley-server` console script.

    The list session lives in process memory, so the server always runs a
    single worker.
    """

    host = os.environ.get("TROLLEY_SERVER_HOST", "127.0.0.1")
    try:
        port = int(os.environ.get("TROLLEY_SERVER_PORT", "8000"))
    except ValueError as exc:
        raise SystemExit(f"Invalid TROLLEY_SERVER_PORT: {exc}") from exc

    settings = get_settings()
    uvicorn.run(
        "trolley.server.app:app",
        host=host,
        port=port,
        reload=os.environ.get("RELOAD") == "1",
        workers=1,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
