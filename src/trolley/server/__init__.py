"""ASGI application factory and dependencies for the Trolley server."""

from trolley.server.app import app, create_app

__all__ = ["app", "create_app"]
