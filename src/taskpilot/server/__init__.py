"""HTTP server for the main TaskPilot instance."""

from taskpilot.server.app import MainServer, RequestHandler, default_handler

__all__ = [
    "MainServer",
    "RequestHandler",
    "default_handler",
]
