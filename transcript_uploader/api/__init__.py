"""Local HTTP control surface: routes, schemas, WebSocket, and middleware."""

from transcript_uploader.api.middleware import (
    RequestLoggingMiddleware,
    configure_cors,
    register_error_handlers,
)
from transcript_uploader.api.routes import router
from transcript_uploader.api.websocket import websocket_progress

__all__ = [
    "RequestLoggingMiddleware",
    "configure_cors",
    "register_error_handlers",
    "router",
    "websocket_progress",
]
