"""transcript-uploader FastAPI application entry point.

Builds one :class:`UploadSession` at startup, exposes it on
``app.state.session`` for the routes and the progress WebSocket, and
closes it (stopping runs and polling, releasing the HTTP client) on
shutdown.  Configuration comes from ``config/config.yaml`` layered under
``.env`` and environment variables.

Run with::

    python -m transcript_uploader
"""

from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI, WebSocket

from transcript_uploader.api.middleware import (
    RequestLoggingMiddleware,
    configure_cors,
    register_error_handlers,
)
from transcript_uploader.api.routes import router as api_router
from transcript_uploader.api.websocket import websocket_progress
from transcript_uploader.config.loader import load_settings
from transcript_uploader.config.settings import Settings
from transcript_uploader.pipeline.session import UploadSession, build_session
from transcript_uploader.utils.errors import UploaderError
from transcript_uploader.utils.logging import configure_logging, get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    session: UploadSession | None = None,
) -> FastAPI:
    """Build and configure the FastAPI application.

    Parameters
    ----------
    settings:
        Application settings; loaded from config and environment if omitted.
    session:
        Pre-built session (tests inject one around a mock service); by
        default one is built against the configured service at startup.
    """
    settings = settings or (session.settings if session is not None else load_settings())

    @asynccontextmanager
    async def _lifespan(application: FastAPI):  # noqa: ANN202
        """Create the session on startup, close it on shutdown."""
        app_session = session or build_session(settings)
        application.state.session = app_session
        try:
            await app_session.load_vocabulary()
        except UploaderError as exc:
            # The API stays up so the user can see the problem in /health.
            _logger.warning("vocabulary_unavailable", error=str(exc))

        _logger.info(
            "app_startup",
            version="0.1.0",
            environment=settings.app_env,
            service_url=settings.service_url,
            batch_mode=settings.batch_mode,
        )

        yield

        await app_session.close()
        _logger.info("app_shutdown")

    application = FastAPI(
        title="transcript-uploader API",
        version="0.1.0",
        description=(
            "Add transcripts and media from local disk, then upload them to a "
            "corpus-management service with live progress over WebSocket."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware and error mapping --
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application)
    register_error_handlers(application)

    # -- API routes --
    application.include_router(api_router)

    # -- WebSocket --
    @application.websocket("/ws/progress")
    async def ws_progress(websocket: WebSocket) -> None:
        await websocket_progress(websocket)

    return application


def main() -> None:
    """Serve the API with uvicorn on the configured host and port."""
    settings = load_settings()
    configure_logging(
        log_level=settings.log_level,
        json_output=(settings.app_env == "production"),
    )
    uvicorn.run(
        create_app(settings),
        host=settings.app_host,
        port=settings.app_port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
