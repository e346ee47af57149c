"""FastAPI app factory for the proofbridge relay."""

import logging
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from proofbridge import __version__
from proofbridge.api.relay import router as relay_router
from proofbridge.settings import get_settings


def _configure_logging() -> None:
    level_name = get_settings().runtime.log_level.upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s %(message)s")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI instance.
    """
    _configure_logging()
    app = FastAPI(title="proofbridge relay", version=__version__)
    # The companion app and the browser both call the relay cross-origin.
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
    app.include_router(relay_router)

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": __version__,
        }

    return app


# For uvicorn, expose `app` at module level
app = create_app()

__all__ = ["app", "create_app"]
