"""FastAPI web application for the Faultline debate engine."""

import logging
import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from faultline import __version__
from faultline.engine.web.debate_manager import DebateManager
from faultline.engine.web.endpoints.debates import router as debates_router
from faultline.engine.web.endpoints.system import router as system_router

logger: logging.Logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifespan - stop running debates on shutdown."""
    logger.info("Faultline API starting")
    yield
    await debate_manager.shutdown()
    logger.info("Faultline API stopped")


def get_allowed_origins() -> list[str] | None:
    """Get CORS origins from environment or use development defaults."""
    env_origins: str | None = os.environ.get("ALLOWED_ORIGINS")
    if env_origins:
        return [origin.strip() for origin in env_origins.split(",") if origin.strip()]
    return None


app: FastAPI = FastAPI(
    title="Faultline Debate Engine",
    description="Dialectical debates between AI personas, mapped onto an argumentation graph",
    version=__version__,
    lifespan=lifespan,
)

allowed_origins: list[str] | None = get_allowed_origins()

if allowed_origins:
    logger.info(f"Setting CORS allowed origins: {allowed_origins}")

    # Production: Use specific origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
else:
    logger.info("No ALLOWED_ORIGINS set, using development CORS settings")

    # Development: Allow any localhost/127.0.0.1
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=r"https?://(localhost|127\.0\.0\.1)(:\d+)?",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

# Global debate manager
debate_manager: DebateManager = DebateManager()

app.include_router(system_router, prefix="/v1")
app.include_router(debates_router, prefix="/v1")
