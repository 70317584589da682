import logging
from pathlib import Path
from contextlib import asynccontextmanager
from dotenv import load_dotenv

# Load .env file BEFORE importing settings to ensure env vars are available
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.query import router as query_router
from .api.stream import router as stream_router
from .config import settings
from .services.orchestrator import query_service

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    logger.info("Providers: %s", [provider.name for provider in query_service.providers])
    logger.info("Detectors: %s", [detector.name for detector in query_service.detectors])
    yield
    # Shutdown - close HTTP clients
    await query_service.close()


def create_app() -> FastAPI:
    app = FastAPI(title="polydict", version="0.1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(query_router, prefix="/api")
    app.include_router(stream_router)

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
