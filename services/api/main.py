import os
from contextlib import asynccontextmanager
from pathlib import Path
from urllib.parse import urlparse

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from services.api.exception_handlers import tableplan_exception_handler
from services.api.middleware import RateLimitMiddleware, SecurityHeadersMiddleware
from services.api.routes import router as v1_router
from services.api.sessions import SessionRegistry
from tableplan.exceptions import TableplanError
from tableplan.logging_config import setup_logging
from tableplan.settings import get_settings


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in {"true", "1", "yes"}


def _cors_origins() -> list[str]:
    ui_origin = os.getenv("UI_ORIGIN", "http://localhost:3000")
    origins: set[str] = {ui_origin, "http://localhost:3000", "http://127.0.0.1:3000"}
    parsed = urlparse(ui_origin)
    if parsed.scheme and parsed.netloc:
        # localhost and 127.0.0.1 are the same browser origin in practice
        if "localhost" in ui_origin:
            origins.add(ui_origin.replace("localhost", "127.0.0.1"))
        elif "127.0.0.1" in ui_origin:
            origins.add(ui_origin.replace("127.0.0.1", "localhost"))
    return sorted(origins)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info(
        "API initialised with Roboflow project={project} version={version} world={width}x{height}",
        project=settings.roboflow.project,
        version=settings.roboflow.version,
        width=settings.floorplan.world_width,
        height=settings.floorplan.world_height,
    )
    yield
    logger.info("API shutting down with {count} open session(s)", count=len(app.state.sessions))


def create_app() -> FastAPI:
    log_file = os.getenv("LOG_FILE")
    setup_logging(
        level=os.getenv("LOG_LEVEL", "INFO"),
        json_format=_env_flag("JSON_LOGGING", "false"),
        log_file=Path(log_file) if log_file else None,
    )

    app = FastAPI(
        title="Tableplan API",
        version="0.1.0",
        description="Floor plan analysis, table editing and saved layouts",
        lifespan=lifespan,
    )
    app.state.sessions = SessionRegistry()

    if _env_flag("RATE_LIMIT_ENABLED", "true"):
        app.add_middleware(
            RateLimitMiddleware,
            requests_per_minute=int(os.getenv("RATE_LIMIT_PER_MINUTE", "60")),
            requests_per_hour=int(os.getenv("RATE_LIMIT_PER_HOUR", "1000")),
        )
    app.add_middleware(SecurityHeadersMiddleware)

    # CORS is added last so it runs first
    cors_origins = _cors_origins()
    logger.info("CORS allowed origins: {origins}", origins=cors_origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/healthz", tags=["meta"])
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    app.add_exception_handler(TableplanError, tableplan_exception_handler)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception on {path}", path=request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": type(exc).__name__, "message": str(exc)},
        )

    app.include_router(v1_router)
    return app


app = create_app()


__all__ = ["app", "create_app"]
