import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from sqlalchemy import text
from sqlalchemy.exc import ProgrammingError

from app.config import settings
from app.db.base import engine
from app.llm.client import LLMClient
from app.observability import initialize_langfuse, shutdown_langfuse
from app.routers import ai, campaigns
from app.services.errors import GenerationStageError

logger = logging.getLogger(__name__)


def _is_schema_mismatch_programming_error(exc: ProgrammingError) -> bool:
    orig = getattr(exc, "orig", None)
    if getattr(orig, "pgcode", None) == "42703":
        return True
    message = str(orig or exc).lower()
    return any(
        marker in message
        for marker in (
            "undefined column",
            "does not exist",
            "no such column",
            "no such table",
        )
    )


def _error_content(message: str, details: list[Any] | None = None) -> dict[str, Any]:
    content: dict[str, Any] = {"success": False, "error": message}
    if details:
        content["details"] = details
    return content


@asynccontextmanager
async def _app_lifespan(app: FastAPI) -> AsyncIterator[None]:
    initialize_langfuse()
    if getattr(app.state, "llm_client", None) is None:
        app.state.llm_client = LLMClient.from_settings(settings)
    try:
        yield
    finally:
        shutdown_langfuse()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Campaign Studio API",
        default_response_class=ORJSONResponse,
        lifespan=_app_lifespan,
    )

    allow_origins = sorted(set(settings.BACKEND_CORS_ORIGINS))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> ORJSONResponse:
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return ORJSONResponse(
            status_code=exc.status_code,
            content=_error_content(message),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> ORJSONResponse:
        details = [
            {
                "path": ".".join(str(part) for part in error.get("loc", ())),
                "message": error.get("msg", "Invalid value"),
            }
            for error in exc.errors()
        ]
        return ORJSONResponse(status_code=400, content=_error_content("Validation failed", details))

    @app.exception_handler(GenerationStageError)
    async def generation_stage_error_handler(_request: Request, exc: GenerationStageError) -> ORJSONResponse:
        if exc.status_code >= 500:
            logger.error(
                "Campaign generation failed",
                extra={"stage": exc.stage, "error": exc.message},
            )
        return ORJSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(ProgrammingError)
    async def programming_error_handler(_request: Request, exc: ProgrammingError) -> ORJSONResponse:
        logger.exception("Database programming error", exc_info=exc)
        if _is_schema_mismatch_programming_error(exc):
            return ORJSONResponse(
                status_code=503,
                content=_error_content("Database schema is out of date. Run `alembic upgrade head` and redeploy."),
            )
        return ORJSONResponse(status_code=500, content=_error_content("Database query failed."))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(_request: Request, exc: Exception) -> ORJSONResponse:
        logger.exception("Unhandled server exception", exc_info=exc)
        return ORJSONResponse(status_code=500, content=_error_content("Internal server error."))

    @app.get("/health")
    async def health() -> dict[str, bool]:
        return {"ok": True}

    @app.get("/health/db")
    def health_db() -> dict[str, str]:
        try:
            with engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            return {"db": "ok"}
        except Exception as exc:  # pragma: no cover - simple runtime check
            return {"db": f"error: {exc}"}

    app.include_router(campaigns.router)
    app.include_router(ai.router)

    return app


app = create_app()
