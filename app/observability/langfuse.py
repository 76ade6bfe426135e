from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Iterator

from langfuse import Langfuse

from app.config import settings


logger = logging.getLogger(__name__)


class LangfuseConfigError(RuntimeError):
    pass


@dataclass(frozen=True)
class LangfuseTraceContext:
    name: str
    user_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    tags: list[str] = field(default_factory=list)


_langfuse_client: Langfuse | None = None
_langfuse_initialized = False
_current_trace_context: ContextVar[LangfuseTraceContext | None] = ContextVar(
    "langfuse_trace_context",
    default=None,
)


def langfuse_enabled() -> bool:
    return bool(settings.LANGFUSE_ENABLED)


def _langfuse_runtime_environment() -> str:
    return settings.LANGFUSE_ENVIRONMENT or settings.ENVIRONMENT


def _validate_settings() -> None:
    if not settings.LANGFUSE_PUBLIC_KEY:
        raise LangfuseConfigError("LANGFUSE_ENABLED is true but LANGFUSE_PUBLIC_KEY is not configured.")
    if not settings.LANGFUSE_SECRET_KEY:
        raise LangfuseConfigError("LANGFUSE_ENABLED is true but LANGFUSE_SECRET_KEY is not configured.")
    sample_rate = float(settings.LANGFUSE_SAMPLE_RATE)
    if sample_rate < 0.0 or sample_rate > 1.0:
        raise LangfuseConfigError("LANGFUSE_SAMPLE_RATE must be between 0.0 and 1.0.")


def initialize_langfuse() -> None:
    global _langfuse_client
    global _langfuse_initialized

    if _langfuse_initialized:
        return

    if not langfuse_enabled():
        _langfuse_initialized = True
        logger.info("Langfuse tracing disabled", extra={"environment": _langfuse_runtime_environment()})
        return

    _validate_settings()
    _langfuse_client = Langfuse(
        public_key=settings.LANGFUSE_PUBLIC_KEY,
        secret_key=settings.LANGFUSE_SECRET_KEY,
        host=settings.LANGFUSE_HOST,
        tracing_enabled=True,
        environment=_langfuse_runtime_environment(),
        release=settings.LANGFUSE_RELEASE,
        sample_rate=float(settings.LANGFUSE_SAMPLE_RATE),
        timeout=int(settings.LANGFUSE_TIMEOUT_SECONDS),
    )
    _langfuse_initialized = True
    logger.info(
        "Langfuse initialized",
        extra={
            "host": settings.LANGFUSE_HOST,
            "environment": _langfuse_runtime_environment(),
            "sample_rate": settings.LANGFUSE_SAMPLE_RATE,
        },
    )


def get_langfuse_client() -> Langfuse | None:
    initialize_langfuse()
    if not langfuse_enabled():
        return None
    if _langfuse_client is None:
        raise LangfuseConfigError("Langfuse client is not initialized.")
    return _langfuse_client


def shutdown_langfuse() -> None:
    client = get_langfuse_client()
    if client is not None:
        client.shutdown()


def get_current_trace_context() -> LangfuseTraceContext | None:
    return _current_trace_context.get()


@contextmanager
def bind_langfuse_trace_context(trace_context: LangfuseTraceContext | None) -> Iterator[None]:
    token = _current_trace_context.set(trace_context)
    try:
        yield
    finally:
        _current_trace_context.reset(token)


def _apply_trace_updates(client: Langfuse, metadata: dict[str, Any] | None) -> None:
    ctx = get_current_trace_context()
    if ctx is None:
        return
    merged_metadata = {**ctx.metadata, **(metadata or {})}
    client.update_current_trace(
        name=ctx.name,
        user_id=ctx.user_id,
        metadata=merged_metadata or None,
        tags=list(ctx.tags) or None,
    )


@contextmanager
def start_langfuse_generation(
    *,
    name: str,
    model: str,
    input: Any | None = None,
    metadata: dict[str, Any] | None = None,
    model_parameters: dict[str, Any] | None = None,
) -> Iterator[Any | None]:
    client = get_langfuse_client()
    if client is None:
        yield None
        return

    with client.start_as_current_generation(
        name=name,
        input=input,
        model=model,
        metadata=metadata,
        model_parameters=model_parameters,
    ) as generation:
        _apply_trace_updates(client, metadata)
        try:
            yield generation
        except Exception as exc:  # noqa: BLE001
            generation.update(level="ERROR", status_message=str(exc))
            raise
