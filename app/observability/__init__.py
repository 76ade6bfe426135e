from .langfuse import (
    LangfuseConfigError,
    LangfuseTraceContext,
    bind_langfuse_trace_context,
    initialize_langfuse,
    shutdown_langfuse,
    start_langfuse_generation,
)

__all__ = [
    "LangfuseConfigError",
    "LangfuseTraceContext",
    "bind_langfuse_trace_context",
    "initialize_langfuse",
    "shutdown_langfuse",
    "start_langfuse_generation",
]
