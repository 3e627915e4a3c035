"""Utility modules."""

from mde_offboard.utils.logger import bind_context, clear_context, get_logger
from mde_offboard.utils.tracing import get_tracer, init_tracing, shutdown_tracing

__all__ = [
    "bind_context",
    "clear_context",
    "get_logger",
    "get_tracer",
    "init_tracing",
    "shutdown_tracing",
]
