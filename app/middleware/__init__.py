"""
Middleware modules for the inventory API.

Provides request processing middleware for:
- Correlation ID tracking for distributed tracing
- Structured logging with context injection
"""

from .correlation import CorrelationIdMiddleware, CorrelationLogFilter, correlation_id_ctx, request_id_ctx

__all__ = [
    "CorrelationIdMiddleware",
    "CorrelationLogFilter",
    "correlation_id_ctx",
    "request_id_ctx",
]
