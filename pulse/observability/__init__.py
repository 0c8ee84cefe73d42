"""
Observability: structured logging, request context, metrics.

Usage:
    from pulse.observability import configure_logging, RequestContext, REGISTRY

    configure_logging("INFO")
    with RequestContext(user_id="u-1"):
        logger.info("Building digest", extra={"window_days": 14})

    print(REGISTRY.to_prometheus())
"""

from .context import RequestContext, get_request_id, get_user_id
from .logging import CorrelationIdMiddleware, HumanFormatter, JSONFormatter, configure_logging
from .metrics import REGISTRY, Counter, Histogram, timed

__all__ = [
    "configure_logging",
    "JSONFormatter",
    "HumanFormatter",
    "CorrelationIdMiddleware",
    "RequestContext",
    "get_request_id",
    "get_user_id",
    "REGISTRY",
    "Counter",
    "Histogram",
    "timed",
]
