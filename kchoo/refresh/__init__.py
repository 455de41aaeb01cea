"""Refresh: periodic re-admission of standby sources."""

from kchoo.refresh.backoff import ExponentialBackoff, is_retryable
from kchoo.refresh.config import RefreshConfig
from kchoo.refresh.scheduler import (
    RefreshHandler,
    RefreshHandlerError,
    RefreshScheduler,
)

__all__ = [
    "ExponentialBackoff",
    "RefreshConfig",
    "RefreshHandler",
    "RefreshHandlerError",
    "RefreshScheduler",
    "is_retryable",
]
