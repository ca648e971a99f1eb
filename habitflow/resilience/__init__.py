"""Retry helpers for transient storage failures"""
from habitflow.resilience.retry import (
    retry_with_backoff,
    with_retry,
    is_retryable_error,
    calculate_backoff,
)

__all__ = [
    "retry_with_backoff",
    "with_retry",
    "is_retryable_error",
    "calculate_backoff",
]
