"""Control helpers for remote calls."""

from .retry import RetryConfig, RetryStrategy

__all__ = ["RetryConfig", "RetryStrategy"]
