"""Utility helpers for eliza-cache."""

from .circuit_breaker import CircuitBreaker, CircuitBreakerOpenError

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerOpenError",
]
