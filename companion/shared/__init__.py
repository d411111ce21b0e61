"""
Shared utilities package for the companion services.

This package contains the database base, retry helpers and token
generation that are used across the hub and its tooling.
"""

from .utils.random_token import generate_random_string
from .utils.retry import CircuitBreaker, with_retry

__all__ = ["CircuitBreaker", "with_retry", "generate_random_string"]
