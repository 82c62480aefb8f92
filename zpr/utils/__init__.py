"""Utility functions and helpers."""

from .logging import setup_observability
from .retry import is_retriable, with_exponential_backoff

__all__ = [
    "setup_observability",
    "with_exponential_backoff",
    "is_retriable",
]
