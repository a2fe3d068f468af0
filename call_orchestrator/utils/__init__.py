"""Utility modules"""

from .retry import RetryError, retry_async_operation
from .phone import normalize_e164, is_valid_e164

__all__ = [
    "RetryError",
    "retry_async_operation",
    "normalize_e164",
    "is_valid_e164",
]
