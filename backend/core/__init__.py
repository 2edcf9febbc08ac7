"""
Core module exports.
"""
from core.config import (
    ADDON_NAME,
    ADDON_VERSION,
    BASE_URL,
    ROOT_FOLDERS,
    LIST_CACHE_TTL,
    META_CACHE_TTL,
)
from core.errors import DriveError, NoCredentialsAvailable, RetryBudgetExhausted, NotFound, UpstreamError

__all__ = [
    "ADDON_NAME",
    "ADDON_VERSION",
    "BASE_URL",
    "ROOT_FOLDERS",
    "LIST_CACHE_TTL",
    "META_CACHE_TTL",
    "DriveError",
    "NoCredentialsAvailable",
    "RetryBudgetExhausted",
    "NotFound",
    "UpstreamError",
]
