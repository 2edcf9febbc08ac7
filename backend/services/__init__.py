"""
Services module exports.
"""
from services.cache import Cache, MemoryBackend, RedisBackend, build_cache
from services.credentials import CredentialPool, Identity, load_identities
from services.http_client import ResilientClient
from services.lister import PaginationLister
from services.catalog import SeriesBuilder, CatalogEntry, parse_episode
from services.addon import AddonService

__all__ = [
    "Cache",
    "MemoryBackend",
    "RedisBackend",
    "build_cache",
    "CredentialPool",
    "Identity",
    "load_identities",
    "ResilientClient",
    "PaginationLister",
    "SeriesBuilder",
    "CatalogEntry",
    "parse_episode",
    "AddonService",
]
