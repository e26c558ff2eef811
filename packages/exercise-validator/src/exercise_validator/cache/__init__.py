from .models import (
    CACHE_VERSION,
    BlockCacheEntry,
    Cache,
    CacheEntry,
    ScriptCacheEntry,
    block_key,
    script_key,
)
from .store import CacheStats, CacheStore, FileCacheStore, MemoryCacheStore, entry_matches_hash, open_store

__all__ = [
    "CACHE_VERSION",
    "BlockCacheEntry",
    "Cache",
    "CacheEntry",
    "CacheStats",
    "CacheStore",
    "FileCacheStore",
    "MemoryCacheStore",
    "ScriptCacheEntry",
    "block_key",
    "entry_matches_hash",
    "open_store",
    "script_key",
]
