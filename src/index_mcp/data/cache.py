"""Disk cache for reconstructed history, served as an MCP resource."""

import gzip
import hashlib
from datetime import datetime
from typing import Any

import diskcache

from index_mcp.data.history import history_to_csv
from index_mcp.models import MarketSnapshot

HISTORY_URI_PREFIX = "history://"


def history_uri(snapshot_id: str) -> str:
    """Canonical resource URI for a snapshot's history."""
    return f"{HISTORY_URI_PREFIX}{snapshot_id}"


class HistoryCache:
    """
    Cache stores exact CSV text for O(1) deterministic serving.

    Resources only serve cached data. Never reconstruct on read: the walk is
    random, so a re-read must return the series the snapshot was built with.
    """

    def __init__(self, cache_dir: str = ".cache/history", default_ttl: int = 86400):
        self.cache: diskcache.Cache = diskcache.Cache(cache_dir)
        self._default_ttl = default_ttl

    def store(self, snapshot_id: str, snapshot: MarketSnapshot, ttl: int | None = None) -> str:
        """
        Store gzipped CSV + metadata, return canonical URI.

        Args:
            snapshot_id: Fingerprint of the snapshot
            snapshot: Snapshot whose history is cached
            ttl: Cache TTL in seconds (default: constructor value)

        Returns:
            Canonical URI for the cached history
        """
        uri = history_uri(snapshot_id)

        csv_bytes = history_to_csv(snapshot.history).encode("utf-8")
        csv_gz = gzip.compress(csv_bytes)

        entry: dict[str, Any] = {
            "csv_gz": csv_gz,
            "encoding": "gzip",
            "size_bytes": len(csv_bytes),
            "rows": len(snapshot.history),
            "symbol": snapshot.symbol,
            "is_fallback": snapshot.is_fallback,
            "hash": hashlib.sha256(csv_bytes).hexdigest()[:16],
            "stored_at": datetime.utcnow().isoformat(),
        }

        expire = ttl if ttl is not None else self._default_ttl
        self.cache.set(uri, entry, expire=expire)

        return uri

    def get(self, uri: str) -> dict[str, Any] | None:
        """Get cache entry by URI."""
        return self.cache.get(uri)

    def get_csv(self, uri: str) -> str | None:
        """
        Get decompressed CSV text by URI.

        Returns:
            CSV text or None if not found
        """
        entry = self.get(uri)
        if not entry:
            return None
        return gzip.decompress(entry["csv_gz"]).decode("utf-8")

    def get_metadata(self, uri: str) -> dict[str, Any] | None:
        """Get cache metadata without decompressing data."""
        entry = self.get(uri)
        if not entry:
            return None
        return {
            "rows": entry["rows"],
            "symbol": entry["symbol"],
            "is_fallback": entry["is_fallback"],
            "size_bytes": entry["size_bytes"],
            "hash": entry["hash"],
            "stored_at": entry["stored_at"],
        }

    def exists(self, uri: str) -> bool:
        """Check if URI exists in cache."""
        return uri in self.cache

    def clear(self) -> None:
        """Clear all cached data."""
        self.cache.clear()

    def close(self) -> None:
        self.cache.close()
