"""History resource handler."""

from index_mcp.data.cache import HistoryCache, history_uri


class ResourceNotFoundError(Exception):
    """Resource not found in cache."""

    pass


def read_history_resource(cache: HistoryCache, snapshot_id: str) -> tuple[str, str]:
    """
    Serve cached history only. O(1), no reconstruction.

    Args:
        cache: History cache the session stored into
        snapshot_id: Snapshot fingerprint (e.g., from history://3f2a9c1b0d4e5f67)

    Returns:
        Tuple of (csv_text, mime_type)

    Raises:
        ResourceNotFoundError: If resource not in cache
    """
    uri = history_uri(snapshot_id)
    csv_text = cache.get_csv(uri)

    if csv_text is None:
        raise ResourceNotFoundError(f"Resource not cached. Call get_market_snapshot first: {uri}")

    return csv_text, "text/csv"
