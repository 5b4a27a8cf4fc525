"""In-process read-model cache keyed by tuples.

List and detail views cache backend responses under keys such as
`("tenant-invoices",)` or `("invoice", invoice_id)`. Invalidating a key drops
every entry whose key starts with it, so the next read refetches.
"""

from typing import Any, Awaitable, Callable

from tenantpay.common.logging import logger

QueryKey = tuple[str, ...]

TENANT_INVOICES_KEY: QueryKey = ("tenant-invoices",)


def invoice_key(invoice_id: str) -> QueryKey:
    return ("invoice", invoice_id)


class QueryCache:
    """Holds fetched read models until they are invalidated."""

    def __init__(self) -> None:
        self._entries: dict[QueryKey, Any] = {}

    def get(self, key: QueryKey) -> Any | None:
        return self._entries.get(key)

    def set(self, key: QueryKey, value: Any) -> None:
        self._entries[key] = value

    def __contains__(self, key: QueryKey) -> bool:
        return key in self._entries

    async def fetch(self, key: QueryKey, loader: Callable[[], Awaitable[Any]]) -> Any:
        """Return the cached value for `key`, loading it once when missing."""

        if key in self._entries:
            return self._entries[key]
        value = await loader()
        self._entries[key] = value
        return value

    def invalidate(self, prefix: QueryKey) -> int:
        """Drop every entry whose key starts with `prefix`; return how many."""

        stale = [key for key in self._entries if key[: len(prefix)] == prefix]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.info("query_cache_invalidated prefix=%s entries=%s", prefix, len(stale))
        return len(stale)
