"""Process-wide request store selection."""

from sosrelay.config import settings
from sosrelay.logging_config import get_logger
from sosrelay.services.memory_store import MemoryRequestStore
from sosrelay.services.request_store import RequestStore, SqlRequestStore

logger = get_logger(__name__)

_store: RequestStore | None = None


def get_request_store() -> RequestStore:
    """Get or create the configured store.

    ``REQUEST_STORE_BACKEND=memory`` keeps records in process memory;
    anything else uses PostgreSQL at ``DATABASE_URL``. The engine is
    created lazily here, inside the running event loop. Also used as a
    FastAPI dependency.
    """
    global _store
    if _store is None:
        backend = settings.request_store_backend.lower()
        if backend == "memory":
            _store = MemoryRequestStore()
        else:
            _store = SqlRequestStore.from_url(settings.database_url)
        logger.info("Request store initialized", backend=backend)
    return _store


async def close_request_store() -> None:
    """Close the store's connections and forget the instance."""
    global _store
    if _store is not None:
        await _store.close()
    _store = None
