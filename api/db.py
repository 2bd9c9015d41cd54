import logging

from django.conf import settings

from .store import MemoryDocumentStore, MongoDocumentStore

logger = logging.getLogger(__name__)

_store = None


def connect_store():
    """Build the configured store backend. Called once from ApiConfig.ready()."""
    global _store
    if _store is not None:
        return _store

    backend = getattr(settings, 'DOCUMENT_STORE_BACKEND', 'mongo')
    if backend == 'memory':
        _store = MemoryDocumentStore()
        logger.info("Using in-memory document store")
    elif backend == 'mongo':
        _store = MongoDocumentStore(
            settings.MONGO_URI,
            settings.MONGO_DB_NAME,
            poll_interval=settings.STORE_POLL_INTERVAL,
        )
        logger.info("Using MongoDB document store, DB: %s", settings.MONGO_DB_NAME)
    else:
        raise ValueError(f"Unknown DOCUMENT_STORE_BACKEND: {backend}")
    return _store


def close_store():
    global _store
    if _store is not None:
        _store.close()
        _store = None


def get_db():
    return _store if _store is not None else connect_store()
