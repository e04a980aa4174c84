import logging
from typing import Optional

from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from .config import StoreConfig
from .errors import StoreError

log = logging.getLogger("songstore.db")


class DocumentStore:
    """
    Handle on the backing MongoDB database.

    The only coordination between concurrent callers is MongoDB's
    per-document atomicity; this class holds no locks. Use it as a context
    manager (or call ``close``) so the client is released on every exit path.
    """

    def __init__(self, config: Optional[StoreConfig] = None, client: Optional[MongoClient] = None):
        """
        Args:
            config: Connection settings (defaults to an unauthenticated local server)
            client: Pre-built client to use instead of connecting from ``config``
        """
        self.config = config or StoreConfig()
        if client is None:
            log.debug(f"Connecting to {self.config.host}:{self.config.port}")
            try:
                client = MongoClient(self.config.uri)
            except PyMongoError as e:
                raise StoreError(f"error connecting to MongoDB: {e}") from e
        self._client = client
        self._db = client[self.config.database]

    def __enter__(self) -> "DocumentStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._client is None

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
            self._db = None

    def collection(self, name: str) -> Collection:
        if self._db is None:
            raise StoreError("document store is closed")
        return self._db[name]

    def drop_collection(self, name: str) -> None:
        try:
            self.collection(name).drop()
        except PyMongoError as e:
            raise StoreError(f"error deleting collection {name}: {e}") from e
        log.warning(f"Dropped collection '{name}'")
