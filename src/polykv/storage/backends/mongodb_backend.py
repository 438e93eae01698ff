"""
MongoDB Storage Backend
=======================

Document-store backend: one MongoDB collection per polykv collection, one
document per key.

Document layout::

    {"_id": key, "value": stored_string, "type": type_tag, "ttl": expiry_ms}

Requirements:
    pip install polykv[mongodb]
    # or
    pip install pymongo

Usage:
    backend = MongoBackend("users", uri="mongodb://localhost:27017", database="polykv")
    backend.connect()

    # Reuse an existing client (not closed on disconnect)
    backend = MongoBackend("users", client=my_client)
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from ...error_handling import handle_import_errors, with_error_handling
from .base import StorageBackend, StoredEntry

logger = logging.getLogger(__name__)


# Check for pymongo availability
try:
    import pymongo

    PYMONGO_AVAILABLE = True
except ImportError:
    PYMONGO_AVAILABLE = False
    pymongo = None


class MongoBackend(StorageBackend):
    """
    MongoDB backend for one collection.

    Args:
        table: Collection name
        uri: MongoDB connection string
        database: Database holding the collections
        client: Pre-built client; the backend will not close it
        **client_options: Additional ``pymongo.MongoClient`` options
    """

    @handle_import_errors("pymongo", "MongoDB backend")
    def __init__(
        self,
        table: str,
        uri: str = "mongodb://localhost:27017",
        database: str = "polykv",
        client: Optional[Any] = None,
        **client_options,
    ):
        if client is None and not PYMONGO_AVAILABLE:
            raise ImportError("pymongo is required for the MongoDB backend")

        super().__init__(table)
        self.uri = uri
        self.database = database
        self.client_options = client_options

        self._client = client
        self._owns_client = client is None
        self._collection = None

    @with_error_handling()
    def connect(self) -> "MongoBackend":
        if self._connected:
            return self

        if self._client is None:
            self._client = pymongo.MongoClient(self.uri, **self.client_options)
            # Ping once so an unreachable server fails connect()
            self._client.admin.command("ping")

        self._collection = self._client[self.database][self.table]
        self._connected = True
        logger.info(f"MongoBackend connected: {self.database}.{self.table}")
        return self

    def disconnect(self) -> None:
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None
            logger.debug(f"MongoDB client closed ({self.database}.{self.table})")
        self._collection = None
        super().disconnect()

    @staticmethod
    def _to_entry(document: Dict[str, Any]) -> StoredEntry:
        return StoredEntry(
            value=document["value"], type=document["type"], ttl=document.get("ttl")
        )

    @with_error_handling()
    def set(self, key: str, entry: StoredEntry) -> bool:
        self._ensure_connected()
        self._collection.update_one({"_id": key}, {"$set": entry.to_dict()}, upsert=True)
        return True

    @with_error_handling()
    def get(self, key: str) -> Optional[StoredEntry]:
        self._ensure_connected()
        document = self._collection.find_one({"_id": key})
        return self._to_entry(document) if document else None

    @with_error_handling()
    def delete(self, key: str) -> bool:
        self._ensure_connected()
        result = self._collection.delete_one({"_id": key})
        return result.deleted_count > 0

    @with_error_handling()
    def clear(self) -> bool:
        self._ensure_connected()
        result = self._collection.delete_many({})
        logger.debug(f"Cleared {result.deleted_count} documents from {self.table}")
        return True

    @with_error_handling()
    def has(self, key: str) -> bool:
        self._ensure_connected()
        return self._collection.find_one({"_id": key}, {"_id": 1}) is not None

    @with_error_handling()
    def all(self) -> List[Tuple[str, StoredEntry]]:
        self._ensure_connected()
        return [
            (document["_id"], self._to_entry(document))
            for document in self._collection.find({})
        ]
