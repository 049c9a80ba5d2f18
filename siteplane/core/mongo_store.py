"""
MongoDB-backed conversation store and title search.

Reads the conversations collection the chat subsystem writes. Filters are
passed to the driver unchanged, since the pager already speaks the Mongo
filter dialect. Connection settings come from MONGO_URI / MONGO_DB.
"""

import logging
import re
from typing import Any

from pymongo import MongoClient
from pymongo.collection import Collection

from siteplane.core.config import CONVERSATIONS_COLLECTION, MONGO_DB, MONGO_URI
from siteplane.core.conversation_store import SortSpec

logger = logging.getLogger(__name__)

# Internal document id is not part of the API
_PROJECTION = {"_id": 0}


def get_collection(
    uri: str = MONGO_URI,
    db_name: str = MONGO_DB,
    collection_name: str = CONVERSATIONS_COLLECTION,
) -> Collection:
    """Open the conversations collection. Datetimes come back timezone-aware (UTC)."""
    client: MongoClient = MongoClient(uri, tz_aware=True)
    logger.info("[mongo_store] connected db=%s collection=%s", db_name, collection_name)
    return client[db_name][collection_name]


class MongoConversationStore:
    def __init__(self, collection: Collection) -> None:
        self.collection = collection

    def find(self, query: dict[str, Any], sort: SortSpec, limit: int | None = None) -> list[dict[str, Any]]:
        cursor = self.collection.find(query, _PROJECTION)
        if sort:
            cursor = cursor.sort(sort)
        if limit is not None:
            cursor = cursor.limit(limit)
        rows = list(cursor)
        logger.debug("[mongo_store:find] hits=%d", len(rows))
        return rows


class MongoSearchIndex:
    """Case-insensitive title search: every query term must appear in the title."""

    def __init__(self, collection: Collection) -> None:
        self.collection = collection

    def search(self, text: str, user: str, tenant_id: str | None = None) -> list[str]:
        terms = [t for t in (text or "").split() if t]
        if not terms:
            return []
        query: dict[str, Any] = {
            "user": user,
            "$and": [{"title": {"$regex": re.escape(t), "$options": "i"}} for t in terms],
        }
        if tenant_id:
            query["tenant_id"] = tenant_id
        return [doc["conversation_id"] for doc in self.collection.find(query, {"conversation_id": 1, "_id": 0})]
