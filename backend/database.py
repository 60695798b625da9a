import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from dotenv import find_dotenv, load_dotenv
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from backend.errors import StoreError
from backend.schemas import Status

DEFAULT_DATABASE_URL = "mongodb://localhost:27017"
DEFAULT_DATABASE_NAME = "appdb"
COLLECTION_NAME = "jobapplication"

logger = logging.getLogger(__name__)

_client: Optional[AsyncIOMotorClient] = None
_db: Optional[AsyncIOMotorDatabase] = None


def get_db() -> AsyncIOMotorDatabase:
    global _client, _db
    if _db is None:
        load_dotenv(find_dotenv(usecwd=True))
        # tz_aware so reads return UTC datetimes like the ones written
        _client = AsyncIOMotorClient(os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL), tz_aware=True)
        _db = _client[os.getenv("DATABASE_NAME", DEFAULT_DATABASE_NAME)]
    return _db


def close_db() -> None:
    global _client, _db
    if _client is not None:
        _client.close()
    _client = None
    _db = None


def to_str_id(doc: Dict[str, Any]) -> Dict[str, Any]:
    d = dict(doc)
    if isinstance(d.get("_id"), ObjectId):
        d["id"] = str(d.pop("_id"))
    return d


def _object_id(record_id: str) -> Optional[ObjectId]:
    if not isinstance(record_id, str) or not ObjectId.is_valid(record_id):
        return None
    return ObjectId(record_id)


def _now() -> datetime:
    # BSON dates only keep milliseconds
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


class JobApplicationStore:
    """Job application documents in MongoDB.

    Every method returns plain dicts with a string ``id`` (see ``to_str_id``).
    Ids that are not valid ObjectIds never reach the driver and behave like
    missing records. Driver failures surface as ``StoreError``.
    """

    def __init__(self, db: Optional[AsyncIOMotorDatabase] = None, collection_name: str = COLLECTION_NAME):
        self._db = db
        self.collection_name = collection_name

    @property
    def collection(self):
        db = self._db if self._db is not None else get_db()
        return db[self.collection_name]

    async def ensure_indexes(self) -> None:
        try:
            await self.collection.create_index([("created_at", DESCENDING)])
            await self.collection.create_index("status")
        except PyMongoError as e:
            raise StoreError(str(e))

    async def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        now = _now()
        payload = {**data, "status": Status.PENDING.value, "created_at": now, "updated_at": now}
        try:
            result = await self.collection.insert_one(payload)
        except PyMongoError as e:
            raise StoreError(str(e))
        payload["_id"] = result.inserted_id
        return to_str_id(payload)

    async def find_by_id(self, record_id: str, fields: Optional[List[str]] = None) -> Optional[Dict[str, Any]]:
        oid = _object_id(record_id)
        if oid is None:
            return None
        projection = {f: 1 for f in fields} if fields else None
        try:
            doc = await self.collection.find_one({"_id": oid}, projection)
        except PyMongoError as e:
            raise StoreError(str(e))
        return to_str_id(doc) if doc else None

    async def update_by_id(
        self,
        record_id: str,
        changes: Dict[str, Any],
        expected_status: Optional[Status] = None,
    ) -> Optional[Dict[str, Any]]:
        """Apply ``changes`` in one atomic update.

        With ``expected_status`` the update only matches while the record is
        still in that status. Returns the updated document, or None when
        nothing matched.
        """
        oid = _object_id(record_id)
        if oid is None:
            return None
        query: Dict[str, Any] = {"_id": oid}
        if expected_status is not None:
            query["status"] = Status(expected_status).value
        update = {"$set": {**changes, "updated_at": _now()}}
        try:
            doc = await self.collection.find_one_and_update(
                query, update, return_document=ReturnDocument.AFTER
            )
        except PyMongoError as e:
            raise StoreError(str(e))
        return to_str_id(doc) if doc else None

    async def find_many(self, skip: int = 0, limit: int = 10) -> List[Dict[str, Any]]:
        try:
            cursor = (
                self.collection.find({})
                .sort([("created_at", DESCENDING), ("_id", DESCENDING)])
                .skip(skip)
                .limit(limit)
            )
            docs = await cursor.to_list(length=limit)
        except PyMongoError as e:
            raise StoreError(str(e))
        return [to_str_id(d) for d in docs]

    async def delete_by_id(self, record_id: str) -> Optional[Dict[str, Any]]:
        oid = _object_id(record_id)
        if oid is None:
            return None
        try:
            doc = await self.collection.find_one_and_delete({"_id": oid})
        except PyMongoError as e:
            raise StoreError(str(e))
        return to_str_id(doc) if doc else None

    async def count(self) -> int:
        try:
            return await self.collection.count_documents({})
        except PyMongoError as e:
            raise StoreError(str(e))

    async def ping(self) -> List[str]:
        db = self._db if self._db is not None else get_db()
        try:
            return await db.list_collection_names()
        except PyMongoError as e:
            raise StoreError(str(e))
