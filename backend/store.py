"""
Document store for users, projects and the nested building tree.

MongoStore wraps pymongo with connection retries, index setup and
session-scoped transactions. InMemoryStore mirrors the same interface for
tests and local development.
"""
import copy
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from bson.objectid import ObjectId
from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from errors import ComplianceError, ServiceUnavailable, TransactionAborted
from logger import get_logger

logger = get_logger(__name__)

USERS = "users"
PROJECTS = "projects"
BUILDING_TYPES = "buildingtypes"
SPACES = "spaces"
ELEMENTS = "elements"

# (field, unique) per collection
INDEXES = {
    USERS: [("email", True)],
    PROJECTS: [("owner", False), ("sharedWith.user", False)],
    BUILDING_TYPES: [("project", False)],
    SPACES: [("buildingType", False)],
    ELEMENTS: [("space", False)],
}

Sort = Sequence[Tuple[str, int]]


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Convert a path/body id to ObjectId, or None when it is not a valid id."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _stamp(doc: Dict[str, Any]) -> Dict[str, Any]:
    now = _now()
    doc.setdefault("createdAt", now)
    doc["updatedAt"] = now
    return doc


class MongoStore:
    """Helper class for MongoDB operations."""

    def __init__(self, uri: str, db_name: str, max_retries: int = 5, retry_delay: int = 3):
        """Initialize MongoDB connection.

        Args:
            uri: MongoDB connection string (must point at a replica set for transactions)
            db_name: Database name
            max_retries: Maximum number of connection retries
            retry_delay: Delay between retries in seconds
        """
        self.uri = uri
        self.db_name = db_name
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.client = None
        self.db = None
        # Initialize MongoDB connection with retries
        self._initialize_connection()
        if self.db is not None:
            self._ensure_indexes()

    def _initialize_connection(self):
        """Initialize MongoDB connection with retry logic."""
        retries = 0
        while retries < self.max_retries:
            try:
                logger.info("Attempting MongoDB connection (attempt %d/%d)...", retries + 1, self.max_retries)
                self.client = MongoClient(self.uri, serverSelectionTimeoutMS=5000)
                self.client.admin.command('ping')
                self.db = self.client[self.db_name]
                logger.info("MongoDB connected successfully to database '%s'", self.db_name)
                return
            except PyMongoError as e:
                retries += 1
                logger.warn("MongoDB connection failed (attempt %d/%d): %s", retries, self.max_retries, e)
                if retries < self.max_retries:
                    logger.info("Retrying in %d seconds...", self.retry_delay)
                    time.sleep(self.retry_delay)
                else:
                    logger.error("Failed to connect to MongoDB after %d attempts.", self.max_retries)
                    self.db = None

    def _ensure_indexes(self):
        """Ensure lookup indexes for the ownership chain exist."""
        for collection, indexes in INDEXES.items():
            for field, unique in indexes:
                self.db[collection].create_index([(field, ASCENDING)], unique=unique)

    def _collection(self, name: str):
        if self.db is None:
            logger.error("MongoDB not connected, cannot access '%s'", name)
            raise ServiceUnavailable("Database service not available")
        return self.db[name]

    def ping(self) -> bool:
        if self.db is None:
            return False
        try:
            self.db.command('ping')
            return True
        except PyMongoError as e:
            logger.warn("MongoDB ping failed: %s", e)
            return False

    @contextmanager
    def transaction(self) -> Iterator[Any]:
        """Run the block inside one session transaction; abort on any exception."""
        if self.client is None:
            raise ServiceUnavailable("Database service not available")
        with self.client.start_session() as session:
            try:
                with session.start_transaction():
                    yield session
            except ComplianceError:
                raise
            except PyMongoError as e:
                logger.error("Transaction aborted: %s", e)
                raise TransactionAborted() from e

    def find_by_id(self, collection: str, doc_id: ObjectId, session=None) -> Optional[Dict[str, Any]]:
        return self._collection(collection).find_one({"_id": doc_id}, session=session)

    def find(self, collection: str, query: Dict[str, Any], session=None,
             sort: Optional[Sort] = None, skip: int = 0, limit: int = 0) -> List[Dict[str, Any]]:
        cursor = self._collection(collection).find(query, session=session)
        if sort:
            cursor = cursor.sort(list(sort))
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)

    def count(self, collection: str, query: Dict[str, Any], session=None) -> int:
        return self._collection(collection).count_documents(query, session=session)

    def insert_one(self, collection: str, doc: Dict[str, Any], session=None) -> Dict[str, Any]:
        doc = _stamp(dict(doc))
        result = self._collection(collection).insert_one(doc, session=session)
        doc["_id"] = result.inserted_id
        return doc

    def insert_many(self, collection: str, docs: List[Dict[str, Any]], session=None) -> List[Dict[str, Any]]:
        if not docs:
            return []
        docs = [_stamp(dict(doc)) for doc in docs]
        result = self._collection(collection).insert_many(docs, session=session)
        for doc, inserted_id in zip(docs, result.inserted_ids):
            doc["_id"] = inserted_id
        return docs

    def update_by_id(self, collection: str, doc_id: ObjectId, fields: Dict[str, Any],
                     session=None) -> Optional[Dict[str, Any]]:
        fields = dict(fields, updatedAt=_now())
        return self._collection(collection).find_one_and_update(
            {"_id": doc_id},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
            session=session,
        )

    def delete_by_id(self, collection: str, doc_id: ObjectId, session=None) -> int:
        return self._collection(collection).delete_one({"_id": doc_id}, session=session).deleted_count

    def delete_many(self, collection: str, query: Dict[str, Any], session=None) -> int:
        return self._collection(collection).delete_many(query, session=session).deleted_count


def _values_at(doc: Dict[str, Any], path: str) -> List[Any]:
    """Resolve a dotted path, descending into arrays the way MongoDB does."""
    values = [doc]
    for part in path.split("."):
        found = []
        for value in values:
            candidates = value if isinstance(value, list) else [value]
            for candidate in candidates:
                if isinstance(candidate, dict) and part in candidate:
                    found.append(candidate[part])
        values = found
    flattened = []
    for value in values:
        if isinstance(value, list):
            flattened.extend(value)
        else:
            flattened.append(value)
    return flattened


def _matches(doc: Dict[str, Any], query: Dict[str, Any]) -> bool:
    for key, condition in query.items():
        if key == "$or":
            if not any(_matches(doc, sub_query) for sub_query in condition):
                return False
            continue
        values = _values_at(doc, key)
        if isinstance(condition, dict) and "$in" in condition:
            if not any(value in condition["$in"] for value in values):
                return False
        elif condition not in values:
            return False
    return True


def _sort_key(value: Any):
    return (0,) if value is None else (1, value)


class InMemorySession:
    """Token handed out by InMemoryStore.transaction(); carries no state."""


class InMemoryStore:
    """Process-local store with snapshot/restore transactions."""

    def __init__(self):
        self._lock = threading.RLock()
        self._collections: Dict[str, Dict[ObjectId, Dict[str, Any]]] = {}

    def reset(self):
        with self._lock:
            self._collections = {}

    def _coll(self, name: str) -> Dict[ObjectId, Dict[str, Any]]:
        return self._collections.setdefault(name, {})

    def ping(self) -> bool:
        return True

    @contextmanager
    def transaction(self) -> Iterator[InMemorySession]:
        with self._lock:
            snapshot = copy.deepcopy(self._collections)
            try:
                yield InMemorySession()
            except Exception:
                self._collections = snapshot
                raise

    def find_by_id(self, collection: str, doc_id: ObjectId, session=None) -> Optional[Dict[str, Any]]:
        with self._lock:
            doc = self._coll(collection).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def find(self, collection: str, query: Dict[str, Any], session=None,
             sort: Optional[Sort] = None, skip: int = 0, limit: int = 0) -> List[Dict[str, Any]]:
        with self._lock:
            docs = [copy.deepcopy(doc) for doc in self._coll(collection).values() if _matches(doc, query)]
        for field, direction in reversed(list(sort or [])):
            docs.sort(key=lambda doc: _sort_key(doc.get(field)), reverse=direction < 0)
        if limit:
            return docs[skip:skip + limit]
        return docs[skip:]

    def count(self, collection: str, query: Dict[str, Any], session=None) -> int:
        with self._lock:
            return sum(1 for doc in self._coll(collection).values() if _matches(doc, query))

    def _check_unique(self, collection: str, doc: Dict[str, Any]):
        for field, unique in INDEXES.get(collection, []):
            if not unique or field not in doc:
                continue
            for existing in self._coll(collection).values():
                if existing["_id"] != doc["_id"] and existing.get(field) == doc[field]:
                    raise DuplicateKeyError(f"E11000 duplicate key error collection: {collection} index: {field}_1")

    def insert_one(self, collection: str, doc: Dict[str, Any], session=None) -> Dict[str, Any]:
        doc = _stamp(copy.deepcopy(doc))
        doc.setdefault("_id", ObjectId())
        with self._lock:
            self._check_unique(collection, doc)
            self._coll(collection)[doc["_id"]] = doc
        return copy.deepcopy(doc)

    def insert_many(self, collection: str, docs: List[Dict[str, Any]], session=None) -> List[Dict[str, Any]]:
        with self._lock:
            return [self.insert_one(collection, doc, session=session) for doc in docs]

    def update_by_id(self, collection: str, doc_id: ObjectId, fields: Dict[str, Any],
                     session=None) -> Optional[Dict[str, Any]]:
        with self._lock:
            doc = self._coll(collection).get(doc_id)
            if doc is None:
                return None
            updated = dict(doc, **copy.deepcopy(fields))
            updated["updatedAt"] = _now()
            self._check_unique(collection, updated)
            self._coll(collection)[doc_id] = updated
            return copy.deepcopy(updated)

    def delete_by_id(self, collection: str, doc_id: ObjectId, session=None) -> int:
        with self._lock:
            return 1 if self._coll(collection).pop(doc_id, None) is not None else 0

    def delete_many(self, collection: str, query: Dict[str, Any], session=None) -> int:
        with self._lock:
            coll = self._coll(collection)
            doomed = [doc_id for doc_id, doc in coll.items() if _matches(doc, query)]
            for doc_id in doomed:
                del coll[doc_id]
            return len(doomed)
