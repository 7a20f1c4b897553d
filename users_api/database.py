"""MongoDB-backed persistence for user documents."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.collection import Collection

from .models import User

DEFAULT_MONGO_URL = "mongodb://localhost:27017"
DEFAULT_DATABASE_NAME = "users_api"
DEFAULT_COLLECTION_NAME = "users"

EMAIL_INDEX_NAME = "email_unique"


def resolve_database_url(env_value: Optional[str]) -> str:
    """Resolve the connection URL for the document store."""

    if env_value and env_value.strip():
        return env_value.strip()
    return DEFAULT_MONGO_URL


def is_valid_identifier(value: object) -> bool:
    """Return ``True`` when *value* is the textual form of an ObjectId."""

    return isinstance(value, str) and ObjectId.is_valid(value)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _to_object_id(user_id: str) -> ObjectId:
    try:
        return ObjectId(user_id)
    except (InvalidId, TypeError) as exc:
        raise ValueError(f"Invalid user identifier: {user_id!r}") from exc


class UserStore(Protocol):
    """Query operations the user service needs from the document store.

    Every method may raise :class:`pymongo.errors.PyMongoError`; writes that
    collide with the unique email index raise
    :class:`pymongo.errors.DuplicateKeyError`.
    """

    def find_user_by_email(self, email: str) -> Optional[User]:
        ...

    def find_user_by_id(self, user_id: str) -> Optional[User]:
        ...

    def list_users(self) -> List[User]:
        ...

    def insert_user(self, name: str, email: str, age: int) -> User:
        ...

    def update_user(self, user_id: str, changes: Dict[str, Any]) -> Optional[User]:
        ...

    def delete_user(self, user_id: str) -> Optional[User]:
        ...


class Database:
    """Simple wrapper around a MongoDB collection holding user documents."""

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        database_name: str = DEFAULT_DATABASE_NAME,
        collection_name: str = DEFAULT_COLLECTION_NAME,
        client: Optional[MongoClient] = None,
    ) -> None:
        if client is None:
            client = MongoClient(resolve_database_url(url), tz_aware=True)
        self._client = client
        self._collection: Collection = client[database_name][collection_name]

    @property
    def collection(self) -> Collection:
        return self._collection

    def initialize(self) -> None:
        """Create the indexes the service relies on if they do not already exist."""

        self._collection.create_index(
            [("email", ASCENDING)],
            unique=True,
            name=EMAIL_INDEX_NAME,
        )

    def close(self) -> None:
        self._client.close()

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------
    def find_user_by_email(self, email: str) -> Optional[User]:
        document = self._collection.find_one({"email": email})
        if document is None:
            return None
        return User.from_document(document)

    def find_user_by_id(self, user_id: str) -> Optional[User]:
        document = self._collection.find_one({"_id": _to_object_id(user_id)})
        if document is None:
            return None
        return User.from_document(document)

    def list_users(self) -> List[User]:
        return [User.from_document(document) for document in self._collection.find({})]

    # ------------------------------------------------------------------
    # User mutations
    # ------------------------------------------------------------------
    def insert_user(self, name: str, email: str, age: int) -> User:
        """Insert a new user document and return it with its assigned identifier."""

        created_at = _current_timestamp()
        document: Dict[str, Any] = {
            "name": name,
            "email": email,
            "age": age,
            "created_at": created_at,
            "updated_at": created_at,
        }
        result = self._collection.insert_one(document)
        document["_id"] = result.inserted_id
        return User.from_document(document)

    def update_user(self, user_id: str, changes: Dict[str, Any]) -> Optional[User]:
        """Merge *changes* into the stored user and return the updated document."""

        allowed = {key: value for key, value in changes.items() if key in {"name", "email", "age"}}
        allowed["updated_at"] = _current_timestamp()
        document = self._collection.find_one_and_update(
            {"_id": _to_object_id(user_id)},
            {"$set": allowed},
            return_document=ReturnDocument.AFTER,
        )
        if document is None:
            return None
        return User.from_document(document)

    def delete_user(self, user_id: str) -> Optional[User]:
        """Remove the user and return the document as it was before removal."""

        document = self._collection.find_one_and_delete({"_id": _to_object_id(user_id)})
        if document is None:
            return None
        return User.from_document(document)


__all__ = [
    "DEFAULT_COLLECTION_NAME",
    "DEFAULT_DATABASE_NAME",
    "DEFAULT_MONGO_URL",
    "Database",
    "UserStore",
    "is_valid_identifier",
    "resolve_database_url",
]
