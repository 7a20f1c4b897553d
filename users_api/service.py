"""Business rules for creating, reading, updating and deleting users."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping

from bson import ObjectId
from fastapi import status
from pymongo.errors import DuplicateKeyError, PyMongoError

from .database import UserStore, is_valid_identifier
from .models import User

logger = logging.getLogger("usersapi.service")


class UserServiceError(Exception):
    """Base class for failures surfaced by :class:`UserService`."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidIdentifierError(UserServiceError):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, user_id: str) -> None:
        super().__init__(f"Invalid ID format: {user_id}")
        self.user_id = user_id


class DuplicateUserError(UserServiceError):
    """Raised when the store rejects an insert because the email is taken."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, email: str) -> None:
        super().__init__(f"User with email {email} already exists")
        self.email = email


class EmailConflictError(UserServiceError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, email: str) -> None:
        super().__init__(f"User with email {email} already exists")
        self.email = email


class UserNotFoundError(UserServiceError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, user_id: str) -> None:
        super().__init__(f"User with ID {user_id} not found")
        self.user_id = user_id


class StoreFailureError(UserServiceError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class UserService:
    """Enforce email uniqueness and identifier shape before touching the store."""

    def __init__(self, store: UserStore) -> None:
        self._store = store

    def create(self, name: str, email: str, age: int) -> User:
        existing = self._store.find_user_by_email(email)
        if existing is not None:
            logger.warning("Rejected new user: email %s already belongs to user %s", email, existing.id)
            raise EmailConflictError(email)

        try:
            user = self._store.insert_user(name, email, age)
        except DuplicateKeyError as exc:
            # Another request inserted the same email after the lookup above.
            logger.warning("Store rejected duplicate email %s on insert", email)
            raise DuplicateUserError(email) from exc
        except PyMongoError as exc:
            logger.exception("Failed to insert user with email %s", email)
            raise StoreFailureError(f"Error creating user: {exc}") from exc

        logger.info("Created user %s <%s>", user.id, user.email)
        return user

    def list(self) -> List[User]:
        return self._store.list_users()

    def get(self, user_id: str) -> User:
        user_id = self._ensure_identifier(user_id)
        user = self._store.find_user_by_id(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    def update(self, user_id: str, changes: Mapping[str, Any]) -> User:
        """Apply a partial update.

        Only keys present in *changes* are written. When the email changes, it
        must not belong to any other user; keeping one's own email is allowed.
        """

        user_id = self._ensure_identifier(user_id)

        updates: Dict[str, Any] = {key: value for key, value in changes.items() if value is not None}
        email = updates.get("email")
        if email is not None:
            owner = self._store.find_user_by_email(email)
            if owner is not None and owner.id != user_id:
                logger.warning("Rejected update of user %s: email %s belongs to user %s", user_id, email, owner.id)
                raise EmailConflictError(email)

        try:
            user = self._store.update_user(user_id, updates)
        except DuplicateKeyError as exc:
            logger.warning("Store rejected duplicate email %s on update of user %s", email, user_id)
            raise EmailConflictError(str(email)) from exc

        if user is None:
            raise UserNotFoundError(user_id)

        logger.info("Updated user %s (fields: %s)", user_id, ", ".join(sorted(updates)) or "none")
        return user

    def delete(self, user_id: str) -> User:
        user_id = self._ensure_identifier(user_id)
        removed = self._store.delete_user(user_id)
        if removed is None:
            raise UserNotFoundError(user_id)
        logger.info("Deleted user %s <%s>", removed.id, removed.email)
        return removed

    @staticmethod
    def _ensure_identifier(user_id: str) -> str:
        """Return the canonical lowercase form of a well-formed identifier."""
        if not is_valid_identifier(user_id):
            raise InvalidIdentifierError(user_id)
        return str(ObjectId(user_id))


__all__ = [
    "DuplicateUserError",
    "EmailConflictError",
    "InvalidIdentifierError",
    "StoreFailureError",
    "UserNotFoundError",
    "UserService",
    "UserServiceError",
]
