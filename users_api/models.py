"""Domain models for the users service."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict


@dataclass(frozen=True)
class User:
    """Represents a user document stored in the users collection."""

    id: str
    name: str
    email: str
    age: int
    created_at: datetime
    updated_at: datetime

    @staticmethod
    def from_document(document: Dict[str, Any]) -> "User":
        """Create a :class:`User` from a raw MongoDB document."""
        return User(
            id=str(document["_id"]),
            name=str(document["name"]),
            email=str(document["email"]),
            age=int(document["age"]),
            created_at=document["created_at"],
            updated_at=document["updated_at"],
        )


__all__ = ["User"]
