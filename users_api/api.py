"""FastAPI application that exposes the users CRUD endpoints."""
from __future__ import annotations

import logging
from datetime import datetime
from functools import partial
from typing import Annotated, Any, Dict, Iterable, List, Mapping, Optional, Sequence, Type

import anyio
from email_validator import EmailNotValidError, validate_email
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import AfterValidator, BaseModel, Field, StrictInt, ValidationError
from pymongo.errors import PyMongoError

from .config import Settings, load_settings
from .database import Database
from .models import User
from .service import UserService, UserServiceError

logger = logging.getLogger("usersapi.api")


def _check_email(value: str) -> str:
    # Validation only; the caller's spelling is what gets stored.
    try:
        validate_email(value, check_deliverability=False, allow_display_name=False)
    except EmailNotValidError as exc:
        raise ValueError(str(exc)) from exc
    return value


UserName = Annotated[str, Field(min_length=3, max_length=50)]
EmailAddress = Annotated[str, AfterValidator(_check_email)]
Age = Annotated[StrictInt, Field(ge=0, le=120)]


class CreateUserRequest(BaseModel):
    name: UserName
    email: EmailAddress
    age: Age


class UpdateUserRequest(BaseModel):
    name: Optional[UserName] = None
    email: Optional[EmailAddress] = None
    age: Optional[Age] = None


class UserResponse(BaseModel):
    id: str
    name: str
    email: str
    age: int
    created_at: datetime
    updated_at: datetime


class MessageEnvelope(BaseModel):
    success: bool
    message: str


class UserEnvelope(MessageEnvelope):
    data: UserResponse


class UserListEnvelope(MessageEnvelope):
    data: List[UserResponse]


class ErrorEnvelope(MessageEnvelope):
    errors: Optional[List[str]] = None


_VIOLATION_MESSAGES: Dict[str, str] = {
    "missing": "{field} should not be empty",
    "string_type": "{field} must be a string",
    "string_too_short": "{field} must be longer than or equal to {min_length} characters",
    "string_too_long": "{field} must be shorter than or equal to {max_length} characters",
    "int_type": "{field} must be an integer number",
    "int_parsing": "{field} must be an integer number",
    "int_from_float": "{field} must be an integer number",
    "greater_than_equal": "{field} must not be less than {ge}",
    "less_than_equal": "{field} must not be greater than {le}",
    "model_attributes_type": "request body must be a JSON object",
    "model_type": "request body must be a JSON object",
    "dict_type": "request body must be a JSON object",
    "json_invalid": "request body must be valid JSON",
}

_FIELD_VIOLATION_MESSAGES: Dict[tuple[str, str], str] = {
    ("email", "value_error"): "email must be a valid email address",
}


def _violation_field(location: Sequence[Any]) -> str:
    parts = [str(part) for part in location if part != "body"]
    return ".".join(parts) or "body"


def format_violations(errors: Iterable[Mapping[str, Any]]) -> List[str]:
    """Turn pydantic error records into readable, de-duplicated messages."""

    violations: List[str] = []
    for error in errors:
        field = _violation_field(error.get("loc", ()))
        error_type = str(error.get("type", ""))
        template = _FIELD_VIOLATION_MESSAGES.get((field, error_type)) or _VIOLATION_MESSAGES.get(error_type)
        if template is None:
            message = f"{field}: {error.get('msg', 'is invalid')}"
        else:
            context = dict(error.get("ctx") or {})
            message = template.format(field=field, **context)
        if message not in violations:
            violations.append(message)
    return violations


def collect_violations(model: Type[BaseModel], payload: object) -> List[str]:
    """Validate *payload* against *model* and list every violated constraint.

    An empty list means the payload is acceptable.
    """

    try:
        model.model_validate(payload)
    except ValidationError as exc:
        return format_violations(exc.errors())
    return []


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        age=user.age,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def _error_response(status_code: int, message: str, errors: Optional[List[str]] = None) -> JSONResponse:
    payload = ErrorEnvelope(success=False, message=message, errors=errors)
    return JSONResponse(status_code=status_code, content=payload.model_dump(exclude_none=True))


def _build_database(settings: Settings) -> Database:
    return Database(
        settings.mongo_url,
        database_name=settings.database_name,
        collection_name=settings.collection_name,
    )


def create_app(
    *,
    database: Database | None = None,
    service: UserService | None = None,
    settings: Settings | None = None,
    initialize_database: bool = False,
) -> FastAPI:
    if service is None:
        if database is None:
            database = _build_database(settings or load_settings())
        if initialize_database:
            database.initialize()
        service = UserService(database)

    app = FastAPI(
        title="Users API",
        description="CRUD service for user records backed by MongoDB",
        version="1.0.0",
    )

    async def run_service(func, *args: Any):
        return await anyio.to_thread.run_sync(partial(func, *args))

    @app.get("/health")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post("/users", response_model=UserEnvelope, status_code=status.HTTP_201_CREATED)
    async def create_user(payload: CreateUserRequest) -> UserEnvelope:
        user = await run_service(service.create, payload.name, payload.email, payload.age)
        return UserEnvelope(success=True, message="User created successfully", data=user_to_response(user))

    @app.get("/users", response_model=UserListEnvelope)
    async def list_users() -> UserListEnvelope:
        users = await run_service(service.list)
        return UserListEnvelope(
            success=True,
            message="Users retrieved successfully",
            data=[user_to_response(user) for user in users],
        )

    @app.get("/users/{user_id}", response_model=UserEnvelope)
    async def read_user(user_id: str) -> UserEnvelope:
        user = await run_service(service.get, user_id)
        return UserEnvelope(success=True, message="User retrieved successfully", data=user_to_response(user))

    @app.patch("/users/{user_id}", response_model=UserEnvelope)
    async def update_user(user_id: str, payload: Optional[UpdateUserRequest] = None) -> UserEnvelope:
        changes: Dict[str, Any] = {}
        if payload is not None:
            changes = payload.model_dump(exclude_unset=True, exclude_none=True)
        user = await run_service(service.update, user_id, changes)
        return UserEnvelope(success=True, message="User updated successfully", data=user_to_response(user))

    @app.delete("/users/{user_id}", response_model=MessageEnvelope)
    async def delete_user(user_id: str) -> MessageEnvelope:
        await run_service(service.delete, user_id)
        return MessageEnvelope(success=True, message="User deleted successfully")

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(_: Request, exc: RequestValidationError):
        violations = format_violations(exc.errors())
        return _error_response(status.HTTP_400_BAD_REQUEST, "Validation failed", violations)

    @app.exception_handler(UserServiceError)
    async def handle_service_error(_: Request, exc: UserServiceError):
        return _error_response(exc.status_code, exc.message)

    @app.exception_handler(PyMongoError)
    async def handle_store_error(request: Request, exc: PyMongoError):
        logger.error("Document store failure while handling %s %s: %s", request.method, request.url.path, exc)
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")

    return app


__all__ = [
    "CreateUserRequest",
    "UpdateUserRequest",
    "UserResponse",
    "collect_violations",
    "create_app",
    "format_violations",
    "user_to_response",
]
