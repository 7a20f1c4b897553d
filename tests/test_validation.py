from __future__ import annotations

import pytest

from users_api.api import CreateUserRequest, UpdateUserRequest, collect_violations, format_violations


def test_valid_create_payload_has_no_violations() -> None:
    payload = {"name": "John Doe", "email": "john@example.com", "age": 30}
    assert collect_violations(CreateUserRequest, payload) == []


def test_create_payload_violations_are_aggregated() -> None:
    violations = collect_violations(CreateUserRequest, {"name": "", "email": "", "age": "old"})

    assert violations == [
        "name must be longer than or equal to 3 characters",
        "email must be a valid email address",
        "age must be an integer number",
    ]


@pytest.mark.parametrize(
    "payload, expected",
    [
        ({"name": 123}, "name must be a string"),
        ({"age": 12.5}, "age must be an integer number"),
        ({"age": 121}, "age must not be greater than 120"),
        ({"email": "john@"}, "email must be a valid email address"),
        ({"email": "John Doe <john@example.com>"}, "email must be a valid email address"),
        ({"age": "30"}, "age must be an integer number"),
        ({"age": True}, "age must be an integer number"),
    ],
)
def test_update_payload_checks_present_fields(payload: dict, expected: str) -> None:
    assert collect_violations(UpdateUserRequest, payload) == [expected]


def test_email_is_kept_as_sent() -> None:
    request = CreateUserRequest.model_validate({"name": "John Doe", "email": "John@Example.COM", "age": 30})
    assert request.email == "John@Example.COM"


def test_empty_update_payload_is_valid() -> None:
    assert collect_violations(UpdateUserRequest, {}) == []


def test_non_object_payload() -> None:
    assert collect_violations(CreateUserRequest, ["John Doe"]) == ["request body must be a JSON object"]


def test_unknown_error_types_fall_back_to_pydantic_message() -> None:
    errors = [{"loc": ("body", "nickname"), "type": "custom_rule", "msg": "Value is odd"}]
    assert format_violations(errors) == ["nickname: Value is odd"]


def test_duplicate_messages_are_collapsed() -> None:
    errors = [
        {"loc": ("body", "age"), "type": "int_type", "msg": "x"},
        {"loc": ("body", "age"), "type": "int_parsing", "msg": "y"},
    ]
    assert format_violations(errors) == ["age must be an integer number"]
