from __future__ import annotations

import mongomock
import pytest

import main as cli
from main import _create_user, _list_users, _parse_args
from users_api.database import Database
from users_api.service import UserService


@pytest.fixture()
def service() -> UserService:
    database = Database(client=mongomock.MongoClient())
    database.initialize()
    return UserService(database)


def test_default_command_invokes_serve() -> None:
    args = _parse_args([])
    assert args.command == "serve"


def test_default_command_accepts_options_without_subcommand() -> None:
    args = _parse_args(["--host", "127.0.0.1", "--port", "8080"])
    assert args.command == "serve"
    assert args.host == "127.0.0.1"
    assert args.port == 8080


def test_config_option_precedes_subcommand() -> None:
    args = _parse_args(["--config", "/etc/users-api.yaml", "list-users"])
    assert args.command == "list-users"
    assert args.config == "/etc/users-api.yaml"


def test_create_user_subcommand_arguments() -> None:
    args = _parse_args(["create-user", "John Doe", "john@example.com", "30"])
    assert args.command == "create-user"
    assert (args.name, args.email, args.age) == ("John Doe", "john@example.com", "30")


def test_create_user_prints_every_violation(service: UserService, capsys: pytest.CaptureFixture[str]) -> None:
    status = _create_user(service, "Jo", "nope", "200")

    assert status == 1
    err = capsys.readouterr().err
    assert "name must be longer than or equal to 3 characters" in err
    assert "email must be a valid email address" in err
    assert "age must not be greater than 120" in err
    assert service.list() == []


def test_create_and_list_users(service: UserService, capsys: pytest.CaptureFixture[str]) -> None:
    assert _create_user(service, "John Doe", "john@example.com", "30") == 0
    assert "Created user" in capsys.readouterr().out

    assert _create_user(service, "Johnny", "john@example.com", "31") == 1
    assert "already exists" in capsys.readouterr().err

    _list_users(service)
    out = capsys.readouterr().out
    assert "1 user(s) found:" in out
    assert "john@example.com" in out


def test_list_users_when_empty(service: UserService, capsys: pytest.CaptureFixture[str]) -> None:
    _list_users(service)
    assert "No users are currently registered." in capsys.readouterr().out


def test_create_user_rejects_non_numeric_age(service: UserService, capsys: pytest.CaptureFixture[str]) -> None:
    assert _create_user(service, "John Doe", "john@example.com", "thirty") == 1
    assert "age must be an integer number" in capsys.readouterr().err
    assert service.list() == []


class ClosingDatabase:
    def __init__(self) -> None:
        self.closed = False

    def close(self) -> None:
        self.closed = True


@pytest.mark.parametrize("argv", [["init-db"], ["list-users"], ["create-user", "Jo", "nope", "x"]])
def test_main_closes_database(monkeypatch: pytest.MonkeyPatch, argv: list[str]) -> None:
    monkeypatch.delenv("USERS_API_CONFIG", raising=False)
    database = ClosingDatabase()
    monkeypatch.setattr(cli, "_initialise_database", lambda settings: database)
    monkeypatch.setattr(cli, "_list_users", lambda service: None)

    cli.main(argv)

    assert database.closed
