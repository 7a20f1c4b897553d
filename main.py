"""Command-line interface for the users service."""

from __future__ import annotations
import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from users_api.api import CreateUserRequest, collect_violations
from users_api.config import Settings, load_settings
from users_api.database import Database
from users_api.service import UserService, UserServiceError

logger = logging.getLogger("usersapi.main")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Users service utilities")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML settings file (default: USERS_API_CONFIG or config/settings.yaml)",
    )
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Create the indexes the users collection relies on")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP users service")
    serve_parser.add_argument("--host", default=None, help="Bind address for the API")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port for the HTTP API (default: 8000)",
    )

    subparsers.add_parser("list-users", help="Print every stored user")

    create_parser = subparsers.add_parser("create-user", help="Create a user from the command line")
    create_parser.add_argument("name", help="Display name (3-50 characters)")
    create_parser.add_argument("email", help="Unique email address")
    create_parser.add_argument("age", help="Age in years (0-120)")

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "list-users", "create-user"}

    global_options: list[str] = []
    if args_list[:1] == ["--config"] and len(args_list) >= 2:
        global_options, args_list = args_list[:2], args_list[2:]

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args([*global_options, *args_list])
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args([*global_options, *args_list])
            args_list = ["serve", *args_list]

    return parser.parse_args([*global_options, *args_list])


def _load_settings(config: str | None) -> Settings:
    path = Path(config).expanduser() if config else None
    return load_settings(path)


def _initialise_database(settings: Settings) -> Database:
    database = Database(
        settings.mongo_url,
        database_name=settings.database_name,
        collection_name=settings.collection_name,
    )
    database.initialize()
    logger.info(
        "Database initialised at %s (%s.%s)",
        settings.mongo_url,
        settings.database_name,
        settings.collection_name,
    )
    return database


def _serve(*, database: Database, host: str, port: int) -> None:
    from users_api.api import create_app
    import uvicorn

    logger.info("Starting users API on http://%s:%s", host, port)

    app = create_app(database=database)
    uvicorn.run(app, host=host, port=port, log_level="info")


def _list_users(service: UserService) -> None:
    users = service.list()
    if not users:
        print("No users are currently registered.")
        return

    print(f"{len(users)} user(s) found:")
    print(f"{'ID':<24}  {'Name':<24}  {'Email':<32}  {'Age':>3}  Created")
    print("-" * 100)
    for user in users:
        created = user.created_at.strftime("%Y-%m-%d %H:%M:%S")
        print(f"{user.id:<24}  {user.name:<24}  {user.email:<32}  {user.age:>3}  {created}")


def _create_user(service: UserService, name: str, email: str, age: str) -> int:
    age_value: object
    try:
        age_value = int(age.strip())
    except ValueError:
        # Left as text so validation reports it as a non-integer age.
        age_value = age.strip()

    payload = {"name": name.strip(), "email": email.strip(), "age": age_value}
    violations = collect_violations(CreateUserRequest, payload)
    if violations:
        print("Failed to create user:", file=sys.stderr)
        for violation in violations:
            print(f"  - {violation}", file=sys.stderr)
        return 1

    request = CreateUserRequest.model_validate(payload)
    try:
        user = service.create(request.name, request.email, request.age)
    except UserServiceError as exc:
        print(f"Failed to create user: {exc.message}", file=sys.stderr)
        return 1

    print(f"Created user {user.id}: {user.name} <{user.email}>, age {user.age}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    settings = _load_settings(args.config)
    database = _initialise_database(settings)

    try:
        if args.command == "serve":
            _serve(
                database=database,
                host=args.host or settings.host,
                port=args.port or settings.port,
            )
        elif args.command == "list-users":
            _list_users(UserService(database))
        elif args.command == "create-user":
            return _create_user(UserService(database), args.name, args.email, args.age)
        elif args.command == "init-db":
            print("Database initialisation complete.")
    finally:
        database.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
