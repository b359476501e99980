from __future__ import annotations

import argparse
import logging
import sys

import uvicorn

from vaultlog.config import SETTINGS
from vaultlog.domain.enums import UserRole
from vaultlog.domain.errors import ValidationError
from vaultlog.infra.db import create_schema, init_db
from vaultlog.infra.logging import setup_logging
from vaultlog.infra.repository import UserRepository

logger = logging.getLogger(__name__)


def cmd_serve(args: argparse.Namespace) -> int:
    from vaultlog.api.app import create_app

    uvicorn.run(create_app(), host=args.host, port=args.port, log_config=None)
    return 0


def cmd_create_user(args: argparse.Namespace) -> int:
    try:
        user = UserRepository().create_user(
            {"email": args.email, "name": args.name, "role": args.role}
        )
    except ValidationError as exc:
        print(f"error: {exc.message}", file=sys.stderr)
        return 1
    print(f"Created {user.role.value} {user.email} ({user.id})")
    return 0


def cmd_create_schema(args: argparse.Namespace) -> int:
    create_schema()
    logger.info("Schema created")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(prog="vaultlog", description="VaultLog service task tracker")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=SETTINGS.api_host)
    serve.add_argument("--port", type=int, default=SETTINGS.api_port)
    serve.set_defaults(func=cmd_serve)

    create_user = subparsers.add_parser("create-user", help="Register a user")
    create_user.add_argument("--email", required=True)
    create_user.add_argument("--name", required=True)
    create_user.add_argument(
        "--role", choices=[role.value for role in UserRole], default=UserRole.ADMIN.value
    )
    create_user.set_defaults(func=cmd_create_user)

    schema = subparsers.add_parser("create-schema", help="Create tables without migrations (SQLite/dev)")
    schema.set_defaults(func=cmd_create_schema)

    args = parser.parse_args()
    setup_logging()
    try:
        init_db()
    except Exception as exc:  # noqa: BLE001
        logger.error("DB error: %s", exc)
        sys.exit(1)
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
