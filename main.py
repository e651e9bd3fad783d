"""Command-line interface for the Chirpy service."""

from __future__ import annotations
import argparse
import logging
import sys
from getpass import getpass
from pathlib import Path
from typing import Sequence

from chirpy.application import Services, build_services
from chirpy.config import AppConfig, load_config
from chirpy.errors import ChirpyError

logger = logging.getLogger("chirpy.main")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Chirpy service utilities")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML configuration file (default: CHIRPY_CONFIG)",
    )
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Create the record store if it does not exist")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP service")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address for the API")
    serve_parser.add_argument("--port", type=int, default=8080, help="Port for the API (default: 8080)")

    create_user_parser = subparsers.add_parser("create-user", help="Register a user interactively")
    create_user_parser.add_argument("email", help="Unique email address for login")

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "create-user"}

    # Global options come before the subcommand; serve is implied after them.
    split = 0
    while split < len(args_list):
        if args_list[split] == "--config":
            split += 2
        elif args_list[split].startswith("--config="):
            split += 1
        else:
            break
    global_args, rest = args_list[:split], args_list[split:]

    if not rest:
        rest = ["serve"]
    elif rest[0] not in known_commands and not any(flag in rest for flag in ("-h", "--help")):
        rest = ["serve", *rest]
    args_list = [*global_args, *rest]

    args = parser.parse_args(args_list)
    if args.command == "serve" and not hasattr(args, "host"):
        args.host = "0.0.0.0"
        args.port = 8080
    return args


def _load_config(config_path: str | None) -> AppConfig:
    try:
        return load_config(Path(config_path) if config_path else None)
    except ValueError as exc:
        raise SystemExit(f"Invalid configuration: {exc}") from exc


def _serve(services: Services, *, host: str, port: int) -> None:
    from chirpy.api import create_app
    import uvicorn

    logger.info("Starting Chirpy API on http://%s:%s", host, port)
    uvicorn.run(create_app(services), host=host, port=port, log_level="info")


def _prompt_for_password(services: Services) -> str | None:
    for _ in range(3):
        password = getpass("Password: ")
        try:
            services.hasher.check_strength(password)
        except ChirpyError as exc:
            print(exc.message)
            continue
        confirmation = getpass("Confirm password: ")
        if password != confirmation:
            print("Passwords do not match. Please try again.")
            continue
        return password
    return None


def _create_user(services: Services, email: str) -> int:
    password = _prompt_for_password(services)
    if password is None:
        print("Aborted creating user.")
        return 1

    try:
        user = services.users.create(email, services.hasher.hash(password))
    except ChirpyError as exc:
        print(f"Failed to create user: {exc.message}")
        return 1

    print(f"Created user #{user.id}: {user.email}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    args = _parse_args(argv)
    config = _load_config(args.config)
    services = build_services(config)
    logger.info("Record store ready at %s", services.store.path)

    if args.command == "serve":
        _serve(services, host=args.host, port=args.port)
    elif args.command == "create-user":
        return _create_user(services, args.email)
    elif args.command == "init-db":
        print("Record store initialisation complete.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
