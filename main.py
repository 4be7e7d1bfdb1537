"""Command-line interface for the HabitFlow user registry."""

from __future__ import annotations
import argparse
import asyncio
import json
import logging
import os
import sys
from getpass import getpass
from pathlib import Path
from typing import Iterator, Sequence


def _running_in_virtualenv() -> bool:
    """Return ``True`` when the current interpreter is executing inside a venv."""

    base_prefix = getattr(sys, "base_prefix", sys.prefix)
    return sys.prefix != base_prefix


def _bootstrap_virtualenv() -> None:
    """Re-exec the script using the bundled virtualenv interpreter when available."""

    if _running_in_virtualenv():
        return

    root = Path(__file__).resolve().parent
    venv_dir = root / ".venv"
    if not venv_dir.is_dir():
        return

    candidates = (
        venv_dir / "bin" / "python",
        venv_dir / "bin" / "python3",
        venv_dir / "Scripts" / "python.exe",
        venv_dir / "Scripts" / "python",
    )

    script = str(Path(__file__).resolve())
    for candidate in candidates:
        if candidate.exists():
            os.execv(str(candidate), [str(candidate), script, *sys.argv[1:]])


if __name__ == "__main__":
    _bootstrap_virtualenv()

try:
    import httpx
except ImportError as exc:  # pragma: no cover - exercised in environments missing deps
    raise SystemExit(
        "The 'httpx' package is required. Execute `pip install -e .` to install dependencies."
    ) from exc

from habitflow.backends import open_user_store
from habitflow.config import Settings, load_settings
from habitflow.errors import RegistryError
from habitflow.events import LiveUpdateChannel, USER_REGISTERED
from habitflow.models import encode_password
from habitflow.registry import RegistryService

logger = logging.getLogger("habitflow.main")

_DEFAULT_SERVICE_URL = "http://localhost:4000"


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="HabitFlow user registry utilities")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML settings file (default: HABITFLOW_CONFIG)",
    )
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP registry service")
    serve_parser.add_argument("--host", default=None, help="Bind address (default: HOST or 0.0.0.0)")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Listening port (default: PORT or 4000)",
    )

    subparsers.add_parser("list-users", help="Print every registered account")

    add_parser = subparsers.add_parser("add-user", help="Register a new account")
    add_parser.add_argument("name", help="Display name for the user")
    add_parser.add_argument("email", help="Unique email address for login")
    add_parser.add_argument(
        "--no-password",
        action="store_true",
        help="Create the account without a password",
    )

    delete_parser = subparsers.add_parser("delete-user", help="Delete an account by id")
    delete_parser.add_argument("user_id", help="Identifier of the account to delete")

    watch_parser = subparsers.add_parser(
        "watch", help="Follow live registrations from a running service"
    )
    watch_parser.add_argument(
        "--service-url",
        default=None,
        help=f"Base URL of the registry service (default: {_DEFAULT_SERVICE_URL})",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "list-users", "add-user", "delete-user", "watch"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands and first != "--config":
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _serve(settings: Settings, *, host: str | None, port: int | None) -> None:
    from habitflow.service import create_app
    import uvicorn

    bind_host = host or settings.host
    bind_port = port or settings.port
    logger.info("Starting user registry on http://%s:%s", bind_host, bind_port)

    app = create_app(settings=settings)
    uvicorn.run(app, host=bind_host, port=bind_port, log_level="info")


def _registry(settings: Settings) -> RegistryService:
    store = open_user_store(settings)
    return RegistryService(store, LiveUpdateChannel(), admin_email=settings.admin_email)


async def _list_users(registry: RegistryService) -> None:
    users = await registry.list_users()
    if not users:
        print("No users are currently registered.")
        return

    print(f"{len(users)} user(s) found:")
    print(f"{'ID':<32}  {'Name':<24}  {'Email':<32}  Created")
    print("-" * 110)
    for user in users:
        created = user.created_at.strftime("%Y-%m-%d %H:%M:%S %Z")
        marker = " (admin)" if registry.is_admin(user.email) else ""
        print(f"{user.id:<32}  {user.name:<24}  {user.email:<32}  {created}{marker}")


def _prompt_for_password() -> str | None:
    for _ in range(3):
        password = getpass("Password: ")
        if not password:
            print("Password must not be empty. Please try again.")
            continue
        confirmation = getpass("Confirm password: ")
        if password != confirmation:
            print("Passwords do not match. Please try again.")
            continue
        return password
    return None


async def _add_user(registry: RegistryService, name: str, email: str, *, with_password: bool) -> int:
    encoded: str | None = None
    if with_password:
        password = _prompt_for_password()
        if password is None:
            print("Aborted creating user.")
            return 1
        encoded = encode_password(password)

    try:
        user = await registry.register(name, email, encoded)
    except RegistryError as exc:
        print(f"Failed to create user: {exc.message}", file=sys.stderr)
        return 1

    print(f"Created user {user.id}: {user.name} <{user.email}>")
    return 0


async def _delete_user(registry: RegistryService, user_id: str) -> int:
    try:
        await registry.remove_user(user_id)
    except RegistryError as exc:
        print(f"Failed to delete user {user_id}: {exc.message}", file=sys.stderr)
        return 1
    print(f"Deleted user {user_id}.")
    return 0


async def _run_store_command(args: argparse.Namespace, registry: RegistryService) -> int:
    try:
        if args.command == "list-users":
            await _list_users(registry)
            return 0
        if args.command == "add-user":
            return await _add_user(
                registry, args.name, args.email, with_password=not args.no_password
            )
        if args.command == "delete-user":
            return await _delete_user(registry, args.user_id)
        return 0
    finally:
        await registry.store.close()


def _iter_sse_events(lines: Iterator[str]) -> Iterator[tuple[str, str]]:
    """Group ``text/event-stream`` lines into ``(event, data)`` pairs."""

    event = "message"
    data: list[str] = []
    for line in lines:
        if not line:
            if data:
                yield event, "\n".join(data)
            event, data = "message", []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        value = value[1:] if value.startswith(" ") else value
        if field == "event":
            event = value
        elif field == "data":
            data.append(value)


def _watch(service_url: str | None) -> int:
    base_url = service_url or _DEFAULT_SERVICE_URL
    endpoint = base_url.rstrip("/") + "/events"
    print(f"Following registrations from {endpoint} (Ctrl+C to stop)...")

    try:
        with httpx.stream("GET", endpoint, timeout=httpx.Timeout(10.0, read=None)) as response:
            if response.status_code != 200:
                print(f"Service responded with {response.status_code}.")
                return 1
            for event, data in _iter_sse_events(response.iter_lines()):
                if event != USER_REGISTERED:
                    continue
                try:
                    user = json.loads(data)
                except ValueError:
                    print("Service sent an unexpected event payload.")
                    continue
                print(f"New user {user.get('id')}: {user.get('name')} <{user.get('email')}>")
    except httpx.HTTPError as exc:
        print(f"Failed to contact registry service: {exc}")
        return 1
    except KeyboardInterrupt:
        print("\nStopped following registrations.")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    settings = load_settings(Path(args.config) if args.config else None)

    if args.command == "serve":
        _serve(settings, host=getattr(args, "host", None), port=getattr(args, "port", None))
        return 0
    if args.command == "watch":
        return _watch(args.service_url)

    return asyncio.run(_run_store_command(args, _registry(settings)))


if __name__ == "__main__":
    raise SystemExit(main())
