"""Summary: Command-line interface for TaskFlow.

Importance: Runs the API server and handles local administration such as issuing API keys.
Alternatives: Use a CLI framework like Typer or Click.
"""

from __future__ import annotations

import argparse
import logging

import uvicorn

from taskflow.app import build_services
from taskflow.config import AppConfig


def build_parser() -> argparse.ArgumentParser:
    """Summary: Build the CLI argument parser.

    Importance: Defines supported commands for local operation.
    Alternatives: Expose administration only through HTTP endpoints.
    """

    parser = argparse.ArgumentParser(description="TaskFlow CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", type=str, default=None)
    serve.add_argument("--port", type=int, default=None)

    create_key = subparsers.add_parser("create-api-key", help="Issue a bearer token for a user")
    create_key.add_argument("uid", type=str)
    create_key.add_argument("--label", type=str, default=None)

    revoke_key = subparsers.add_parser("revoke-api-key", help="Revoke a bearer token")
    revoke_key.add_argument("uid", type=str)
    revoke_key.add_argument("key_id", type=int)

    list_keys = subparsers.add_parser("list-api-keys", help="List a user's bearer tokens")
    list_keys.add_argument("uid", type=str)

    list_tasks = subparsers.add_parser("list-tasks", help="List a user's tasks")
    list_tasks.add_argument("uid", type=str)

    status = subparsers.add_parser("calendar-status", help="Show whether a user connected a calendar")
    status.add_argument("uid", type=str)

    authorize = subparsers.add_parser("authorize-url", help="Print a calendar consent URL for a user")
    authorize.add_argument("uid", type=str)
    authorize.add_argument("--return-to", type=str, default=None)
    return parser


def run_cli(argv: list[str] | None = None) -> None:
    """Summary: Execute CLI commands based on arguments.

    Importance: Gives operators a way to bootstrap users without the web client.
    Alternatives: Invoke services via the HTTP API.
    """

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    parser = build_parser()
    args = parser.parse_args(argv)
    config = AppConfig.from_env()

    if args.command == "serve":
        uvicorn.run(
            "taskflow.api:get_app",
            factory=True,
            host=args.host or config.api_host,
            port=args.port or config.api_port,
        )
        return

    services = build_services(config)
    if args.command == "create-api-key":
        key_id, token = services.identity.create_api_key(args.uid, label=args.label)
        print(f"Created API key {key_id} for {args.uid}.")
        print(f"Token (shown once): {token}")
        return
    if args.command == "revoke-api-key":
        if services.identity.revoke_api_key(args.uid, args.key_id):
            print(f"Revoked API key {args.key_id}.")
        else:
            print(f"No API key {args.key_id} for {args.uid}.")
        return
    if args.command == "list-api-keys":
        for key in services.identity.list_api_keys(args.uid):
            print(f"{key.id}: {key.label or '-'} (created {key.created_at})")
        return
    if args.command == "list-tasks":
        for task in services.tasks.list_tasks(args.uid):
            synced = f" [event {task.calendar_event_id}]" if task.calendar_event_id else ""
            print(f"{task.id}: {task.title} due {task.due_date_time or '-'}{synced}")
        return
    if args.command == "calendar-status":
        connected = services.calendar.is_connected(args.uid)
        print("connected" if connected else "not connected")
        return
    if args.command == "authorize-url":
        print(services.calendar.authorization_url(args.uid, args.return_to))
        return


if __name__ == "__main__":
    run_cli()
