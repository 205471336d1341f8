"""Command line entry point.

Usage:
    pokedex-gateway serve                         # 0.0.0.0:5555, errors only
    pokedex-gateway serve --port 8080 --log-level 4

uvicorn owns the event loop and shuts the server down gracefully on
SIGINT/SIGTERM.
"""

import argparse
import sys

import uvicorn

from shared.config import settings
from shared.logging import CLI_LEVELS, level_from_cli

LOG_LEVEL_HELP = "0 (none), 1 (error), 2 (warn), 3 (info), 4 (debug)"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pokedex-gateway",
        description="Pokédex gateway: species lookups from the pokeapi, with translations",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP server")
    serve.add_argument(
        "--host",
        default=settings.host,
        help=f"Interface to bind (default: {settings.host})",
    )
    serve.add_argument(
        "-p",
        "--port",
        type=int,
        default=settings.port,
        help=f"Port to listen on (default: {settings.port})",
    )
    serve.add_argument(
        "-l",
        "--log-level",
        type=int,
        choices=sorted(CLI_LEVELS),
        default=settings.log_level,
        help=f"Log verbosity: {LOG_LEVEL_HELP} (default: {settings.log_level})",
    )
    return parser


def serve(args: argparse.Namespace) -> None:
    # imported here so --help works without building the app
    from main import create_app

    config = settings.model_copy(
        update={"host": args.host, "port": args.port, "log_level": args.log_level}
    )
    uvicorn.run(
        create_app(config),
        host=config.host,
        port=config.port,
        log_level=level_from_cli(config.log_level),
    )


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    if args.command == "serve":
        serve(args)


if __name__ == "__main__":
    main(sys.argv[1:])
