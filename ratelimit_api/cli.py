"""
Rate limit decision service command line interface.

Usage:
    ratelimit-api --help
    ratelimit-api serve --port 8080
    ratelimit-api serve --redis-host localhost --redis-db 1
    ratelimit-api serve --store memory
    ratelimit-api config
"""

from __future__ import annotations

import argparse
import json
import os
import sys

# Flag name -> environment variable read by ratelimit_api.core.config
_ENV_OVERRIDES = {
    "redis_host": "REDIS_HOST",
    "redis_port": "REDIS_PORT",
    "redis_password": "REDIS_PASSWORD",
    "redis_db": "REDIS_DB",
    "store": "APP_STORE_BACKEND",
    "log_level": "LOG_LEVEL",
}


def _apply_overrides(args) -> None:
    """Export CLI flags as environment variables before settings are loaded."""
    for attr, env_name in _ENV_OVERRIDES.items():
        value = getattr(args, attr, None)
        if value is not None:
            os.environ[env_name] = str(value)


def cmd_serve(args) -> None:
    """Start the HTTP server."""
    _apply_overrides(args)

    import uvicorn

    from .core.app_factory import create_app

    app = create_app()
    print(f"Starting rate limit decision API on {args.host}:{args.port}")
    # log_config=None keeps the JSON logging installed by create_app
    uvicorn.run(app, host=args.host, port=args.port, log_config=None)


def cmd_config(args) -> None:
    """Print the effective configuration with secrets masked."""
    _apply_overrides(args)

    from .core.config import settings

    data = settings.model_dump()
    if data["redis"].get("password"):
        data["redis"]["password"] = "[REDACTED]"
    print(json.dumps(data, indent=2, default=str))


def _add_store_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--store", choices=["redis", "memory"], help="State store backend")
    parser.add_argument("--redis-host", dest="redis_host", help="Redis host")
    parser.add_argument("--redis-port", dest="redis_port", type=int, help="Redis port")
    parser.add_argument("--redis-password", dest="redis_password", help="Redis password")
    parser.add_argument("--redis-db", dest="redis_db", type=int, help="Redis logical database index")
    parser.add_argument("--log-level", dest="log_level", help="Root log level")


def build_parser() -> argparse.ArgumentParser:
    from . import __version__

    parser = argparse.ArgumentParser(
        prog="ratelimit-api",
        description="Redis-backed rate limit decision service",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    serve = subparsers.add_parser("serve", help="Start the HTTP server")
    serve.add_argument("--host", default="0.0.0.0", help="Host to bind")
    serve.add_argument("-p", "--port", type=int, default=8080, help="Port to bind")
    _add_store_flags(serve)
    serve.set_defaults(func=cmd_serve)

    config = subparsers.add_parser("config", help="Show effective configuration")
    _add_store_flags(config)
    config.set_defaults(func=cmd_config)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == "__main__":
    main()
