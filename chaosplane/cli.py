"""
Command-line entry point.

    chaosplane --http :9000 --grpc :9001 --auth-token s3cret

Both listeners run in one process on one event loop and share the service
registry. A datastore that cannot be migrated aborts startup with status 1.
"""

import argparse
import asyncio
import sys
from typing import Optional, Sequence

import structlog
import uvicorn

from chaosplane.config import Settings, split_addr
from chaosplane.errors import MigrationError
from chaosplane.log import configure_logging
from chaosplane.main import create_app
from chaosplane.rpc.server import create_rpc_app
from chaosplane.services.loader import BundleError
from chaosplane.services.registry import ServiceRegistry

logger = structlog.get_logger(__name__)

DEFAULT_HTTP_PORT = 9000
DEFAULT_RPC_PORT = 9001


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chaosplane", description="Chaos-engineering control plane")
    parser.add_argument("--http", default=settings.http_addr, help="REST listen address (default %(default)s)")
    parser.add_argument("--grpc", default=settings.rpc_addr, help="RPC listen address (default %(default)s)")
    parser.add_argument("--auth-token", default=settings.auth_token, help="static bearer token; empty disables auth")
    parser.add_argument("--log-level", default=settings.log_level, help="log level (default %(default)s)")
    return parser


def apply_args(settings: Settings, args: argparse.Namespace) -> Settings:
    return settings.model_copy(
        update={
            "http_addr": args.http,
            "rpc_addr": args.grpc,
            "auth_token": args.auth_token,
            "log_level": args.log_level,
        }
    )


def _server(app, addr: str, default_port: int, log_level: str) -> uvicorn.Server:
    host, port = split_addr(addr, default_port)
    config = uvicorn.Config(app, host=host, port=port, log_level=log_level.lower(), lifespan="on")
    return uvicorn.Server(config)


async def serve(settings: Settings) -> int:
    services = ServiceRegistry(settings)
    try:
        await services.start()
    except MigrationError as exc:
        logger.critical("schema_migration_failed", error=str(exc))
        return 1
    except BundleError as exc:
        logger.critical("executor_bundle_invalid", error=str(exc))
        await services.stop()
        return 1

    servers = [
        _server(create_app(services, settings), settings.http_addr, DEFAULT_HTTP_PORT, settings.log_level),
        _server(create_rpc_app(services, settings), settings.rpc_addr, DEFAULT_RPC_PORT, settings.log_level),
    ]
    logger.info("chaosplane_listening", http=settings.http_addr, rpc=settings.rpc_addr)
    try:
        await asyncio.gather(*(server.serve() for server in servers))
    finally:
        await services.stop()
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    settings = Settings()
    args = build_parser(settings).parse_args(argv)
    settings = apply_args(settings, args)
    configure_logging(settings.log_level, settings.log_format)
    return asyncio.run(serve(settings))


if __name__ == "__main__":
    sys.exit(main())
