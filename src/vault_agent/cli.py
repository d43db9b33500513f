"""
Command-line interface.

    vault-agent --uri https://vault:8200 --token ... read secret/app
    vault-agent --uri mock:fixtures/dev.yaml list secret

Results are printed to stdout as JSON. Logs go to stderr.
"""

import argparse
import asyncio
import json
import sys
from typing import Any, Optional

from loguru import logger

from . import __version__
from .client import VaultClient, new_client
from .config import Config
from .errors import ValidationError, VaultError
from .transport import MockTransport
from .utils import mask_token

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> | <level>{message}</level>"
)


def configure_logging(level: str) -> None:
    """Route loguru output to stderr at ``level``."""
    logger.remove()
    logger.add(sys.stderr, format=LOG_FORMAT, level=level.upper())


def parse_pairs(pairs: list[str]) -> dict[str, str]:
    """
    Turn ["k=v", ...] into a dict.

    Raises:
        ValidationError: If an item has no "=" or an empty key
    """
    data = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValidationError(f"expected key=value, got {pair!r}")
        data[key] = value
    return data


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vault-agent", description="Talk to a Vault-compatible secret store"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--uri", default=Config.VAULT_ADDR, help="Server URI (http, https or mock scheme)"
    )
    parser.add_argument("--token", default=Config.VAULT_TOKEN, help="Token to authenticate with")
    parser.add_argument("--log-level", default=Config.LOG_LEVEL, help="Log level for stderr")

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("status", help="Show server health")

    list_cmd = commands.add_parser("list", help="List keys under a path")
    list_cmd.add_argument("path")

    read_cmd = commands.add_parser("read", help="Read a secret")
    read_cmd.add_argument("path")

    write_cmd = commands.add_parser("write", help="Write key=value pairs to a path")
    write_cmd.add_argument("path")
    write_cmd.add_argument("pairs", nargs="+", metavar="key=value")

    delete_cmd = commands.add_parser("delete", help="Delete a secret")
    delete_cmd.add_argument("path")

    lookup_cmd = commands.add_parser("token-lookup", help="Look up the active token")
    lookup_cmd.add_argument("--accessor", help="Look up by accessor instead")

    wrap_cmd = commands.add_parser("wrap", help="Wrap key=value pairs in a single-use token")
    wrap_cmd.add_argument("pairs", nargs="+", metavar="key=value")
    wrap_cmd.add_argument("--ttl", help="Wrap TTL (e.g. 300, 5m)")

    unwrap_cmd = commands.add_parser("unwrap", help="Unwrap a wrapping token")
    unwrap_cmd.add_argument("wrap_token")

    return parser


async def _login(client: VaultClient, token: Optional[str]) -> None:
    if not token and isinstance(client.transport, MockTransport):
        token = client.transport.root_token
    if not token:
        raise ValidationError("no token given (use --token or VAULT_TOKEN)")
    logger.debug(f"Authenticating with token {mask_token(token)}")
    await client.authenticate("token", token)


async def execute(args: argparse.Namespace) -> Any:
    """Run one sub-command and return its JSON-serializable result."""
    async with new_client(args.uri) as client:
        if args.command == "status":
            return await client.status()

        await _login(client, args.token)

        if args.command == "list":
            return await client.list_secrets(args.path)
        if args.command == "read":
            return (await client.read_secret(args.path)).to_dict()
        if args.command == "write":
            return {"ok": await client.write_secret(args.path, parse_pairs(args.pairs))}
        if args.command == "delete":
            return {"ok": await client.delete_secret(args.path)}
        if args.command == "token-lookup":
            if args.accessor:
                return (await client.lookup_accessor(args.accessor)).to_dict()
            return (await client.lookup_token()).to_dict()
        if args.command == "wrap":
            return (await client.wrap(parse_pairs(args.pairs), args.ttl)).to_dict()
        if args.command == "unwrap":
            return await client.unwrap(args.wrap_token)

    raise ValidationError(f"unknown command {args.command!r}")


def run(argv: Optional[list[str]] = None) -> int:
    """
    Parse ``argv``, run the command and print the result.

    Returns:
        Process exit status (0 on success, 1 on any client error)
    """
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    try:
        Config.validate()
        result = asyncio.run(execute(args))
    except VaultError as e:
        logger.error(f"{args.command} failed: {e.message}")
        print(json.dumps({"error": e.to_dict()}), file=sys.stdout)
        return 1
    except (ValueError, FileNotFoundError) as e:
        logger.error(f"{args.command} failed: {e}")
        print(json.dumps({"error": {"kind": "validation", "message": str(e)}}), file=sys.stdout)
        return 1

    print(json.dumps(result, indent=2, sort_keys=True, default=str))
    return 0


def main() -> None:
    """Console-script entry point."""
    try:
        sys.exit(run())
    except KeyboardInterrupt:
        logger.info("Interrupted")
        sys.exit(130)


if __name__ == "__main__":
    main()
