"""Command-line entry point: `geph-autotest`."""

import argparse
import getpass
from collections.abc import Sequence

from pydantic import ValidationError

from .config import DEFAULT_CONFIG_URL, ClientSettings, Credentials
from .exceptions import AutotestError
from .logging import get_logger, setup_logging
from .probe import ProbeLoop

logger = get_logger(__name__)

EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="geph-autotest",
        description="Repeatedly connect geph4-client, time downloads through "
        "the tunnel and upload the measurements.",
    )
    parser.add_argument("--username", help="Geph account (prompted if omitted)")
    parser.add_argument("--password", help="Geph password (prompted if omitted)")
    parser.add_argument(
        "--binary", default="geph4-client", help="Path to geph4-client (default: %(default)s)"
    )
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_URL,
        help="Test plan URL (fetched through the tunnel) or local TOML file",
    )
    parser.add_argument(
        "--max-retries",
        type=int,
        default=None,
        help="Give up after this many early exits of the client (default: never)",
    )
    parser.add_argument(
        "--no-recursive",
        dest="recursive",
        action="store_false",
        help="Do not set GEPH_RECURSIVE=1 for the client",
    )
    parser.add_argument("--once", action="store_true", help="Run a single cycle")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    parser.add_argument("--json-logs", action="store_true", help="Log as JSON lines")
    parser.add_argument("--log-file", default=None, help="Also write logs here")
    return parser


def prompt_credentials(username: str | None, password: str | None) -> Credentials:
    """Fill in whatever was not given on the command line interactively."""
    if username is None:
        username = input("Enter your username: ").strip()
    if password is None:
        password = getpass.getpass("Enter your password: ")
    return Credentials(username=username, password=password)


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        setup_logging(level=args.log_level, json_format=args.json_logs, log_file=args.log_file)
        credentials = prompt_credentials(args.username, args.password)
        settings = ClientSettings(
            binary_path=args.binary,
            config_source=args.config,
            max_retries=args.max_retries,
            recursive=args.recursive,
        )
    except (AutotestError, ValidationError) as e:
        logger.error("Invalid arguments", error=str(e))
        return EXIT_FAILURE
    except EOFError:
        logger.error("No credentials given, stdin is closed")
        return EXIT_FAILURE
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting")
        return EXIT_INTERRUPTED

    loop = ProbeLoop(settings, credentials)
    try:
        loop.run_forever(max_cycles=1 if args.once else None)
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting")
        return EXIT_INTERRUPTED
    except AutotestError as e:
        logger.error("Fatal error", error=str(e), error_type=type(e).__name__)
        return EXIT_FAILURE
    return 0
