"""Command-line entry point: restore packages once with console progress."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Any, Dict, List, Optional, TextIO

from .common.logging_utils import configure_logging
from .config import ConfigError, load_settings
from .constants import Constants, ExitCodes
from .context import RestoreContext
from .directives import add_package_reference, restore
from .progress import ErrorProduced, PackageAdded, RestoreEvent, RestoreTimeoutError
from .resolution.dotnet import DotnetCliEngine

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parses the arguments passed to the program."""
    parser = argparse.ArgumentParser(
        prog="pkgrestore",
        description="Restore NuGet packages for a session and report progress.",
    )
    parser.add_argument("PACKAGES",
                        help="Package as Name or Name,Version (nuget: prefix optional)",
                        nargs="+")
    parser.add_argument("-s", "--source",
                        dest="SOURCES",
                        help="Additional restore source (repeatable)",
                        action="append",
                        default=[])
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="YAML configuration file",
                        action="store",
                        type=str)
    parser.add_argument("--timeout",
                        dest="TIMEOUT",
                        help=f"Seconds to wait for the restore (default: {Constants.RESTORE_TIMEOUT_SEC})",
                        action="store",
                        type=float)
    parser.add_argument("--poll-interval",
                        dest="POLL_INTERVAL",
                        help="Seconds between progress updates",
                        action="store",
                        type=float)
    parser.add_argument("--dotnet",
                        dest="DOTNET_PATH",
                        help="Path to the dotnet executable",
                        action="store",
                        type=str)
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                        default="INFO")
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)
    return parser.parse_args(argv)


def _setup_logging(args: Any) -> None:
    configure_logging(getattr(args, "LOG_LEVEL", None))

    log_file = getattr(args, "LOG_FILE", None)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        logging.getLogger().addHandler(file_handler)
        logger.info("Logging to file: %s", log_file)


class ConsoleReporter:
    """Writes restore progress to a terminal stream.

    Dot-only progress ticks are not echoed; every other update is written as a line.
    """

    def __init__(self, out: Optional[TextIO] = None, err: Optional[TextIO] = None):
        self._out = out or sys.stdout
        self._err = err or sys.stderr
        self._messages: Dict[int, str] = {}

    def display(self, message: str) -> int:
        handle = len(self._messages)
        self._messages[handle] = message
        self._out.write(message + "\n")
        return handle

    def update(self, handle: int, message: str) -> None:
        previous = self._messages.get(handle, "")
        self._messages[handle] = message
        if previous and message.startswith(previous) and not message[len(previous):].strip("."):
            return
        self._out.write(message + "\n")

    def publish(self, event: RestoreEvent) -> None:
        if isinstance(event, ErrorProduced):
            self._err.write(event.message + "\n")
        elif isinstance(event, PackageAdded):
            for path in event.package.assembly_paths:
                logger.debug("%s: %s", event.package.package_name, path)


def _as_token(package: str) -> str:
    if package.lower().startswith(Constants.REFERENCE_PREFIX):
        return package
    return Constants.REFERENCE_PREFIX + package


def main(argv: Optional[List[str]] = None) -> int:
    """Run one restore for the packages named on the command line."""
    args = parse_args(argv)
    _setup_logging(args)

    try:
        settings = load_settings(args.CONFIG).apply_args(args)
    except ConfigError as exc:
        logger.error("%s", exc)
        return ExitCodes.FILE_ERROR.value

    reporter = ConsoleReporter()
    engine_timeout = settings.timeout

    def engine_factory() -> DotnetCliEngine:
        return DotnetCliEngine(settings.dotnet_path, timeout=engine_timeout)

    with RestoreContext(engine_factory, settings) as context:
        for package in args.PACKAGES:
            if add_package_reference(context, _as_token(package), reporter) is None:
                return ExitCodes.INVALID_REFERENCE.value

        try:
            result = asyncio.run(restore(context, reporter))
        except RestoreTimeoutError as exc:
            logger.error("%s", exc)
            return ExitCodes.TIMEOUT.value

    if not result.succeeded:
        return ExitCodes.RESTORE_FAILED.value
    return ExitCodes.SUCCESS.value


if __name__ == "__main__":
    sys.exit(main())
