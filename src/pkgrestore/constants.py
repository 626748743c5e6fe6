"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    RESTORE_FAILED = 2
    TIMEOUT = 3
    INVALID_REFERENCE = 4


class ErrorReportType(Enum):
    """Severity of a message reported by the resolver engine."""

    WARNING = "warning"
    ERROR = "error"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    PACKAGE_MANAGER_KEY = "nuget"
    REFERENCE_PREFIX = "nuget:"
    RESTORE_TFM = "netcoreapp3.1"
    SCRIPT_EXTENSION = ".fsx"
    WILDCARD_VERSION = "*"

    RESTORE_POLL_INTERVAL_SEC = 0.5
    RESTORE_TIMEOUT_SEC = 90

    DOTNET_EXECUTABLE = "dotnet"
    ASSETS_FILE = "project.assets.json"

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    LOG_LEVEL_ENV = "PKGRESTORE_LOG_LEVEL"
    ENV_TIMEOUT = "PKGRESTORE_TIMEOUT"
    ENV_POLL_INTERVAL = "PKGRESTORE_POLL_INTERVAL"
    ENV_DOTNET = "PKGRESTORE_DOTNET"
