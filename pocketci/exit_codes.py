"""
Exit codes for pocketci commands.

A pass that attempted every stage exits 0 even when single repositories or
builds failed; those are reported in the summary and retried next pass.
Non-zero codes mean the pass itself could not run:

- 66 (EX_NOINPUT): configuration missing or invalid
- 70 (EX_SOFTWARE): the build state database failed
- 1: repository synchronization could not proceed at all
- 130: interrupted by SIGINT/SIGTERM
"""
import sqlite3

from .errors import ConfigError, RegistryError, TrackerError

SUCCESS = 0
GENERAL_ERROR = 1
USAGE_ERROR = 2          # Bad command line arguments (e.g. malformed target)
CONFIG_ERROR = 66
PERMISSION_ERROR = 67
STATE_ERROR = 70
INTERRUPTED = 130

# Checked in order; the first matching class decides
EXCEPTION_EXIT_CODES = (
    (ConfigError, CONFIG_ERROR),
    (TrackerError, STATE_ERROR),
    (sqlite3.Error, STATE_ERROR),
    (RegistryError, GENERAL_ERROR),
    (PermissionError, PERMISSION_ERROR),
    (KeyboardInterrupt, INTERRUPTED),
)


def get_exit_code_for_exception(exc: BaseException) -> int:
    """Map an exception escaping a command to its exit code."""
    for exc_type, code in EXCEPTION_EXIT_CODES:
        if isinstance(exc, exc_type):
            return code
    return GENERAL_ERROR


class CommandError(Exception):
    """
    Exception that commands can raise to indicate specific exit codes.
    """
    def __init__(self, message: str, exit_code: int = GENERAL_ERROR):
        super().__init__(message)
        self.exit_code = exit_code


class NoTargetsFoundError(CommandError):
    """Raised when a target filter matches nothing."""
    def __init__(self, message: str = "No build targets found"):
        super().__init__(message, GENERAL_ERROR)
