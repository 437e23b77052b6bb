"""
Common CLI utilities and decorators for consistent command behavior.
"""

import json
import logging
import sys
import click
from functools import wraps
from typing import Any, Generator
from .exit_codes import (
    SUCCESS, INTERRUPTED,
    get_exit_code_for_exception, CommandError
)

logger = logging.getLogger("pocketci")


def standard_command(func):
    """
    Decorator that provides standard CLI behavior:
    - Clean JSON output on stdout (one object per line)
    - Automatic --quiet/-q handling to suppress data output
    - Consistent error handling and exit codes

    The wrapped command returns a dict, a list or a generator of dicts to
    be printed, or None if it handled its own output.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        quiet = kwargs.get('quiet', False)

        try:
            result = func(*args, **kwargs)

            if quiet:
                # In quiet mode, consume the generator but don't output
                if isinstance(result, Generator):
                    for _ in result:
                        pass
            elif result is not None:
                output_result(result)

            sys.exit(SUCCESS)

        except KeyboardInterrupt:
            logger.error("Interrupted by user")
            sys.exit(INTERRUPTED)
        except click.ClickException:
            # Click exceptions already have their exit code
            raise
        except CommandError as e:
            logger.error(str(e))
            _exit_with_error(e, e.exit_code, quiet)
        except Exception as e:
            logger.error(f"Command failed: {e}")
            _exit_with_error(e, get_exit_code_for_exception(e), quiet)

    return wrapper


def _exit_with_error(error: Exception, exit_code: int, quiet: bool) -> None:
    """Print the error as a JSON object on stdout (unless quiet) and exit."""
    if not quiet:
        print(json.dumps({
            "error": str(error),
            "type": type(error).__name__,
            "exit_code": exit_code,
        }, ensure_ascii=False), flush=True)
    sys.exit(exit_code)


def output_result(result: Any):
    """
    Standard output handler for results.

    Args:
        result: The result to output (dict, list, or generator)
    """
    if isinstance(result, (Generator, list, tuple)):
        for item in result:
            print(json.dumps(item, ensure_ascii=False), flush=True)
    elif isinstance(result, dict):
        print(json.dumps(result, ensure_ascii=False), flush=True)
    else:
        print(result, flush=True)


# Standard options that many commands share
common_options = {
    'quiet': click.option('-q', '--quiet', is_flag=True,
                          help='Suppress data output, show only log messages'),
    'pretty': click.option('--pretty', is_flag=True,
                           help='Display as a formatted table instead of JSONL'),
}


def add_common_options(*option_names):
    """
    Decorator to add common options to a command.

    Example:
        @add_common_options('quiet', 'pretty')
        def my_command(quiet, pretty):
            ...
    """
    def decorator(func):
        for name in reversed(option_names):
            if name in common_options:
                func = common_options[name](func)
        return func
    return decorator


def load_command_config(ctx: click.Context, validate: bool = True) -> dict:
    """
    Load configuration for a command, honoring the global ``--config``.

    Raises:
        ConfigError: if the file cannot be read, or is invalid and
            ``validate`` is set
    """
    from .config import configure_logging, load_config, validate_config

    config_path = (ctx.obj or {}).get('config_path')
    config = load_config(config_path)
    configure_logging(config)
    if validate:
        validate_config(config)
    return config
