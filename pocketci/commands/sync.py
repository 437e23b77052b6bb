"""
Handles the 'sync' command: one complete pass of the pipeline.

Exit codes:
- 0: every stage was attempted (individual repository or build failures
  are reported in the summary and retried next pass)
- 66: configuration missing or invalid
- 70: the build state database failed
- 1: repository synchronization could not proceed at all
- 130: interrupted; running builds finished and were recorded
"""

import signal
import threading
from contextlib import contextmanager

import click

from ..cli_utils import standard_command, add_common_options, load_command_config, output_result
from ..exit_codes import CommandError, INTERRUPTED
from ..render import render_summary
from ..services.pipeline import Pipeline


@contextmanager
def shutdown_on_signals(event: threading.Event):
    """Set ``event`` on SIGINT/SIGTERM instead of raising, for the duration."""
    def handle(signum, frame):
        event.set()

    previous = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            previous[signum] = signal.signal(signum, handle)
        except ValueError:
            # Not the main thread; rely on the caller's handling
            pass
    try:
        yield event
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


@click.command(name='sync')
@click.option('--retry-failed', is_flag=True, envvar='POCKETCI_RETRY',
              help='Reset failed builds before dispatching (env: POCKETCI_RETRY=1)')
@click.option('--no-build', is_flag=True, help='Sync, snapshot and record bindings without building')
@add_common_options('pretty', 'quiet')
@click.pass_context
@standard_command
def sync_handler(ctx, retry_failed, no_build, pretty, quiet, **kwargs):
    """Run one sync and build pass.

    \b
    Mirrors every organization repository, snapshots new branch heads,
    assigns them to codename pockets and builds whatever is not built yet.
    Prints a JSON summary of the pass.

    Examples:

    \b
        pocketci sync                     # Full pass
        pocketci sync --no-build          # Only record what needs building
        pocketci sync --retry-failed      # Give failed builds another chance
        pocketci sync --pretty            # Summary as a table
    """
    config = load_command_config(ctx)

    with shutdown_on_signals(threading.Event()) as shutdown:
        summary = Pipeline(config, shutdown=shutdown).run(
            retry_failed=retry_failed,
            build=not no_build,
        )

    result = summary.to_dict()
    if pretty and not quiet:
        render_summary(result)
        result = None

    if summary.interrupted:
        if result is not None and not quiet:
            output_result(result)
        raise CommandError("interrupted, in-flight builds were recorded", INTERRUPTED)

    return result
