"""
Handles the 'retry' command: manual override for failed builds.
"""

import click

from ..cli_utils import standard_command, add_common_options, load_command_config
from ..database import get_db_path
from ..domain.target import BuildTarget
from ..exit_codes import CommandError, USAGE_ERROR, NoTargetsFoundError
from ..services.build_tracker import BuildTracker


@click.command(name='retry')
@click.argument('targets', nargs=-1, metavar='[REPO@CODENAME/POCKET]...')
@add_common_options('quiet')
@click.pass_context
@standard_command
def retry_handler(ctx, targets, quiet, **kwargs):
    """Reset failed builds so the next sync builds them again.

    Resets the attempt count and cool-down of the given targets, or of
    every failed target when none is given.

    \b
    Examples:
        pocketci retry                         # Every failed target
        pocketci retry hello@jammy/main        # One target
    """
    config = load_command_config(ctx, validate=False)
    tracker = BuildTracker(config, get_db_path(config))

    if not targets:
        return {'reset': tracker.override()}

    try:
        parsed = [BuildTarget.parse(text) for text in targets]
    except ValueError as e:
        raise CommandError(str(e), USAGE_ERROR)

    total = 0
    for target in parsed:
        count = tracker.override(target)
        if count == 0:
            raise NoTargetsFoundError(f"No failed build for {target}")
        total += count
    return {'reset': total, 'targets': [str(t) for t in parsed]}
