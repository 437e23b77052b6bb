"""
Handles the 'status' command for displaying build state.

This command follows our design principles:
- Default output is JSONL streaming
- --pretty for a rich table
- --quiet/-q to suppress JSON output
- Thin CLI layer that connects the tracker to output
"""

import click

from ..cli_utils import standard_command, add_common_options, load_command_config
from ..database import Database, get_database_info, get_db_path, get_sync_errors
from ..domain.target import BuildTarget
from ..exit_codes import CommandError, USAGE_ERROR, NoTargetsFoundError
from ..render import render_status_table, render_table
from ..services.build_tracker import BuildTracker


@click.command(name='status')
@click.option('--attention', is_flag=True, help='Only targets whose builds failed too often')
@click.option('--history', 'history_target', metavar='REPO@CODENAME/POCKET',
              help='Every record of one target, newest first')
@click.option('--errors', is_flag=True, help='Repositories that failed to sync on the last pass')
@click.option('--info', is_flag=True, help='State database location, size and row counts')
@add_common_options('pretty', 'quiet')
@click.pass_context
@standard_command
def status_handler(ctx, attention, history_target, errors, info, pretty, quiet, **kwargs):
    """Show build state.

    \b
    By default lists the current record of every build target.

    Examples:

    \b
        pocketci status                               # All targets (JSONL)
        pocketci status --pretty                      # As a table
        pocketci status --attention                   # Failed past max attempts
        pocketci status --history hello@jammy/main    # One target over time
        pocketci status --errors                      # Sync failures
        pocketci status --info                        # State database details
    """
    config = load_command_config(ctx, validate=False)
    db_path = get_db_path(config)

    if info:
        return get_database_info(db_path)

    if errors:
        with Database(db_path=db_path) as db:
            rows = get_sync_errors(db)
        if pretty and not quiet:
            render_table(
                ["Repository", "Stage", "Error", "When"],
                [[r['repository'], r['stage'], r['error_message'], r['occurred_at']] for r in rows],
                title="Sync Errors",
            )
            return None
        return rows

    tracker = BuildTracker(config, db_path)

    if history_target:
        try:
            target = BuildTarget.parse(history_target)
        except ValueError as e:
            raise CommandError(str(e), USAGE_ERROR)
        records = tracker.history(target)
        if not records:
            raise NoTargetsFoundError(f"No build records for {target}")
        title = f"History of {target}"
    else:
        records = tracker.status(attention_only=attention)
        title = "Targets needing attention" if attention else "Build Status"

    results = []
    for record in records:
        item = record.to_dict()
        item['needs_attention'] = record.active and record.needs_attention(tracker.max_attempts)
        results.append(item)

    if pretty and not quiet:
        render_status_table(results, title=title)
        return None
    return results
