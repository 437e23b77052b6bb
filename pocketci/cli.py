#!/usr/bin/env python3

import click

from pocketci.commands.sync import sync_handler
from pocketci.commands.status import status_handler
from pocketci.commands.retry import retry_handler
from pocketci.commands.config import config_cmd


@click.group()
@click.version_option(package_name='pocketci')
@click.option('-c', '--config', 'config_path', type=click.Path(dir_okay=False),
              envvar='POCKETCI_CONFIG', help='Configuration file (env: POCKETCI_CONFIG)')
@click.pass_context
def cli(ctx, config_path):
    """pocketci - Debian source package CI for a GitHub organization.

    Mirrors the organization's repositories, snapshots new branch heads,
    assigns them to codename pockets and triggers the builds that are
    still missing.
    """
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config_path


cli.add_command(sync_handler)
cli.add_command(status_handler)
cli.add_command(retry_handler)
cli.add_command(config_cmd)


def main():
    cli()

if __name__ == "__main__":
    main()
