import click
import json

from ..cli_utils import standard_command, load_command_config
from ..config import get_config_path, get_example_config, load_config, save_config


@click.group("config")
def config_cmd():
    """Configuration management commands."""
    pass


@config_cmd.command("show")
@click.option("--pretty", is_flag=True, help="Display as formatted JSON instead of single-line JSONL")
@click.option("--path", is_flag=True, help="Show the config file path being used")
@click.pass_context
@standard_command
def show_config(ctx, pretty, path, **kwargs):
    """Show the current configuration with all merges applied.

    By default, outputs single-line JSON (JSONL format).
    Use --pretty for human-readable formatted output.
    Use --path to see which config file is being used.
    """
    explicit = (ctx.obj or {}).get('config_path')

    if path:
        print(json.dumps({"config_path": str(get_config_path(explicit))}))
        return

    config = load_config(explicit)
    # Never print credentials
    if config.get('github', {}).get('token'):
        config['github']['token'] = '***'

    if pretty:
        print(json.dumps(config, indent=2, ensure_ascii=False))
    else:
        print(json.dumps(config, ensure_ascii=False))


@config_cmd.command("validate")
@click.pass_context
@standard_command
def validate_cmd(ctx, **kwargs):
    """Check the configuration and exit non-zero if it is invalid."""
    config = load_command_config(ctx)
    return {
        "valid": True,
        "config_path": str(get_config_path((ctx.obj or {}).get('config_path'))),
        "codenames": [c['name'] for c in config['codenames']],
        "pockets": [p['name'] for p in config['pockets']],
    }


@config_cmd.command("init")
@click.option("--force", is_flag=True, help="Overwrite an existing configuration file")
@click.pass_context
@standard_command
def init_config(ctx, force, **kwargs):
    """Write an example configuration file to start from."""
    config_path = get_config_path((ctx.obj or {}).get('config_path'))
    if config_path.exists() and not force:
        return {"written": False, "config_path": str(config_path),
                "message": "configuration already exists, use --force to overwrite"}
    saved = save_config(get_example_config(), str(config_path))
    return {"written": True, "config_path": str(saved)}
