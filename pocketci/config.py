#!/usr/bin/env python3

import os
import json
import re
import tomllib
from pathlib import Path
from typing import Any, Dict, List, Optional

import logging
import sys

import yaml

from .errors import ConfigError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    handlers=[
        logging.StreamHandler(sys.stderr) # Default to stderr
    ]
)
logger = logging.getLogger("pocketci")

CONFIG_FILENAMES = ['config.json', 'config.toml', 'config.yaml', 'config.yml']
LOCAL_CONFIG_FILENAMES = ['pocketci.yaml', 'pocketci.yml', 'pocketci.toml', 'pocketci.json']
RULE_TYPES = ('exact', 'glob', 'regex')
TRIGGER_TYPES = ('command', 'http')


def get_config_path(explicit: Optional[str] = None) -> Path:
    """Get the path to the configuration file.

    Checks in order:
    1. Explicit path (``--config``)
    2. POCKETCI_CONFIG environment variable
    3. pocketci.{yaml,yml,toml,json} in the current directory
    4. ~/.pocketci/ directory
    """
    if explicit:
        return Path(explicit).expanduser()

    if 'POCKETCI_CONFIG' in os.environ:
        return Path(os.environ['POCKETCI_CONFIG']).expanduser()

    cwd = Path.cwd()
    for filename in LOCAL_CONFIG_FILENAMES:
        path = cwd / filename
        if path.exists():
            return path

    pocketci_dir = Path.home() / '.pocketci'
    for filename in CONFIG_FILENAMES:
        path = pocketci_dir / filename
        if path.exists() and path.stat().st_size > 10:  # Not empty/trivial
            return path

    # If no file exists, return default path for saving
    return pocketci_dir / 'config.yaml'


def read_config_file(config_path: Path) -> Dict[str, Any]:
    """Parse a JSON, TOML or YAML configuration file."""
    suffix = config_path.suffix.lower()
    try:
        if suffix == '.toml':
            with open(config_path, 'rb') as f:
                return tomllib.load(f)
        if suffix in ('.yaml', '.yml'):
            with open(config_path, 'r') as f:
                return yaml.safe_load(f) or {}
        with open(config_path, 'r') as f:
            return json.load(f)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ConfigError(f"failed to read {config_path}: {e}") from e


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from file, defaults and environment.

    A missing file is not an error here; ``validate_config`` reports the
    settings that are still missing.
    """
    config_path = get_config_path(path)

    config = get_default_config()

    if config_path.exists():
        file_config = read_config_file(config_path)
        if not isinstance(file_config, dict):
            raise ConfigError(f"{config_path} must contain a mapping at the top level")
        config = merge_configs(config, file_config)
        logger.debug(f"Loaded configuration from {config_path}")
    elif path:
        raise ConfigError(f"configuration file {config_path} was not found")

    config = apply_env_overrides(config)
    config = normalize_config(config)

    return config


def save_config(config: Dict[str, Any], path: Optional[str] = None) -> Path:
    """Save configuration to file (YAML or JSON)."""
    config_path = get_config_path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    suffix = config_path.suffix.lower()
    if suffix == '.toml':
        raise ConfigError("writing TOML configuration is not supported, use .yaml or .json")

    with open(config_path, 'w') as f:
        if suffix in ('.yaml', '.yml'):
            yaml.safe_dump(config, f, default_flow_style=False, sort_keys=False)
        else:
            json.dump(config, f, indent=2)

    logger.info(f"Configuration saved to {config_path}")
    return config_path


def get_default_config() -> Dict[str, Any]:
    """Get default configuration."""
    return {
        "github": {
            "api_url": "https://api.github.com",
            "token": "",
            "token_file": ".github_token",
            "organizations": [],
            "repositories": [],
            "include_archived": False,
            "per_page": 100,
            "rate_limit": {
                "max_retries": 3,
                "base_delay_seconds": 1.0,
                "max_delay_seconds": 60
            }
        },
        "codenames": [],
        "pockets": [],
        "assignment": {
            "multi_match": "first"
        },
        "sync": {
            "workers": 4,
            "skip_slash_branches": True
        },
        "git": {
            "timeout_seconds": 600,
            "verify_mirrors": True
        },
        "snapshot": {
            "packaging_dir": "debian",
            "workers": 4
        },
        "build": {
            "slots": 1,
            "cooldown_seconds": 3600,
            "max_cooldown_seconds": 86400,
            "max_attempts": 3,
            "timeout_seconds": 3600,
            "unavailable_retries": 3,
            "unavailable_delay_seconds": 5,
            "stale_claim_seconds": 7200,
            "archs": {"amd64": True}
        },
        "trigger": {
            "type": "command",
            "command": [],
            "url": "",
            "headers": {},
            "connect_timeout_seconds": 30
        },
        "paths": {
            "root": "~/.pocketci",
            "mirrors": "",
            "snapshots": ""
        },
        "database": {
            "path": ""
        },
        "logging": {
            "level": "INFO",
            "format": "%(asctime)s [%(levelname)s] %(message)s",
            "file": ""
        }
    }


def get_example_config() -> Dict[str, Any]:
    """Default configuration with a worked example of codenames and pockets."""
    config = get_default_config()
    config["github"]["organizations"] = [
        {"name": "my-org", "exclude_prefix": "archived-"}
    ]
    config["codenames"] = [
        {"name": "jammy", "release": "22.04", "pockets": ["main", "proposed"]},
        {"name": "noble", "release": "24.04", "pockets": ["main", "proposed"]},
    ]
    config["pockets"] = [
        {"name": "main", "rules": [
            {"type": "exact", "pattern": "master"},
            {"type": "exact", "pattern": "master_{codename}"},
        ]},
        {"name": "proposed", "rules": [
            {"type": "glob", "pattern": "proposed*"},
        ]},
    ]
    config["trigger"]["command"] = [
        "build-package", "{archive}", "--codename", "{codename}", "--pocket", "{pocket}"
    ]
    return config


def merge_configs(base_config, override_config):
    """
    Recursively merge two configuration dictionaries.

    Args:
        base_config (dict): Base configuration
        override_config (dict): Configuration to merge/override with

    Returns:
        dict: Merged configuration
    """
    merged = base_config.copy()

    for key, value in override_config.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            # Recursively merge nested dictionaries
            merged[key] = merge_configs(merged[key], value)
        else:
            # Override or add new key
            merged[key] = value

    return merged


def apply_env_overrides(config):
    """
    Apply environment variable overrides to configuration.
    Environment variables follow the pattern: POCKETCI_SECTION_SUBSECTION_KEY
    For example: POCKETCI_BUILD_SLOTS=4
    """
    env_prefix = "POCKETCI_"

    for env_key, value in os.environ.items():
        if not env_key.startswith(env_prefix):
            continue

        key_parts = env_key[len(env_prefix):].lower().split('_')

        # Convert value
        if value.isdigit():
            typed_value = int(value)
        elif value.lower() in ('true', 'yes', 'on'):
            typed_value = True
        elif value.lower() in ('false', 'no', 'off'):
            typed_value = False
        else:
            typed_value = value

        current_level = config
        i = 0
        while i < len(key_parts):
            # Find the longest key in current_level that is a prefix of the remaining key_parts
            best_match_len = 0
            matched_key = None

            for config_key in current_level.keys():
                config_key_parts_from_key = config_key.split('_')
                if key_parts[i : i + len(config_key_parts_from_key)] == config_key_parts_from_key:
                    if len(config_key_parts_from_key) > best_match_len:
                        best_match_len = len(config_key_parts_from_key)
                        matched_key = config_key

            if matched_key:
                # If we are at the end of the env var, we have found the key to set
                if i + best_match_len == len(key_parts):
                    if not isinstance(current_level[matched_key], (dict, list)):
                        current_level[matched_key] = typed_value
                    break

                # Otherwise, we descend into the dictionary
                if isinstance(current_level[matched_key], dict):
                    current_level = current_level[matched_key]
                    i += best_match_len
                else:
                    break
            else:
                # No match found
                break

    return config


def normalize_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Expand shorthand forms so the rest of the code sees one shape.

    - organizations may be given as plain strings
    - a trigger command may be given as a single shell-style string
    """
    orgs = []
    for org in config.get('github', {}).get('organizations', []) or []:
        if isinstance(org, str):
            orgs.append({'name': org, 'exclude_prefix': None})
        else:
            orgs.append(org)
    config['github']['organizations'] = orgs

    command = config.get('trigger', {}).get('command')
    if isinstance(command, str):
        import shlex
        config['trigger']['command'] = shlex.split(command)

    return config


def _positive_int(section: Dict[str, Any], key: str, minimum: int, problems: List[str], where: str):
    value = section.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < minimum:
        problems.append(f"{where}.{key} must be a number >= {minimum} (got {value!r})")


def validate_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Check that the configuration is complete and consistent.

    Raises:
        ConfigError: listing every problem found

    Returns:
        The same configuration, for chaining
    """
    problems: List[str] = []

    orgs = config.get('github', {}).get('organizations') or []
    if not orgs:
        problems.append("github.organizations must name at least one organization")
    for org in orgs:
        if not isinstance(org, dict) or not org.get('name'):
            problems.append(f"github.organizations entry {org!r} has no name")

    pocket_names = set()
    for pocket in config.get('pockets') or []:
        name = pocket.get('name') if isinstance(pocket, dict) else None
        if not name:
            problems.append(f"pocket {pocket!r} has no name")
            continue
        if name in pocket_names:
            problems.append(f"pocket {name} is defined more than once")
        pocket_names.add(name)

        rules = pocket.get('rules') or []
        if not rules:
            problems.append(f"pocket {name} has no rules")
        for rule in rules:
            rule_type = rule.get('type') if isinstance(rule, dict) else None
            pattern = rule.get('pattern') if isinstance(rule, dict) else None
            if rule_type not in RULE_TYPES:
                problems.append(f"pocket {name}: rule type {rule_type!r} is not one of {', '.join(RULE_TYPES)}")
            if not isinstance(pattern, str) or not pattern:
                problems.append(f"pocket {name}: rule {rule!r} has no pattern")
            elif rule_type == 'regex':
                try:
                    re.compile(pattern.replace('{codename}', 'codename'))
                except re.error as e:
                    problems.append(f"pocket {name}: invalid regex {pattern!r}: {e}")

    codenames = config.get('codenames') or []
    if not isinstance(codenames, list):
        problems.append("codenames must be an ordered list")
        codenames = []
    if not codenames:
        problems.append("codenames must list at least one codename")
    seen = set()
    for codename in codenames:
        name = codename.get('name') if isinstance(codename, dict) else None
        if not name:
            problems.append(f"codename {codename!r} has no name")
            continue
        if name in seen:
            problems.append(f"codename {name} is defined more than once")
        seen.add(name)
        pockets = codename.get('pockets') or []
        if not pockets:
            problems.append(f"codename {name} accepts no pockets")
        for pocket in pockets:
            if pocket not in pocket_names:
                problems.append(f"codename {name} references undefined pocket {pocket}")

    if config.get('assignment', {}).get('multi_match') not in ('first', 'all'):
        problems.append("assignment.multi_match must be 'first' or 'all'")

    build = config.get('build', {})
    _positive_int(build, 'slots', 1, problems, 'build')
    _positive_int(build, 'cooldown_seconds', 0, problems, 'build')
    _positive_int(build, 'max_cooldown_seconds', 0, problems, 'build')
    _positive_int(build, 'max_attempts', 1, problems, 'build')
    _positive_int(build, 'timeout_seconds', 1, problems, 'build')
    _positive_int(build, 'unavailable_retries', 0, problems, 'build')
    _positive_int(build, 'unavailable_delay_seconds', 0, problems, 'build')
    _positive_int(build, 'stale_claim_seconds', 0, problems, 'build')
    _positive_int(config.get('sync', {}), 'workers', 1, problems, 'sync')
    _positive_int(config.get('snapshot', {}), 'workers', 1, problems, 'snapshot')
    _positive_int(config.get('git', {}), 'timeout_seconds', 1, problems, 'git')

    trigger = config.get('trigger', {})
    trigger_type = trigger.get('type')
    if trigger_type not in TRIGGER_TYPES:
        problems.append(f"trigger.type must be one of {', '.join(TRIGGER_TYPES)}")
    elif trigger_type == 'command' and not trigger.get('command'):
        problems.append("trigger.command is required for a command trigger")
    elif trigger_type == 'http' and not trigger.get('url'):
        problems.append("trigger.url is required for an http trigger")
    elif trigger_type == 'http':
        _positive_int(trigger, 'connect_timeout_seconds', 1, problems, 'trigger')

    if problems:
        raise ConfigError("invalid configuration", problems)

    return config


def get_paths(config: Dict[str, Any]) -> Dict[str, Path]:
    """Resolve the working directories (mirrors, snapshots) from config."""
    paths = config.get('paths', {})
    root = Path(paths.get('root') or '~/.pocketci').expanduser()
    mirrors = Path(paths['mirrors']).expanduser() if paths.get('mirrors') else root / 'mirrors'
    snapshots = Path(paths['snapshots']).expanduser() if paths.get('snapshots') else root / 'snapshots'
    return {'root': root, 'mirrors': mirrors, 'snapshots': snapshots}


def configure_logging(config: Dict[str, Any]) -> None:
    """Apply the ``logging`` section: level, format and optional log file."""
    settings = config.get('logging', {})
    level = getattr(logging, str(settings.get('level', 'INFO')).upper(), logging.INFO)
    formatter = logging.Formatter(settings.get('format') or "%(asctime)s [%(levelname)s] %(message)s")

    logger.setLevel(level)
    for handler in logging.getLogger().handlers:
        handler.setFormatter(formatter)

    log_file = settings.get('file')
    if log_file:
        log_path = Path(log_file).expanduser()
        if not any(isinstance(h, logging.FileHandler) and Path(h.baseFilename) == log_path.resolve()
                   for h in logger.handlers):
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
