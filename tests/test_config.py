"""Tests for configuration loading and validation."""

import json

import pytest
import yaml

from pocketci.config import (
    apply_env_overrides,
    get_config_path,
    get_default_config,
    get_example_config,
    get_paths,
    load_config,
    merge_configs,
    normalize_config,
    save_config,
    validate_config,
)
from pocketci.errors import ConfigError


class TestConfigPath:
    """Tests for configuration file lookup."""

    def test_explicit_path_wins(self, tmp_path, monkeypatch):
        monkeypatch.setenv('POCKETCI_CONFIG', str(tmp_path / 'env.yaml'))
        assert get_config_path(str(tmp_path / 'cli.yaml')) == tmp_path / 'cli.yaml'

    def test_environment_variable(self, tmp_path, monkeypatch):
        monkeypatch.setenv('POCKETCI_CONFIG', str(tmp_path / 'env.yaml'))
        assert get_config_path() == tmp_path / 'env.yaml'

    def test_local_file_in_working_directory(self, tmp_path, monkeypatch):
        monkeypatch.delenv('POCKETCI_CONFIG', raising=False)
        monkeypatch.chdir(tmp_path)
        (tmp_path / 'pocketci.yaml').write_text('codenames: []\n')
        assert get_config_path() == tmp_path / 'pocketci.yaml'


class TestLoadConfig:
    """Tests for load_config with files, defaults and environment."""

    def test_yaml_file_merges_over_defaults(self, tmp_path):
        path = tmp_path / 'pocketci.yaml'
        path.write_text(yaml.safe_dump({'build': {'slots': 4}}))
        config = load_config(str(path))
        assert config['build']['slots'] == 4
        # Untouched defaults survive the merge
        assert config['build']['max_attempts'] == 3
        assert config['snapshot']['packaging_dir'] == 'debian'

    def test_json_file(self, tmp_path):
        path = tmp_path / 'pocketci.json'
        path.write_text(json.dumps({'sync': {'workers': 8}}))
        assert load_config(str(path))['sync']['workers'] == 8

    def test_toml_file(self, tmp_path):
        path = tmp_path / 'pocketci.toml'
        path.write_text('[git]\ntimeout_seconds = 30\n')
        assert load_config(str(path))['git']['timeout_seconds'] == 30

    def test_missing_explicit_file_is_an_error(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(str(tmp_path / 'nope.yaml'))

    def test_unparseable_file_is_an_error(self, tmp_path):
        path = tmp_path / 'broken.json'
        path.write_text('{not json')
        with pytest.raises(ConfigError, match='failed to read'):
            load_config(str(path))

    def test_organizations_as_strings_are_normalized(self, tmp_path):
        path = tmp_path / 'pocketci.yaml'
        path.write_text(yaml.safe_dump({'github': {'organizations': ['acme']}}))
        config = load_config(str(path))
        assert config['github']['organizations'] == [{'name': 'acme', 'exclude_prefix': None}]

    def test_trigger_command_string_is_split(self):
        config = get_default_config()
        config['trigger']['command'] = 'build-package "{archive}" --pocket {pocket}'
        normalize_config(config)
        assert config['trigger']['command'] == ['build-package', '{archive}', '--pocket', '{pocket}']


class TestEnvOverrides:
    """Tests for POCKETCI_* environment overrides."""

    def test_integer_override(self, monkeypatch):
        monkeypatch.setenv('POCKETCI_BUILD_SLOTS', '1')
        config = apply_env_overrides(get_default_config())
        # "1" is a number, not a boolean
        assert config['build']['slots'] == 1
        assert config['build']['slots'] is not True

    def test_multi_word_key(self, monkeypatch):
        monkeypatch.setenv('POCKETCI_BUILD_MAX_ATTEMPTS', '7')
        config = apply_env_overrides(get_default_config())
        assert config['build']['max_attempts'] == 7

    def test_boolean_override(self, monkeypatch):
        monkeypatch.setenv('POCKETCI_GIT_VERIFY_MIRRORS', 'false')
        config = apply_env_overrides(get_default_config())
        assert config['git']['verify_mirrors'] is False

    def test_token_override(self, monkeypatch):
        monkeypatch.setenv('POCKETCI_GITHUB_TOKEN', 'secret')
        config = apply_env_overrides(get_default_config())
        assert config['github']['token'] == 'secret'

    def test_does_not_replace_structured_values(self, monkeypatch):
        monkeypatch.setenv('POCKETCI_CODENAMES', 'jammy')
        config = apply_env_overrides(get_default_config())
        assert config['codenames'] == []


class TestValidateConfig:
    """Tests for validate_config."""

    def test_example_config_is_valid(self):
        config = get_example_config()
        assert validate_config(config) is config

    def test_defaults_alone_are_incomplete(self):
        with pytest.raises(ConfigError) as excinfo:
            validate_config(get_default_config())
        problems = excinfo.value.problems
        assert any('organizations' in p for p in problems)
        assert any('codenames' in p for p in problems)
        assert any('trigger.command' in p for p in problems)

    def test_undefined_pocket_reference(self):
        config = get_example_config()
        config['codenames'][0]['pockets'].append('backports')
        with pytest.raises(ConfigError, match='undefined pocket backports'):
            validate_config(config)

    def test_bad_rule_type(self):
        config = get_example_config()
        config['pockets'][0]['rules'][0]['type'] = 'prefix'
        with pytest.raises(ConfigError, match='rule type'):
            validate_config(config)

    def test_bad_regex(self):
        config = get_example_config()
        config['pockets'][1]['rules'] = [{'type': 'regex', 'pattern': 'proposed-('}]
        with pytest.raises(ConfigError, match='invalid regex'):
            validate_config(config)

    def test_regex_with_codename_placeholder_is_valid(self):
        config = get_example_config()
        config['pockets'][1]['rules'] = [{'type': 'regex', 'pattern': r'proposed(_{codename})?'}]
        validate_config(config)

    def test_duplicate_codename(self):
        config = get_example_config()
        config['codenames'].append(dict(config['codenames'][0]))
        with pytest.raises(ConfigError, match='more than once'):
            validate_config(config)

    def test_multi_match_choice(self):
        config = get_example_config()
        config['assignment']['multi_match'] = 'best'
        with pytest.raises(ConfigError, match='multi_match'):
            validate_config(config)

    def test_build_slots_must_be_positive(self):
        config = get_example_config()
        config['build']['slots'] = 0
        with pytest.raises(ConfigError, match='build.slots'):
            validate_config(config)

    def test_http_trigger_needs_url(self):
        config = get_example_config()
        config['trigger'] = {'type': 'http', 'url': ''}
        with pytest.raises(ConfigError, match='trigger.url'):
            validate_config(config)

    def test_http_trigger_connect_timeout_must_be_positive(self):
        config = get_example_config()
        config['trigger'].update({'type': 'http', 'url': 'https://builder.example', 'connect_timeout_seconds': 0})
        with pytest.raises(ConfigError) as excinfo:
            validate_config(config)
        assert any('trigger.connect_timeout_seconds' in p for p in excinfo.value.problems)


class TestHelpers:
    """Tests for paths and saving."""

    def test_paths_default_under_root(self, tmp_path):
        config = merge_configs(get_default_config(), {'paths': {'root': str(tmp_path)}})
        paths = get_paths(config)
        assert paths['mirrors'] == tmp_path / 'mirrors'
        assert paths['snapshots'] == tmp_path / 'snapshots'

    def test_explicit_paths(self, tmp_path):
        config = merge_configs(get_default_config(), {
            'paths': {'root': str(tmp_path), 'snapshots': str(tmp_path / 'archive')}
        })
        assert get_paths(config)['snapshots'] == tmp_path / 'archive'

    def test_save_and_reload_yaml(self, tmp_path):
        path = tmp_path / 'conf' / 'pocketci.yaml'
        save_config(get_example_config(), str(path))
        reloaded = load_config(str(path))
        assert [c['name'] for c in reloaded['codenames']] == ['jammy', 'noble']
        validate_config(reloaded)

    def test_save_toml_is_refused(self, tmp_path):
        with pytest.raises(ConfigError):
            save_config(get_example_config(), str(tmp_path / 'pocketci.toml'))
