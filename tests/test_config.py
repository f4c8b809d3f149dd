#!/usr/bin/env python3
"""Tests for config.py - harness configuration and discovery.

Tests verify:
1. Config file discovery (env var, repository root, defaults)
2. YAML parsing into HarnessConfig
3. Validation errors for malformed values
"""

import os
import sys
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

import pytest
from config import (
    CONFIG_ENV_VAR,
    DEFAULT_REGIONS,
    HarnessConfig,
    find_config_file,
    get_fixture_dir,
    load_harness_config,
)
from errors import ConfigError


class TestFindConfigFile:
    """Test config discovery logic."""

    def test_env_var_takes_precedence(self, tmp_path):
        config_file = tmp_path / 'custom.yaml'
        config_file.write_text('terraform_binary: tofu\n')

        with patch.dict(os.environ, {CONFIG_ENV_VAR: str(config_file)}):
            assert find_config_file() == config_file

    def test_env_var_missing_raises(self):
        with patch.dict(os.environ, {CONFIG_ENV_VAR: '/nonexistent/harness.yaml'}):
            with pytest.raises(ConfigError) as exc_info:
                find_config_file()
            assert 'does not exist' in str(exc_info.value)

    def test_repo_root_fallback(self, tmp_path):
        (tmp_path / 'harness.yaml').write_text('{}\n')
        env = {k: v for k, v in os.environ.items() if k != CONFIG_ENV_VAR}

        with patch.dict(os.environ, env, clear=True), \
             patch('config.get_base_dir', return_value=tmp_path):
            assert find_config_file() == tmp_path / 'harness.yaml'

    def test_none_when_absent(self, tmp_path):
        env = {k: v for k, v in os.environ.items() if k != CONFIG_ENV_VAR}

        with patch.dict(os.environ, env, clear=True), \
             patch('config.get_base_dir', return_value=tmp_path):
            assert find_config_file() is None


class TestLoadHarnessConfig:
    """Test load_harness_config()."""

    def test_defaults_without_file(self):
        with patch('config.find_config_file', return_value=None):
            config = load_harness_config()

        assert config.terraform_binary == 'terraform'
        assert config.regions == DEFAULT_REGIONS
        assert config.retryable_errors == {}
        assert config.config_file is None

    def test_full_file(self, tmp_path):
        config_file = tmp_path / 'harness.yaml'
        config_file.write_text("""
terraform_binary: tofu
regions: [us-east-1, us-west-2, eu-west-1]
excluded_regions: [us-west-2]
ami:
  owner: "137112412989"
  name_filter: "al2023-ami-*-x86_64"
key_size: 4096
key_name_prefix: "ci-"
unique_id_length: 8
timeouts:
  init: 60
  apply: 900
retryable_errors:
  RequestLimitExceeded: API throttling
  "InvalidKeyPair.NotFound":
report_dir: reports
""")
        config = load_harness_config(config_file)

        assert config.terraform_binary == 'tofu'
        assert config.candidate_regions == ['us-east-1', 'eu-west-1']
        assert config.ami_owner == '137112412989'
        assert config.ami_name_filter == 'al2023-ami-*-x86_64'
        assert config.key_size == 4096
        assert config.key_name_prefix == 'ci-'
        assert config.unique_id_length == 8
        assert config.timeout_init == 60
        assert config.timeout_apply == 900
        assert config.timeout_destroy == 3600
        assert config.retryable_errors == {
            'RequestLimitExceeded': 'API throttling',
            'InvalidKeyPair.NotFound': '',
        }
        assert config.report_dir == Path('reports')
        assert config.config_file == config_file

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_harness_config(tmp_path / 'nope.yaml')

    def test_invalid_yaml(self, tmp_path):
        config_file = tmp_path / 'harness.yaml'
        config_file.write_text('regions: [unclosed\n')
        with pytest.raises(ConfigError) as exc_info:
            load_harness_config(config_file)
        assert 'Invalid YAML' in str(exc_info.value)

    def test_top_level_must_be_mapping(self, tmp_path):
        config_file = tmp_path / 'harness.yaml'
        config_file.write_text('- a\n- b\n')
        with pytest.raises(ConfigError):
            load_harness_config(config_file)

    def test_empty_file_uses_defaults(self, tmp_path):
        config_file = tmp_path / 'harness.yaml'
        config_file.write_text('')
        config = load_harness_config(config_file)
        assert config.terraform_binary == 'terraform'


class TestHarnessConfigValidation:
    """Test HarnessConfig.from_dict() validation."""

    @pytest.mark.parametrize('data', [
        {'regions': []},
        {'regions': 'us-east-1'},
        {'excluded_regions': 'us-east-1'},
        {'key_size': 0},
        {'key_size': 'big'},
        {'unique_id_length': -1},
        {'timeouts': {'apply': 0}},
        {'timeouts': 30},
        {'ami': 'ami-123'},
        {'retryable_errors': ['RequestLimitExceeded']},
    ])
    def test_rejects_bad_values(self, data):
        with pytest.raises(ConfigError):
            HarnessConfig.from_dict(data)

    def test_all_regions_excluded(self):
        with pytest.raises(ConfigError) as exc_info:
            HarnessConfig.from_dict({'regions': ['us-east-1'], 'excluded_regions': ['us-east-1']})
        assert 'No regions left' in str(exc_info.value)

    def test_string_paths_converted(self):
        config = HarnessConfig(report_dir='out')
        assert config.report_dir == Path('out')


class TestFixtureDir:

    def test_bundled_fixtures_exist(self):
        fixtures = get_fixture_dir()
        assert (fixtures / 'minimal-example' / 'main.tf').exists()
        assert (fixtures / 'minimal-example-with-error' / 'main.tf').exists()
