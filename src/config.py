"""Harness configuration management.

Configuration is loaded from a single YAML file (harness.yaml):
- terraform_binary: executable used for init/apply/destroy (terraform or tofu)
- regions / excluded_regions: pool for random region selection
- ami: owner and name filter used to resolve the base image
- key_size, key_name_prefix, unique_id_length: key pair and naming settings
- timeouts: per-phase subprocess timeouts in seconds
- retryable_errors: default signature -> reason table
- report_dir: where cycle reports are written (optional)

Resolution order:
1. $TFHARNESS_CONFIG environment variable
2. harness.yaml in the repository root
3. Built-in defaults
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = 'TFHARNESS_CONFIG'

# Regions that support the instance types used by the fixtures
DEFAULT_REGIONS = [
    'us-east-1',
    'us-east-2',
    'us-west-1',
    'us-west-2',
    'eu-west-1',
    'eu-central-1',
    'ap-northeast-1',
    'ap-southeast-1',
    'ap-southeast-2',
    'sa-east-1',
]

# Canonical's account; the name filter selects Ubuntu LTS server images
DEFAULT_AMI_OWNER = '099720109477'
DEFAULT_AMI_NAME_FILTER = 'ubuntu/images/hvm-ssd/ubuntu-*-amd64-server-*'


@dataclass
class HarnessConfig:
    """Settings shared by every apply cycle and resource collection."""
    terraform_binary: str = 'terraform'
    regions: list = field(default_factory=lambda: list(DEFAULT_REGIONS))
    excluded_regions: list = field(default_factory=list)
    ami_owner: str = DEFAULT_AMI_OWNER
    ami_name_filter: str = DEFAULT_AMI_NAME_FILTER
    key_size: int = 2048
    key_name_prefix: str = ''
    unique_id_length: int = 6
    timeout_init: int = 300
    timeout_apply: int = 3600
    timeout_destroy: int = 3600
    retryable_errors: dict = field(default_factory=dict)
    report_dir: Optional[Path] = None
    config_file: Optional[Path] = None

    def __post_init__(self):
        if isinstance(self.report_dir, str):
            self.report_dir = Path(self.report_dir)
        if isinstance(self.config_file, str):
            self.config_file = Path(self.config_file)

    @property
    def candidate_regions(self) -> list[str]:
        """Region pool with exclusions removed."""
        return [r for r in self.regions if r not in self.excluded_regions]

    @classmethod
    def from_dict(cls, data: dict, config_file: Optional[Path] = None) -> 'HarnessConfig':
        """Build a config from parsed YAML, validating value types."""
        config = cls(config_file=config_file)

        if binary := data.get('terraform_binary'):
            config.terraform_binary = str(binary)

        if (regions := data.get('regions')) is not None:
            if not isinstance(regions, list) or not regions:
                raise ConfigError("regions must be a non-empty list")
            config.regions = [str(r) for r in regions]

        if (excluded := data.get('excluded_regions')) is not None:
            if not isinstance(excluded, list):
                raise ConfigError("excluded_regions must be a list")
            config.excluded_regions = [str(r) for r in excluded]

        ami = data.get('ami') or {}
        if not isinstance(ami, dict):
            raise ConfigError("ami must be a mapping with owner and name_filter")
        if owner := ami.get('owner'):
            config.ami_owner = str(owner)
        if name_filter := ami.get('name_filter'):
            config.ami_name_filter = str(name_filter)

        for key in ('key_size', 'unique_id_length'):
            if (value := data.get(key)) is not None:
                if not isinstance(value, int) or value <= 0:
                    raise ConfigError(f"{key} must be a positive integer, got {value!r}")
                setattr(config, key, value)

        if (prefix := data.get('key_name_prefix')) is not None:
            config.key_name_prefix = str(prefix)

        timeouts = data.get('timeouts') or {}
        if not isinstance(timeouts, dict):
            raise ConfigError("timeouts must be a mapping of phase to seconds")
        for phase in ('init', 'apply', 'destroy'):
            if (value := timeouts.get(phase)) is not None:
                if not isinstance(value, int) or value <= 0:
                    raise ConfigError(f"timeouts.{phase} must be a positive integer, got {value!r}")
                setattr(config, f'timeout_{phase}', value)

        if (retryable := data.get('retryable_errors')) is not None:
            if not isinstance(retryable, dict):
                raise ConfigError("retryable_errors must be a mapping of signature to reason")
            config.retryable_errors = {str(k): str(v or '') for k, v in retryable.items()}

        if report_dir := data.get('report_dir'):
            config.report_dir = Path(report_dir)

        if not config.candidate_regions:
            raise ConfigError("No regions left after applying excluded_regions")

        return config


def _parse_yaml(path: Path) -> dict:
    """Parse a YAML file and return contents."""
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")
    return data


def get_base_dir() -> Path:
    """Get the repository root directory."""
    return Path(__file__).parent.parent  # src/ -> repo root


def get_fixture_dir() -> Path:
    """Get the directory holding the bundled test fixtures."""
    return get_base_dir() / 'test-fixtures'


def find_config_file() -> Optional[Path]:
    """Discover harness.yaml.

    Resolution order:
    1. $TFHARNESS_CONFIG environment variable (must exist)
    2. harness.yaml in the repository root
    """
    if env_path := os.environ.get(CONFIG_ENV_VAR):
        path = Path(env_path)
        if path.exists():
            return path
        raise ConfigError(f"{CONFIG_ENV_VAR}={env_path} does not exist")

    default = get_base_dir() / 'harness.yaml'
    if default.exists():
        return default

    return None


def load_harness_config(path: Optional[Path] = None) -> HarnessConfig:
    """Load harness configuration, falling back to built-in defaults."""
    if path is None:
        path = find_config_file()
    if path is None:
        logger.debug("No harness.yaml found, using defaults")
        return HarnessConfig()

    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    logger.debug(f"Loading harness config from {path}")
    return HarnessConfig.from_dict(_parse_yaml(path), config_file=path)
