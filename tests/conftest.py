"""Shared pytest fixtures for harness tests."""

import random
import shutil
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))


def _has_infrastructure():
    """Check if a terraform binary and AWS credentials are available."""
    if shutil.which('terraform') is None:
        return False
    try:
        import boto3
        return boto3.session.Session().get_credentials() is not None
    except Exception:
        return False


def pytest_collection_modifyitems(config, items):
    """Skip tests marked with requires_infrastructure when infra not available."""
    if _has_infrastructure():
        return
    skip_marker = pytest.mark.skip(reason="requires infrastructure (terraform binary and AWS credentials)")
    for item in items:
        if "requires_infrastructure" in item.keywords:
            item.add_marker(skip_marker)


@pytest.fixture
def harness_config():
    """Config with a small region pool and fast keys."""
    from config import HarnessConfig
    return HarnessConfig(
        regions=['us-east-1', 'us-west-2', 'eu-west-1'],
        key_size=1024,
        key_name_prefix='test-',
    )


@pytest.fixture
def template_dir(tmp_path):
    """An empty template directory."""
    path = tmp_path / 'template'
    path.mkdir()
    (path / 'main.tf').write_text('# fixture\n')
    return path


@pytest.fixture
def mock_cloud():
    """Mock Ec2Cloud that records operations."""
    cloud = MagicMock()
    cloud.create_ec2_key_pair.return_value = 'key-0123456789abcdef0'
    cloud.get_ami_id.return_value = 'ami-0abcdef1234567890'
    cloud.delete_ec2_key_pair.return_value = True
    return cloud


@pytest.fixture
def seeded_rng():
    return random.Random(42)
