"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for kube_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from kube_mock.factories import make_cluster  # noqa: E402
from redis_operator.models import DistributedRedisCluster  # noqa: E402


@pytest.fixture
def cluster() -> DistributedRedisCluster:
    """Three shards, one replica each, no password, no restore."""
    return make_cluster()
