"""Cluster manifest loading with validation.

All file operations enforce a size limit. Input validation is performed at
the boundary so the ensure operations only ever see valid clusters.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .config import MAX_CLUSTER_FILE_SIZE_BYTES
from .models import API_GROUP, KIND, DistributedRedisCluster

logger = logging.getLogger(__name__)


class SpecLoadError(Exception):
    """Raised when a cluster manifest cannot be loaded or fails validation."""

    pass


def _format_validation_error(source: str, error: ValidationError) -> str:
    errors = []
    for item in error.errors():
        loc = ".".join(str(x) for x in item["loc"])
        errors.append(f"  - {loc}: {item['msg']}")
    return f"Validation failed for {source}:\n" + "\n".join(errors)


def cluster_from_object(obj: Any, source: str = "<object>") -> DistributedRedisCluster:
    """Validate an already parsed DistributedRedisCluster mapping.

    Args:
        obj: Mapping as returned by the API server or a YAML parser.
        source: Where obj came from, for error messages.

    Raises:
        SpecLoadError: If obj is not a valid DistributedRedisCluster.
    """
    if not isinstance(obj, dict):
        raise SpecLoadError(f"Cluster manifest must be a mapping: {source}")

    kind = obj.get("kind", KIND)
    if kind != KIND:
        raise SpecLoadError(f"Expected kind {KIND}, got {kind}: {source}")

    api_version = obj.get("apiVersion")
    if api_version is not None and not str(api_version).startswith(f"{API_GROUP}/"):
        raise SpecLoadError(f"Unsupported apiVersion {api_version}: {source}")

    # Status may be present but null on freshly created objects
    data = {k: v for k, v in obj.items() if not (k == "status" and v is None)}

    try:
        return DistributedRedisCluster.model_validate(data)
    except ValidationError as e:
        raise SpecLoadError(_format_validation_error(source, e)) from e


def load_cluster(path: Path) -> DistributedRedisCluster:
    """Load and validate a DistributedRedisCluster manifest from YAML.

    Raises:
        SpecLoadError: If the file cannot be read or fails validation.
    """
    if not path.exists():
        raise SpecLoadError(f"Cluster manifest not found: {path}")

    # Check file size before reading
    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise SpecLoadError(f"Failed to stat cluster manifest {path}: {e}") from e

    if file_size > MAX_CLUSTER_FILE_SIZE_BYTES:
        raise SpecLoadError(
            f"Cluster manifest exceeds maximum size of {MAX_CLUSTER_FILE_SIZE_BYTES} bytes: {path}"
        )

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SpecLoadError(f"Failed to read cluster manifest {path}: {e}") from e

    try:
        raw_data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise SpecLoadError(f"Invalid YAML in {path}: {e}") from e

    cluster = cluster_from_object(raw_data, str(path))
    logger.info(
        "Loaded cluster %s/%s from %s", cluster.namespace, cluster.name, path
    )
    return cluster
