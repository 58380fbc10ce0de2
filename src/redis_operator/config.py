"""Configuration management with validation.

Configuration is validated at load time so a misconfigured operator fails
before it touches the cluster.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Configuration constants with documented bounds
DEFAULT_REDIS_PORT = 6379
# Cluster bus port is always the client port plus this offset
CLUSTER_BUS_PORT_OFFSET = 10000
MIN_PORT = 1
MAX_PORT = 65535 - CLUSTER_BUS_PORT_OFFSET

DEFAULT_PDB_MAX_UNAVAILABLE = 1
DEFAULT_PASSWORD_ENV_NAME = "REDIS_PASSWORD"

MAX_CLUSTER_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max cluster manifest

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Input validation patterns
VALID_ENV_NAME_PATTERN = r"^[A-Za-z_][A-Za-z0-9_]*$"


@dataclass(frozen=True)
class Config:
    """Operator configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing mid-pass.
    """

    # Cluster access
    kubeconfig: Path | None = None
    in_cluster: bool = False

    # Child resource defaults
    redis_port: int = DEFAULT_REDIS_PORT
    pdb_max_unavailable: int = DEFAULT_PDB_MAX_UNAVAILABLE
    password_env_name: str = DEFAULT_PASSWORD_ENV_NAME

    # Behavior
    dry_run: bool = False

    # Logging
    log_level: str = "INFO"
    json_logs: bool = True

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        import re

        errors: list[str] = []

        if self.in_cluster and self.kubeconfig is not None:
            errors.append("KUBECONFIG cannot be combined with IN_CLUSTER")

        if self.kubeconfig is not None and not self.kubeconfig.exists():
            errors.append(f"KUBECONFIG file does not exist: {self.kubeconfig}")

        if not (MIN_PORT <= self.redis_port <= MAX_PORT):
            errors.append(f"REDIS_PORT must be between {MIN_PORT} and {MAX_PORT}")

        if self.pdb_max_unavailable < 1:
            errors.append("PDB_MAX_UNAVAILABLE must be at least 1")

        if not re.match(VALID_ENV_NAME_PATTERN, self.password_env_name):
            errors.append(f"PASSWORD_ENV_NAME is not a valid variable name: {self.password_env_name}")

        if self.log_level.upper() not in VALID_LOG_LEVELS:
            errors.append(f"LOG_LEVEL must be one of {list(VALID_LOG_LEVELS)}: {self.log_level}")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @property
    def log_level_value(self) -> int:
        """Numeric logging level for the configured LOG_LEVEL."""
        return logging.getLevelName(self.log_level.upper())

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            KUBECONFIG: Path to a kubeconfig file (default: library default)
            IN_CLUSTER: If "true", use the pod service account (default: false)
            REDIS_PORT: Client port of every Redis node (default: 6379)
            PDB_MAX_UNAVAILABLE: maxUnavailable of each shard budget (default: 1)
            PASSWORD_ENV_NAME: Env var carrying the Redis password (default: REDIS_PASSWORD)
            DRY_RUN: If "true", decide but never write (default: false)
            LOG_LEVEL: Root log level (default: INFO)
            JSON_LOGS: Emit JSON log lines (default: true)
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        kubeconfig = os.environ.get("KUBECONFIG")

        return cls(
            kubeconfig=Path(kubeconfig) if kubeconfig else None,
            in_cluster=get_bool("IN_CLUSTER", False),
            redis_port=get_int("REDIS_PORT", DEFAULT_REDIS_PORT),
            pdb_max_unavailable=get_int("PDB_MAX_UNAVAILABLE", DEFAULT_PDB_MAX_UNAVAILABLE),
            password_env_name=os.environ.get("PASSWORD_ENV_NAME", DEFAULT_PASSWORD_ENV_NAME),
            dry_run=get_bool("DRY_RUN", False),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            json_logs=get_bool("JSON_LOGS", True),
        )
