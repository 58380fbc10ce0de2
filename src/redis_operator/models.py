"""Pydantic models for the DistributedRedisCluster resource.

These models provide:
1. Type-safe parsing of the custom resource as stored in the API server
2. Validation at the boundary (fail fast, fail loudly)
3. The restore progression as an explicit state machine
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, Field, field_validator, model_validator

API_GROUP = "redis.kun"
API_VERSION = f"{API_GROUP}/v1alpha1"
KIND = "DistributedRedisCluster"

# Prefix of the rclone config Secret derived for a backup
OSM_SECRET_PREFIX = "rcloneconfig"

QUANTITY_KEYS = ("cpu", "memory")


# =============================================================================
# Restore State Machine
# =============================================================================


class InvalidRestoreTransition(Exception):
    """Raised when a restore phase change is not a legal transition."""

    pass


class RestorePhase(str, Enum):
    """Restore progression of a cluster.

    Values match the phase strings written to the cluster status.
    """

    NOT_RESTORING = ""
    RESTORING = "Running"
    RESTORED = "Succeeded"

    def can_transition_to(self, target: RestorePhase) -> bool:
        """Check whether moving from this phase to target is legal."""
        return target in _RESTORE_TRANSITIONS[self]

    def transition(self, target: RestorePhase) -> RestorePhase:
        """Return target if the transition is legal.

        Raises:
            InvalidRestoreTransition: If the transition skips or reverses a phase.
        """
        if not self.can_transition_to(target):
            raise InvalidRestoreTransition(
                f"Cannot move restore phase from {self.name} to {target.name}"
            )
        return target


_RESTORE_TRANSITIONS: dict[RestorePhase, frozenset[RestorePhase]] = {
    RestorePhase.NOT_RESTORING: frozenset({RestorePhase.NOT_RESTORING, RestorePhase.RESTORING}),
    RestorePhase.RESTORING: frozenset({RestorePhase.RESTORING, RestorePhase.RESTORED}),
    RestorePhase.RESTORED: frozenset({RestorePhase.RESTORED}),
}


# =============================================================================
# Spec Building Blocks
# =============================================================================


class LocalObjectReference(BaseModel):
    """Reference to an object in the cluster's namespace."""

    model_config = {"extra": "ignore"}

    name: str = ""


class ResourceRequirements(BaseModel):
    """Container requests and limits as Kubernetes quantity strings."""

    model_config = {"extra": "ignore"}

    requests: dict[str, str] = Field(default_factory=dict)
    limits: dict[str, str] = Field(default_factory=dict)

    @field_validator("requests", "limits", mode="before")
    @classmethod
    def stringify_quantities(cls, v: Any) -> Any:
        # YAML turns "1" or 2 into ints; quantities are always strings
        if isinstance(v, dict):
            return {k: str(q) for k, q in v.items()}
        return v

    def to_kube(self) -> dict[str, dict[str, str]]:
        """Convert to the dict shape accepted by V1ResourceRequirements."""
        result: dict[str, dict[str, str]] = {}
        if self.requests:
            result["requests"] = dict(self.requests)
        if self.limits:
            result["limits"] = dict(self.limits)
        return result


class S3Backend(BaseModel):
    """S3-compatible object store holding backups."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    endpoint: str = ""
    region: str = ""
    bucket: Annotated[str, Field(min_length=1)]
    prefix: str = ""
    storage_secret_name: str = Field("", alias="storageSecretName")


class Backend(BaseModel):
    """Storage backend of a backup. Exactly one provider block is expected."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    s3: S3Backend | None = None
    local: dict[str, Any] | None = None

    @property
    def provider(self) -> str:
        """Name of the configured provider, or "" when none is set."""
        if self.s3 is not None:
            return "s3"
        if self.local is not None:
            return "local"
        return ""


class BackupDescriptor(BaseModel):
    """Backup the cluster is being restored from."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    name: Annotated[str, Field(min_length=1)]
    namespace: str = ""
    backend: Backend = Field(default_factory=Backend)

    def osm_secret_name(self) -> str:
        """Name of the rclone config Secret used to read this backup."""
        return f"{OSM_SECRET_PREFIX}-{self.name}"


class BackupSource(BaseModel):
    """Reference to the backup a new cluster should be seeded from."""

    model_config = {"extra": "ignore"}

    name: Annotated[str, Field(min_length=1)]
    namespace: str = ""


class InitSpec(BaseModel):
    """Initialization options for a new cluster."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    backup_source: BackupSource | None = Field(None, alias="backupSource")


class ClusterSpec(BaseModel):
    """Desired state of a DistributedRedisCluster."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    master_size: Annotated[int, Field(ge=0, alias="masterSize")] = 3
    cluster_replicas: Annotated[int, Field(ge=0, alias="clusterReplicas")] = 1
    image: Annotated[str, Field(min_length=1)]
    service_name: str = Field("", alias="serviceName")
    resources: ResourceRequirements = Field(default_factory=ResourceRequirements)
    password_secret: LocalObjectReference | None = Field(None, alias="passwordSecret")
    init: InitSpec | None = None
    annotations: dict[str, str] = Field(default_factory=dict)
    # Extra redis.conf directives
    config: dict[str, str] = Field(default_factory=dict)
    # Not diffed: volume layout cannot change without recreating the StatefulSet
    storage: dict[str, Any] | None = None


class RestoreStatus(BaseModel):
    """Restore progress recorded on the cluster status."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    backup: BackupDescriptor | None = None
    restore_succeeded: Annotated[int, Field(ge=0, alias="restoreSucceeded")] = 0
    phase: RestorePhase = RestorePhase.NOT_RESTORING

    @field_validator("phase", mode="before")
    @classmethod
    def unknown_phase_is_restoring(cls, v: Any) -> Any:
        # Phases written by newer restore jobs still mean the restore is underway
        if v is None:
            return RestorePhase.NOT_RESTORING
        if isinstance(v, str) and v not in {p.value for p in RestorePhase}:
            return RestorePhase.RESTORING
        return v


class ClusterStatus(BaseModel):
    """Observed status of a DistributedRedisCluster."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    status: str = ""
    reason: str = ""
    restore: RestoreStatus = Field(default_factory=RestoreStatus)


class ObjectMeta(BaseModel):
    """Subset of object metadata the core reads."""

    model_config = {"extra": "ignore"}

    name: Annotated[str, Field(min_length=1, max_length=63)]
    namespace: str = "default"
    uid: str = ""
    labels: dict[str, str] = Field(default_factory=dict)


# =============================================================================
# Cluster Resource
# =============================================================================


class DistributedRedisCluster(BaseModel):
    """A sharded Redis cluster managed as a set of child resources."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    api_version: str = Field(API_VERSION, alias="apiVersion")
    kind: str = KIND
    metadata: ObjectMeta
    spec: ClusterSpec
    status: ClusterStatus = Field(default_factory=ClusterStatus)

    @model_validator(mode="after")
    def default_service_name(self) -> DistributedRedisCluster:
        if not self.spec.service_name:
            self.spec.service_name = self.metadata.name
        return self

    def backup_source(self) -> BackupSource | None:
        """Backup the cluster should be seeded from, if any."""
        if self.spec.init is None:
            return None
        return self.spec.init.backup_source

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    def is_restore_from_backup(self) -> bool:
        """Check whether the cluster was requested to start from a backup."""
        return self.backup_source() is not None

    def is_restored(self) -> bool:
        """Check whether the restore has completed."""
        return self.restore_phase == RestorePhase.RESTORED

    @property
    def restore_phase(self) -> RestorePhase:
        """Current restore phase.

        A cluster that requests a restore but has not recorded a phase yet
        is considered RESTORING.
        """
        if not self.is_restore_from_backup():
            return RestorePhase.NOT_RESTORING
        phase = self.status.restore.phase
        if phase == RestorePhase.NOT_RESTORING:
            return RestorePhase.RESTORING
        return phase

    def with_restore_phase(self, target: RestorePhase) -> DistributedRedisCluster:
        """Return a copy whose status moved to target.

        Raises:
            InvalidRestoreTransition: If the move is not a legal transition.
        """
        if target != RestorePhase.NOT_RESTORING and not self.is_restore_from_backup():
            raise InvalidRestoreTransition(
                f"Cluster {self.namespace}/{self.name} has no backup source to restore from"
            )
        phase = self.restore_phase.transition(target)
        restore = self.status.restore.model_copy(update={"phase": phase})
        status = self.status.model_copy(update={"restore": restore})
        return self.model_copy(update={"status": status})
