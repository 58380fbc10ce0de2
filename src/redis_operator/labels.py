"""Label and name derivation for cluster child resources.

Every resource of shard i carries the same labels, which is what lets the
disruption budget and the Services select exactly the pods of their shard.
Label keys shared between producers and selectors are defined here only.
"""

from __future__ import annotations

from dataclasses import dataclass

from .models import DistributedRedisCluster

OPERATOR_NAME = "redis-cluster-operator"

# Base keys present on every child resource
MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
CLUSTER_NAME_LABEL = "redis.kun/name"

# Shard-scoped keys, never present on cluster-wide resources
STATEFULSET_LABEL = "statefulSet"
COMPONENT_LABEL = "app.kubernetes.io/component"
SHARD_SCOPED_LABELS = (STATEFULSET_LABEL, COMPONENT_LABEL)

STATEFULSET_NAME_PREFIX = "drc"
CONFIG_MAP_NAME_PREFIX = "redis-cluster"
RESTORE_CONFIG_MAP_NAME_PREFIX = "rediscluster-restore"


def cluster_statefulset_name(cluster_name: str, index: int) -> str:
    """Name of the StatefulSet backing shard index."""
    return f"{STATEFULSET_NAME_PREFIX}-{cluster_name}-{index}"


def cluster_headless_svc_name(service_name: str, index: int) -> str:
    """Name of the headless Service addressing the pods of shard index."""
    return f"{service_name}-{index}"


def redis_config_map_name(cluster_name: str) -> str:
    return f"{CONFIG_MAP_NAME_PREFIX}-{cluster_name}"


def restore_config_map_name(cluster_name: str) -> str:
    return f"{RESTORE_CONFIG_MAP_NAME_PREFIX}-{cluster_name}"


@dataclass(frozen=True)
class ShardIdentity:
    """Names of the per-shard resources, derived from cluster identity."""

    cluster_name: str
    service_name: str
    index: int

    @classmethod
    def for_cluster(cls, cluster: DistributedRedisCluster, index: int) -> ShardIdentity:
        if not 0 <= index < cluster.spec.master_size:
            raise IndexError(
                f"Shard {index} out of range for {cluster.name} "
                f"with masterSize {cluster.spec.master_size}"
            )
        return cls(cluster.name, cluster.spec.service_name, index)

    @property
    def statefulset_name(self) -> str:
        return cluster_statefulset_name(self.cluster_name, self.index)

    @property
    def headless_service_name(self) -> str:
        return cluster_headless_svc_name(self.service_name, self.index)

    @property
    def component(self) -> str:
        return f"shard-{self.index}"


def shards(cluster: DistributedRedisCluster) -> list[ShardIdentity]:
    """All shard identities of the cluster, in index order."""
    return [ShardIdentity.for_cluster(cluster, i) for i in range(cluster.spec.master_size)]


def default_labels(cluster: DistributedRedisCluster) -> dict[str, str]:
    """Base labels shared by every child resource of the cluster.

    The cluster's own labels are carried over; the operator keys win on
    conflict so selectors cannot be hijacked from the custom resource.
    """
    labels = dict(cluster.metadata.labels)
    labels[MANAGED_BY_LABEL] = OPERATOR_NAME
    labels[CLUSTER_NAME_LABEL] = cluster.name
    return labels


def shard_labels(base: dict[str, str], shard: ShardIdentity) -> dict[str, str]:
    """Labels for the resources of one shard.

    Returns a new mapping; base is left untouched.
    """
    labels = dict(base)
    labels[STATEFULSET_LABEL] = shard.statefulset_name
    labels[COMPONENT_LABEL] = shard.component
    return labels


def client_labels(base: dict[str, str]) -> dict[str, str]:
    """Labels for cluster-wide resources, with the shard-scoped keys removed."""
    return {k: v for k, v in base.items() if k not in SHARD_SCOPED_LABELS}
