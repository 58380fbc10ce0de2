"""Ensure operations for the child resources of a DistributedRedisCluster.

Every resource kind follows the same shape:

    fetch observed object
      absent   -> build desired object, create it
      present  -> stale? build desired object, update it : nothing

The shape lives in ensure_resource(); each kind only supplies its
capabilities (how to fetch, build, create and, where the kind is ever
updated, how to update and when it is stale).

Errors other than NotFound propagate unchanged. Nothing is retried and
nothing already created is rolled back: the next pass converges.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

from .builders import (
    new_config_map,
    new_headless_service,
    new_pod_disruption_budget,
    new_restore_config_map,
    new_service,
    new_statefulset,
)
from .config import Config
from .diff import restore_config_map_is_stale, statefulset_is_stale
from .kube import KubeClients, NotFoundError
from .labels import (
    client_labels,
    redis_config_map_name,
    restore_config_map_name,
    shard_labels,
    shards,
)
from .models import DistributedRedisCluster
from .osm import CredentialError, new_osm_secret

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EnsureOutcome(str, Enum):
    """What an ensure call did to the live object."""

    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class ResourceKind(Generic[T]):
    """Capabilities of one resource kind for ensure_resource().

    Kinds without update or is_stale are create-once: an existing object is
    never touched.
    """

    kind: str
    fetch: Callable[[str, str], T]
    build: Callable[[], T]
    create: Callable[[T], Any]
    update: Callable[[T], Any] | None = None
    is_stale: Callable[[T], bool] | None = None


def ensure_resource(kind: ResourceKind[T], namespace: str, name: str) -> EnsureOutcome:
    """Drive one object toward its desired state.

    Raises:
        Any error from fetch (other than NotFoundError), build, create or update.
    """
    log_extra = {f"{kind.kind}.Namespace": namespace, f"{kind.kind}.Name": name}
    try:
        observed = kind.fetch(namespace, name)
    except NotFoundError:
        logger.info("creating a new %s", kind.kind, extra=log_extra)
        kind.create(kind.build())
        return EnsureOutcome.CREATED

    if kind.update is None or kind.is_stale is None or not kind.is_stale(observed):
        return EnsureOutcome.UNCHANGED

    logger.info("updating %s", kind.kind, extra=log_extra)
    kind.update(kind.build())
    return EnsureOutcome.UPDATED


class EnsureResource:
    """Ensure operations invoked once per reconciliation pass.

    The five public methods are the whole surface offered to the controller
    loop. Each takes the cluster and its base label set; shard-scoped labels
    are derived here, per shard, as fresh mappings.
    """

    def __init__(self, clients: KubeClients, config: Config | None = None) -> None:
        self._clients = clients
        self._config = config or Config()

    # -------------------------------------------------------------------------
    # StatefulSets and their disruption budgets
    # -------------------------------------------------------------------------

    def ensure_statefulsets(
        self, cluster: DistributedRedisCluster, labels: dict[str, str]
    ) -> bool:
        """Ensure the StatefulSet (and its budget) of every shard.

        All shards are processed even after one reports an update.

        Returns:
            True if any shard's StatefulSet was updated. Creation does not count.
        """
        updated = False
        for shard in shards(cluster):
            if self._ensure_statefulset(
                cluster,
                shard.statefulset_name,
                shard.headless_service_name,
                shard_labels(labels, shard),
            ):
                updated = True
        return updated

    def _ensure_statefulset(
        self,
        cluster: DistributedRedisCluster,
        ss_name: str,
        svc_name: str,
        labels: dict[str, str],
    ) -> bool:
        # The budget must exist before the pods it guards
        self._ensure_pdb(cluster, ss_name, labels)

        control = self._clients.statefulsets
        config = self._config
        outcome = ensure_resource(
            ResourceKind(
                kind="StatefulSet",
                fetch=control.get_statefulset,
                build=lambda: new_statefulset(
                    cluster,
                    ss_name,
                    svc_name,
                    labels,
                    port=config.redis_port,
                    password_env=config.password_env_name,
                ),
                create=control.create_statefulset,
                update=control.update_statefulset,
                is_stale=lambda sts: statefulset_is_stale(
                    cluster, sts, password_env=config.password_env_name
                ),
            ),
            cluster.namespace,
            ss_name,
        )
        return outcome is EnsureOutcome.UPDATED

    def _ensure_pdb(
        self, cluster: DistributedRedisCluster, name: str, labels: dict[str, str]
    ) -> EnsureOutcome:
        # Create-once: budgets are never updated after creation
        control = self._clients.pdbs
        return ensure_resource(
            ResourceKind(
                kind="PodDisruptionBudget",
                fetch=control.get_pod_disruption_budget,
                build=lambda: new_pod_disruption_budget(
                    cluster, name, labels, max_unavailable=self._config.pdb_max_unavailable
                ),
                create=control.create_pod_disruption_budget,
            ),
            cluster.namespace,
            name,
        )

    # -------------------------------------------------------------------------
    # Services
    # -------------------------------------------------------------------------

    def ensure_headless_services(
        self, cluster: DistributedRedisCluster, labels: dict[str, str]
    ) -> None:
        """Ensure the headless Service of every shard exists."""
        for shard in shards(cluster):
            self._ensure_headless_service(
                cluster, shard.headless_service_name, shard_labels(labels, shard)
            )

    def _ensure_headless_service(
        self, cluster: DistributedRedisCluster, name: str, labels: dict[str, str]
    ) -> EnsureOutcome:
        control = self._clients.services
        return ensure_resource(
            ResourceKind(
                kind="Service",
                fetch=control.get_service,
                build=lambda: new_headless_service(
                    cluster, name, labels, port=self._config.redis_port
                ),
                create=control.create_service,
            ),
            cluster.namespace,
            name,
        )

    def ensure_service(self, cluster: DistributedRedisCluster, labels: dict[str, str]) -> None:
        """Ensure the client Service spanning all shards exists."""
        name = cluster.spec.service_name
        selector = client_labels(labels)
        control = self._clients.services
        ensure_resource(
            ResourceKind(
                kind="Service",
                fetch=control.get_service,
                build=lambda: new_service(cluster, name, selector, port=self._config.redis_port),
                create=control.create_service,
            ),
            cluster.namespace,
            name,
        )

    # -------------------------------------------------------------------------
    # ConfigMaps
    # -------------------------------------------------------------------------

    def ensure_configmap(self, cluster: DistributedRedisCluster, labels: dict[str, str]) -> None:
        """Ensure the redis.conf ConfigMap and, when restoring, the restore ConfigMap."""
        control = self._clients.config_maps
        cm_labels = client_labels(labels)
        ensure_resource(
            ResourceKind(
                kind="ConfigMap",
                fetch=control.get_config_map,
                build=lambda: new_config_map(cluster, cm_labels, port=self._config.redis_port),
                create=control.create_config_map,
            ),
            cluster.namespace,
            redis_config_map_name(cluster.name),
        )

        if cluster.is_restore_from_backup():
            ensure_resource(
                ResourceKind(
                    kind="ConfigMap",
                    fetch=control.get_config_map,
                    build=lambda: new_restore_config_map(cluster, cm_labels),
                    create=control.create_config_map,
                    update=control.update_config_map,
                    is_stale=lambda cm: restore_config_map_is_stale(cluster, cm),
                ),
                cluster.namespace,
                restore_config_map_name(cluster.name),
            )

    # -------------------------------------------------------------------------
    # Restore credentials
    # -------------------------------------------------------------------------

    def ensure_osm_secret(self, cluster: DistributedRedisCluster, labels: dict[str, str]) -> None:
        """Materialize the object storage Secret a pending restore needs.

        Raises:
            CredentialError: If the backup or its backend credentials are unusable.
        """
        if not cluster.is_restore_from_backup() or cluster.is_restored():
            return

        backup = cluster.status.restore.backup
        if backup is None:
            raise CredentialError(
                f"Cluster {cluster.namespace}/{cluster.name} is restoring but has no backup recorded"
            )

        secrets = self._clients.secrets
        secret = new_osm_secret(
            secrets, backup.osm_secret_name(), cluster.namespace, backup.backend
        )
        secret.metadata.labels = client_labels(labels)
        secrets.create_secret(secret)
