"""Reconciliation pass for one DistributedRedisCluster.

A pass walks a fixed sequence of phases:

1. Ensure StatefulSets (each after its PodDisruptionBudget)
2. Ensure per-shard headless Services
3. Ensure the client Service
4. Ensure ConfigMaps (plus the restore ConfigMap while restoring)
5. Ensure the restore credential Secret (while restoring)

The pass stops at the first error. Resources created by earlier phases are
left in place; every phase is idempotent, so the next pass converges.

Scheduling, requeueing and status updates belong to the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from .config import Config
from .ensurer import EnsureResource
from .kube import KubeClients, load_kube_config
from .labels import default_labels
from .models import DistributedRedisCluster

logger = logging.getLogger(__name__)


class ReconcilePhase(str, Enum):
    """Phases of a pass, in execution order."""

    ENSURE_STATEFULSETS = "EnsureStatefulSets"
    ENSURE_HEADLESS_SERVICES = "EnsureHeadlessServices"
    ENSURE_SERVICE = "EnsureService"
    ENSURE_CONFIGMAP = "EnsureConfigMap"
    ENSURE_OSM_SECRET = "EnsureOSMSecret"
    DONE = "Done"


@dataclass
class ReconcileResult:
    """Result of a single reconciliation pass."""

    namespace: str
    name: str
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    phase: ReconcilePhase = ReconcilePhase.ENSURE_STATEFULSETS
    statefulsets_updated: bool = False
    error: Exception | None = None

    @property
    def duration_seconds(self) -> float:
        """Calculate duration in seconds."""
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    @property
    def success(self) -> bool:
        """Check if the pass reached DONE without error."""
        return self.error is None and self.phase is ReconcilePhase.DONE


class Reconciler:
    """Runs reconciliation passes against a set of Kubernetes controls.

    At most one pass per cluster identity is expected to run at a time;
    this is assumed, not enforced.
    """

    def __init__(self, clients: KubeClients, config: Config | None = None) -> None:
        self._config = config or Config()
        self._ensurer = EnsureResource(clients, self._config)

    @classmethod
    def from_config(cls, config: Config) -> Reconciler:
        """Build a reconciler talking to the cluster described by config."""
        api_client = load_kube_config(config)
        return cls(KubeClients.from_api_client(api_client, dry_run=config.dry_run), config)

    @property
    def config(self) -> Config:
        """Get the reconciler configuration."""
        return self._config

    @property
    def ensurer(self) -> EnsureResource:
        return self._ensurer

    def reconcile(
        self, cluster: DistributedRedisCluster, labels: dict[str, str] | None = None
    ) -> ReconcileResult:
        """Run one pass for cluster.

        Args:
            cluster: Validated cluster resource.
            labels: Base labels for child resources (default: derived from cluster).

        Returns:
            Result carrying the phase reached and the first error, if any.
        """
        result = ReconcileResult(namespace=cluster.namespace, name=cluster.name)
        base = dict(labels) if labels is not None else default_labels(cluster)

        ensurer = self._ensurer
        steps: tuple[tuple[ReconcilePhase, Callable[..., bool | None]], ...] = (
            (ReconcilePhase.ENSURE_STATEFULSETS, ensurer.ensure_statefulsets),
            (ReconcilePhase.ENSURE_HEADLESS_SERVICES, ensurer.ensure_headless_services),
            (ReconcilePhase.ENSURE_SERVICE, ensurer.ensure_service),
            (ReconcilePhase.ENSURE_CONFIGMAP, ensurer.ensure_configmap),
            (ReconcilePhase.ENSURE_OSM_SECRET, ensurer.ensure_osm_secret),
        )

        for phase, step in steps:
            result.phase = phase
            try:
                outcome = step(cluster, base)
            except Exception as e:
                result.error = e
                break
            if phase is ReconcilePhase.ENSURE_STATEFULSETS:
                result.statefulsets_updated = bool(outcome)
        else:
            result.phase = ReconcilePhase.DONE

        result.end_time = datetime.now(UTC)
        self._log_result(result)
        return result

    def reconcile_or_raise(
        self, cluster: DistributedRedisCluster, labels: dict[str, str] | None = None
    ) -> ReconcileResult:
        """Run one pass and re-raise its first error unchanged."""
        result = self.reconcile(cluster, labels)
        if result.error is not None:
            raise result.error
        return result

    def _log_result(self, result: ReconcileResult) -> None:
        """Log the reconciliation result."""
        extra = {
            "cluster_namespace": result.namespace,
            "cluster_name": result.name,
            "phase": result.phase.value,
            "statefulsets_updated": result.statefulsets_updated,
            "duration_seconds": result.duration_seconds,
            "dry_run": self._config.dry_run,
        }
        if result.error is not None:
            logger.error(
                "Reconciliation failed",
                extra={
                    **extra,
                    "error": str(result.error),
                    "error_type": type(result.error).__name__,
                },
            )
        else:
            logger.info("Reconciliation completed", extra=extra)
