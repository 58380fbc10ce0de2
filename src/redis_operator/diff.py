"""Staleness rules comparing desired cluster state with observed objects.

Only fields that can be changed in place are compared. Anything else (for
instance the volume layout of a StatefulSet) would need a destructive
recreate, which the core never performs, so it is deliberately not diffed.

Quantities are compared numerically: "1Gi" and "1024Mi" are the same request.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from kubernetes import client as kube_client
from kubernetes.utils import parse_quantity

from .builders import RESTORE_SUCCEEDED_KEY, BuildError
from .config import DEFAULT_PASSWORD_ENV_NAME
from .models import QUANTITY_KEYS, DistributedRedisCluster

logger = logging.getLogger(__name__)

ZERO = Decimal(0)


def _quantity(values: dict[str, Any] | None, key: str) -> Decimal:
    # Missing compares as zero on both sides
    if not values or values.get(key) in (None, ""):
        return ZERO
    return parse_quantity(values[key])


def get_secret_key_ref_by_key(key: str, env: list[kube_client.V1EnvVar] | None) -> str:
    """Name of the Secret the variable key is bound to, or "" when unbound."""
    for var in env or []:
        if var.name != key:
            continue
        if var.value_from is not None and var.value_from.secret_key_ref is not None:
            return var.value_from.secret_key_ref.name or ""
    return ""


def _primary_container(sts: kube_client.V1StatefulSet) -> kube_client.V1Container | None:
    try:
        containers = sts.spec.template.spec.containers
    except AttributeError:
        return None
    return containers[0] if containers else None


def statefulset_drift(
    cluster: DistributedRedisCluster,
    sts: kube_client.V1StatefulSet,
    *,
    password_env: str = DEFAULT_PASSWORD_ENV_NAME,
) -> list[str]:
    """List the in-place-mutable fields where sts differs from the cluster spec.

    Returns:
        Drifted field names, empty when the StatefulSet is current.
    """
    drift: list[str] = []

    if cluster.spec.cluster_replicas + 1 != sts.spec.replicas:
        drift.append("replicas")

    container = _primary_container(sts)
    if container is None:
        # Nothing to compare against; rebuilding restores the container
        drift.append("containers")
        return drift

    if cluster.spec.image != container.image:
        drift.append("image")

    secret = cluster.spec.password_secret
    if secret is not None:
        secret_name = get_secret_key_ref_by_key(password_env, container.env)
        if not secret_name or secret_name != secret.name:
            drift.append("passwordSecret")

    expected = cluster.spec.resources
    current = container.resources or kube_client.V1ResourceRequirements()
    for section, want, have in (
        ("requests", expected.requests, current.requests),
        ("limits", expected.limits, current.limits),
    ):
        for key in QUANTITY_KEYS:
            try:
                desired = _quantity(want, key)
            except ValueError as e:
                raise BuildError(
                    f"Invalid {section}.{key} quantity {want[key]!r} for {cluster.name}"
                ) from e
            if desired != _quantity(have, key):
                drift.append(f"resources.{section}.{key}")

    return drift


def statefulset_is_stale(
    cluster: DistributedRedisCluster,
    sts: kube_client.V1StatefulSet,
    *,
    password_env: str = DEFAULT_PASSWORD_ENV_NAME,
) -> bool:
    """Check whether sts must be updated to match the cluster spec."""
    drift = statefulset_drift(cluster, sts, password_env=password_env)
    if drift:
        logger.debug(
            "StatefulSet drift detected",
            extra={"statefulset": sts.metadata.name, "drift": drift},
        )
    return bool(drift)


def restore_config_map_is_stale(
    cluster: DistributedRedisCluster, cm: kube_client.V1ConfigMap
) -> bool:
    """Check whether the recorded restore count lags the cluster status."""
    recorded = (cm.data or {}).get(RESTORE_SUCCEEDED_KEY)
    return recorded != str(cluster.status.restore.restore_succeeded)
