"""Desired-object builders for cluster child resources.

Every builder is a pure function of the cluster and the names and labels it
is given. Nothing here talks to the API server.
"""

from __future__ import annotations

from kubernetes import client as kube_client
from kubernetes.utils import parse_quantity

from .config import (
    CLUSTER_BUS_PORT_OFFSET,
    DEFAULT_PASSWORD_ENV_NAME,
    DEFAULT_PDB_MAX_UNAVAILABLE,
    DEFAULT_REDIS_PORT,
)
from .labels import redis_config_map_name, restore_config_map_name
from .models import DistributedRedisCluster

REDIS_CONTAINER_NAME = "redis"
PASSWORD_SECRET_KEY = "password"

CONF_VOLUME = "conf"
CONF_MOUNT_PATH = "/conf"
DATA_VOLUME = "data"
DATA_MOUNT_PATH = "/data"

REDIS_CONF_KEY = "redis.conf"
FIX_IP_SCRIPT_KEY = "fix-ip.sh"
# Key of the restore ConfigMap recording how many restores succeeded
RESTORE_SUCCEEDED_KEY = "succeeded"

# Directives every node needs to join the cluster; user config cannot override them
REQUIRED_REDIS_CONFIG = {
    "cluster-enabled": "yes",
    "cluster-config-file": f"{DATA_MOUNT_PATH}/nodes.conf",
    "dir": DATA_MOUNT_PATH,
}

# Rewrites the node's own IP in nodes.conf after a pod restart
FIX_IP_SCRIPT = f"""#!/bin/sh
CLUSTER_CONFIG="{DATA_MOUNT_PATH}/nodes.conf"
if [ -f ${{CLUSTER_CONFIG}} ]; then
  if [ -z "${{POD_IP}}" ]; then
    echo "Unable to determine Pod IP address!"
    exit 1
  fi
  echo "Updating my IP to ${{POD_IP}} in ${{CLUSTER_CONFIG}}"
  sed -i.bak -e '/myself/ s/[0-9]\\{{1,3\\}}\\.[0-9]\\{{1,3\\}}\\.[0-9]\\{{1,3\\}}\\.[0-9]\\{{1,3\\}}/'${{POD_IP}}'/' ${{CLUSTER_CONFIG}}
fi
exec "$@"
"""


class BuildError(Exception):
    """Raised when a desired object cannot be built from the cluster."""

    pass


def owner_references(cluster: DistributedRedisCluster) -> list[kube_client.V1OwnerReference] | None:
    """Controller reference to the cluster, so children are garbage collected with it."""
    if not cluster.metadata.uid:
        return None
    return [
        kube_client.V1OwnerReference(
            api_version=cluster.api_version,
            kind=cluster.kind,
            name=cluster.name,
            uid=cluster.metadata.uid,
            controller=True,
            block_owner_deletion=True,
        )
    ]


def _object_meta(
    cluster: DistributedRedisCluster, name: str, labels: dict[str, str]
) -> kube_client.V1ObjectMeta:
    return kube_client.V1ObjectMeta(
        name=name,
        namespace=cluster.namespace,
        labels=dict(labels),
        owner_references=owner_references(cluster),
    )


def _resource_requirements(cluster: DistributedRedisCluster) -> kube_client.V1ResourceRequirements:
    resources = cluster.spec.resources
    for section, quantities in (("requests", resources.requests), ("limits", resources.limits)):
        for key, value in quantities.items():
            try:
                parse_quantity(value)
            except ValueError as e:
                raise BuildError(
                    f"Invalid {section}.{key} quantity {value!r} for {cluster.name}"
                ) from e
    return kube_client.V1ResourceRequirements(
        requests=dict(resources.requests) or None,
        limits=dict(resources.limits) or None,
    )


def _redis_env(
    cluster: DistributedRedisCluster, password_env: str
) -> list[kube_client.V1EnvVar]:
    env = [
        kube_client.V1EnvVar(
            name="POD_IP",
            value_from=kube_client.V1EnvVarSource(
                field_ref=kube_client.V1ObjectFieldSelector(field_path="status.podIP")
            ),
        ),
    ]
    secret = cluster.spec.password_secret
    if secret is not None:
        if not secret.name:
            raise BuildError(f"passwordSecret of {cluster.name} has no name")
        env.append(
            kube_client.V1EnvVar(
                name=password_env,
                value_from=kube_client.V1EnvVarSource(
                    secret_key_ref=kube_client.V1SecretKeySelector(
                        name=secret.name, key=PASSWORD_SECRET_KEY
                    )
                ),
            )
        )
    return env


def _redis_args(cluster: DistributedRedisCluster, password_env: str) -> list[str]:
    args = [f"{CONF_MOUNT_PATH}/{FIX_IP_SCRIPT_KEY}", "redis-server", f"{CONF_MOUNT_PATH}/{REDIS_CONF_KEY}"]
    if cluster.spec.password_secret is not None:
        args += ["--requirepass", f"$({password_env})", "--masterauth", f"$({password_env})"]
    return args


def new_statefulset(
    cluster: DistributedRedisCluster,
    name: str,
    svc_name: str,
    labels: dict[str, str],
    *,
    port: int = DEFAULT_REDIS_PORT,
    password_env: str = DEFAULT_PASSWORD_ENV_NAME,
) -> kube_client.V1StatefulSet:
    """Build the StatefulSet of one shard: one master plus clusterReplicas replicas.

    Raises:
        BuildError: If the password reference or a resource quantity is malformed.
    """
    container = kube_client.V1Container(
        name=REDIS_CONTAINER_NAME,
        image=cluster.spec.image,
        image_pull_policy="IfNotPresent",
        command=["sh"],
        args=_redis_args(cluster, password_env),
        env=_redis_env(cluster, password_env),
        ports=[
            kube_client.V1ContainerPort(name="client", container_port=port),
            kube_client.V1ContainerPort(name="gossip", container_port=port + CLUSTER_BUS_PORT_OFFSET),
        ],
        resources=_resource_requirements(cluster),
        volume_mounts=[
            kube_client.V1VolumeMount(name=CONF_VOLUME, mount_path=CONF_MOUNT_PATH),
            kube_client.V1VolumeMount(name=DATA_VOLUME, mount_path=DATA_MOUNT_PATH),
        ],
        readiness_probe=kube_client.V1Probe(
            tcp_socket=kube_client.V1TCPSocketAction(port=port),
            initial_delay_seconds=10,
            period_seconds=10,
        ),
    )

    volumes = [
        kube_client.V1Volume(
            name=CONF_VOLUME,
            config_map=kube_client.V1ConfigMapVolumeSource(
                name=redis_config_map_name(cluster.name), default_mode=0o755
            ),
        ),
    ]
    claim_templates = None
    storage = cluster.spec.storage or {}
    if storage.get("size"):
        claim_templates = [
            kube_client.V1PersistentVolumeClaim(
                metadata=kube_client.V1ObjectMeta(name=DATA_VOLUME, labels=dict(labels)),
                spec=kube_client.V1PersistentVolumeClaimSpec(
                    access_modes=["ReadWriteOnce"],
                    storage_class_name=storage.get("class"),
                    resources=kube_client.V1VolumeResourceRequirements(
                        requests={"storage": str(storage["size"])}
                    ),
                ),
            )
        ]
    else:
        volumes.append(
            kube_client.V1Volume(name=DATA_VOLUME, empty_dir=kube_client.V1EmptyDirVolumeSource())
        )

    meta = _object_meta(cluster, name, labels)
    meta.annotations = dict(cluster.spec.annotations) or None

    return kube_client.V1StatefulSet(
        api_version="apps/v1",
        kind="StatefulSet",
        metadata=meta,
        spec=kube_client.V1StatefulSetSpec(
            replicas=cluster.spec.cluster_replicas + 1,
            service_name=svc_name,
            pod_management_policy="Parallel",
            update_strategy=kube_client.V1StatefulSetUpdateStrategy(type="OnDelete"),
            selector=kube_client.V1LabelSelector(match_labels=dict(labels)),
            template=kube_client.V1PodTemplateSpec(
                metadata=kube_client.V1ObjectMeta(
                    labels=dict(labels),
                    annotations=dict(cluster.spec.annotations) or None,
                ),
                spec=kube_client.V1PodSpec(containers=[container], volumes=volumes),
            ),
            volume_claim_templates=claim_templates,
        ),
    )


def new_pod_disruption_budget(
    cluster: DistributedRedisCluster,
    name: str,
    labels: dict[str, str],
    *,
    max_unavailable: int = DEFAULT_PDB_MAX_UNAVAILABLE,
) -> kube_client.V1PodDisruptionBudget:
    """Build the disruption budget guarding the StatefulSet called name."""
    return kube_client.V1PodDisruptionBudget(
        api_version="policy/v1",
        kind="PodDisruptionBudget",
        metadata=_object_meta(cluster, name, labels),
        spec=kube_client.V1PodDisruptionBudgetSpec(
            max_unavailable=max_unavailable,
            selector=kube_client.V1LabelSelector(match_labels=dict(labels)),
        ),
    )


def new_headless_service(
    cluster: DistributedRedisCluster,
    name: str,
    labels: dict[str, str],
    *,
    port: int = DEFAULT_REDIS_PORT,
) -> kube_client.V1Service:
    """Build the per-shard Service giving each pod a stable DNS name."""
    return kube_client.V1Service(
        api_version="v1",
        kind="Service",
        metadata=_object_meta(cluster, name, labels),
        spec=kube_client.V1ServiceSpec(
            cluster_ip="None",
            publish_not_ready_addresses=True,
            selector=dict(labels),
            ports=[
                kube_client.V1ServicePort(name="client", port=port),
                kube_client.V1ServicePort(name="gossip", port=port + CLUSTER_BUS_PORT_OFFSET),
            ],
        ),
    )


def new_service(
    cluster: DistributedRedisCluster,
    name: str,
    labels: dict[str, str],
    *,
    port: int = DEFAULT_REDIS_PORT,
) -> kube_client.V1Service:
    """Build the client Service spanning the pods of every shard."""
    return kube_client.V1Service(
        api_version="v1",
        kind="Service",
        metadata=_object_meta(cluster, name, labels),
        spec=kube_client.V1ServiceSpec(
            type="ClusterIP",
            selector=dict(labels),
            ports=[kube_client.V1ServicePort(name="client", port=port)],
        ),
    )


def render_redis_conf(cluster: DistributedRedisCluster, port: int = DEFAULT_REDIS_PORT) -> str:
    settings = {"port": str(port), **cluster.spec.config, **REQUIRED_REDIS_CONFIG}
    return "".join(f"{key} {value}\n" for key, value in sorted(settings.items()))


def new_config_map(
    cluster: DistributedRedisCluster,
    labels: dict[str, str],
    *,
    port: int = DEFAULT_REDIS_PORT,
) -> kube_client.V1ConfigMap:
    return kube_client.V1ConfigMap(
        api_version="v1",
        kind="ConfigMap",
        metadata=_object_meta(cluster, redis_config_map_name(cluster.name), labels),
        data={
            REDIS_CONF_KEY: render_redis_conf(cluster, port),
            FIX_IP_SCRIPT_KEY: FIX_IP_SCRIPT,
        },
    )


def new_restore_config_map(
    cluster: DistributedRedisCluster, labels: dict[str, str]
) -> kube_client.V1ConfigMap:
    """Build the ConfigMap recording restore progress for the restore jobs."""
    return kube_client.V1ConfigMap(
        api_version="v1",
        kind="ConfigMap",
        metadata=_object_meta(cluster, restore_config_map_name(cluster.name), labels),
        data={RESTORE_SUCCEEDED_KEY: str(cluster.status.restore.restore_succeeded)},
    )
