"""Tests for desired-object builders."""

import pytest
from kube_mock import make_cluster, make_restoring_cluster

from redis_operator.builders import (
    FIX_IP_SCRIPT_KEY,
    REDIS_CONF_KEY,
    RESTORE_SUCCEEDED_KEY,
    BuildError,
    new_config_map,
    new_headless_service,
    new_pod_disruption_budget,
    new_restore_config_map,
    new_service,
    new_statefulset,
    owner_references,
    render_redis_conf,
)
from redis_operator.labels import STATEFULSET_LABEL
from redis_operator.models import DistributedRedisCluster

LABELS = {"redis.kun/name": "x", STATEFULSET_LABEL: "drc-x-0"}


class TestStatefulSet:
    """Tests for new_statefulset."""

    def test_replicas_and_identity(self, cluster: DistributedRedisCluster) -> None:
        sts = new_statefulset(cluster, "drc-x-0", "x-svc-0", LABELS)

        assert sts.metadata.name == "drc-x-0"
        assert sts.metadata.namespace == "db"
        assert sts.spec.replicas == 2
        assert sts.spec.service_name == "x-svc-0"
        assert sts.spec.selector.match_labels == LABELS
        assert sts.spec.template.metadata.labels == LABELS

    def test_primary_container(self, cluster: DistributedRedisCluster) -> None:
        sts = new_statefulset(cluster, "drc-x-0", "x-svc-0", LABELS, port=7000)

        container = sts.spec.template.spec.containers[0]
        assert container.image == "redis:5.0.4-alpine"
        assert container.resources.requests == {"cpu": "100m", "memory": "128Mi"}
        assert container.resources.limits == {"cpu": "500m", "memory": "512Mi"}
        assert [p.container_port for p in container.ports] == [7000, 17000]

    def test_labels_are_copied(self, cluster: DistributedRedisCluster) -> None:
        labels = dict(LABELS)

        sts = new_statefulset(cluster, "drc-x-0", "x-svc-0", labels)
        labels[STATEFULSET_LABEL] = "drc-x-1"

        assert sts.spec.selector.match_labels[STATEFULSET_LABEL] == "drc-x-0"

    def test_password_env(self) -> None:
        cluster = make_cluster(passwordSecret={"name": "redis-pw"})

        sts = new_statefulset(cluster, "drc-x-0", "x-svc-0", LABELS)

        env = {e.name: e for e in sts.spec.template.spec.containers[0].env}
        assert env["REDIS_PASSWORD"].value_from.secret_key_ref.name == "redis-pw"
        assert "--requirepass" in sts.spec.template.spec.containers[0].args

    def test_password_secret_without_name(self) -> None:
        cluster = make_cluster(passwordSecret={"name": ""})

        with pytest.raises(BuildError):
            new_statefulset(cluster, "drc-x-0", "x-svc-0", LABELS)

    def test_invalid_quantity(self) -> None:
        cluster = make_cluster(resources={"limits": {"memory": "lots"}})

        with pytest.raises(BuildError) as exc_info:
            new_statefulset(cluster, "drc-x-0", "x-svc-0", LABELS)

        assert "limits.memory" in str(exc_info.value)

    def test_persistent_storage(self) -> None:
        cluster = make_cluster(storage={"size": "10Gi", "class": "fast"})

        sts = new_statefulset(cluster, "drc-x-0", "x-svc-0", LABELS)

        claim = sts.spec.volume_claim_templates[0]
        assert claim.spec.resources.requests == {"storage": "10Gi"}
        assert claim.spec.storage_class_name == "fast"
        assert all(v.name != "data" for v in sts.spec.template.spec.volumes)

    def test_owner_reference(self, cluster: DistributedRedisCluster) -> None:
        sts = new_statefulset(cluster, "drc-x-0", "x-svc-0", LABELS)

        ref = sts.metadata.owner_references[0]
        assert ref.kind == "DistributedRedisCluster"
        assert ref.uid == "uid-1234"
        assert ref.controller is True

    def test_no_owner_reference_without_uid(self, cluster: DistributedRedisCluster) -> None:
        cluster.metadata.uid = ""

        assert owner_references(cluster) is None


class TestOtherBuilders:
    """Tests for the budget, Service and ConfigMap builders."""

    def test_pod_disruption_budget(self, cluster: DistributedRedisCluster) -> None:
        pdb = new_pod_disruption_budget(cluster, "drc-x-0", LABELS, max_unavailable=2)

        assert pdb.metadata.name == "drc-x-0"
        assert pdb.spec.max_unavailable == 2
        assert pdb.spec.selector.match_labels == LABELS

    def test_headless_service(self, cluster: DistributedRedisCluster) -> None:
        svc = new_headless_service(cluster, "x-svc-0", LABELS)

        assert svc.spec.cluster_ip == "None"
        assert svc.spec.selector == LABELS
        assert [p.port for p in svc.spec.ports] == [6379, 16379]

    def test_client_service(self, cluster: DistributedRedisCluster) -> None:
        svc = new_service(cluster, "x-svc", {"redis.kun/name": "x"})

        assert svc.metadata.name == "x-svc"
        assert svc.spec.cluster_ip is None
        assert svc.spec.selector == {"redis.kun/name": "x"}
        assert [p.port for p in svc.spec.ports] == [6379]

    def test_config_map(self) -> None:
        cluster = make_cluster(config={"maxmemory-policy": "allkeys-lru", "cluster-enabled": "no"})

        cm = new_config_map(cluster, {"redis.kun/name": "x"})

        assert cm.metadata.name == "redis-cluster-x"
        conf = cm.data[REDIS_CONF_KEY]
        assert "maxmemory-policy allkeys-lru\n" in conf
        assert "cluster-enabled yes\n" in conf
        assert "port 6379\n" in conf
        assert cm.data[FIX_IP_SCRIPT_KEY].startswith("#!/bin/sh")

    def test_render_redis_conf_is_deterministic(self, cluster: DistributedRedisCluster) -> None:
        assert render_redis_conf(cluster) == render_redis_conf(cluster)

    def test_restore_config_map(self) -> None:
        cluster = make_restoring_cluster(restore_succeeded=3)

        cm = new_restore_config_map(cluster, {"redis.kun/name": "x"})

        assert cm.metadata.name == "rediscluster-restore-x"
        assert cm.data == {RESTORE_SUCCEEDED_KEY: "3"}
