"""Thin CRUD clients for the resource kinds a cluster owns.

Each control is keyed by (namespace, name) and wraps one Kubernetes API
group. A 404 on read is the only error given its own type; everything else
raised by the API client propagates unchanged.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from kubernetes import client as kube_client
from kubernetes import config as kube_config
from kubernetes.client.exceptions import ApiException

from .config import Config

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Server-side dry run, validated and admitted but never persisted
DRY_RUN_ALL = "All"


class NotFoundError(Exception):
    """Raised when the requested object does not exist."""

    def __init__(self, kind: str, namespace: str, name: str) -> None:
        self.kind = kind
        self.namespace = namespace
        self.name = name
        super().__init__(f"{kind} {namespace}/{name} not found")


def _read(kind: str, namespace: str, name: str, read: Callable[..., T]) -> T:
    try:
        return read(name=name, namespace=namespace)
    except ApiException as e:
        if e.status == 404:
            raise NotFoundError(kind, namespace, name) from e
        raise


class _NamespacedControl:
    """Shared plumbing for the per-kind controls."""

    kind = ""

    def __init__(self, api: Any, *, dry_run: bool = False) -> None:
        self._api = api
        self._dry_run = dry_run

    def _write_kwargs(self) -> dict[str, str]:
        return {"dry_run": DRY_RUN_ALL} if self._dry_run else {}

    def _log_write(self, verb: str, body: Any) -> None:
        logger.debug(
            "%s %s",
            verb,
            self.kind,
            extra={
                "kind": self.kind,
                "namespace": body.metadata.namespace,
                "resource_name": body.metadata.name,
                "dry_run": self._dry_run,
            },
        )


class StatefulSetControl(_NamespacedControl):
    """StatefulSet CRUD via AppsV1Api."""

    kind = "StatefulSet"

    def get_statefulset(self, namespace: str, name: str) -> kube_client.V1StatefulSet:
        return _read(self.kind, namespace, name, self._api.read_namespaced_stateful_set)

    def create_statefulset(self, sts: kube_client.V1StatefulSet) -> kube_client.V1StatefulSet:
        self._log_write("create", sts)
        return self._api.create_namespaced_stateful_set(
            namespace=sts.metadata.namespace, body=sts, **self._write_kwargs()
        )

    def update_statefulset(self, sts: kube_client.V1StatefulSet) -> kube_client.V1StatefulSet:
        self._log_write("update", sts)
        return self._api.replace_namespaced_stateful_set(
            name=sts.metadata.name,
            namespace=sts.metadata.namespace,
            body=sts,
            **self._write_kwargs(),
        )


class ServiceControl(_NamespacedControl):
    """Service CRUD via CoreV1Api."""

    kind = "Service"

    def get_service(self, namespace: str, name: str) -> kube_client.V1Service:
        return _read(self.kind, namespace, name, self._api.read_namespaced_service)

    def create_service(self, svc: kube_client.V1Service) -> kube_client.V1Service:
        self._log_write("create", svc)
        return self._api.create_namespaced_service(
            namespace=svc.metadata.namespace, body=svc, **self._write_kwargs()
        )


class ConfigMapControl(_NamespacedControl):
    """ConfigMap CRUD via CoreV1Api."""

    kind = "ConfigMap"

    def get_config_map(self, namespace: str, name: str) -> kube_client.V1ConfigMap:
        return _read(self.kind, namespace, name, self._api.read_namespaced_config_map)

    def create_config_map(self, cm: kube_client.V1ConfigMap) -> kube_client.V1ConfigMap:
        self._log_write("create", cm)
        return self._api.create_namespaced_config_map(
            namespace=cm.metadata.namespace, body=cm, **self._write_kwargs()
        )

    def update_config_map(self, cm: kube_client.V1ConfigMap) -> kube_client.V1ConfigMap:
        self._log_write("update", cm)
        return self._api.replace_namespaced_config_map(
            name=cm.metadata.name,
            namespace=cm.metadata.namespace,
            body=cm,
            **self._write_kwargs(),
        )


class PodDisruptionBudgetControl(_NamespacedControl):
    """PodDisruptionBudget CRUD via PolicyV1Api."""

    kind = "PodDisruptionBudget"

    def get_pod_disruption_budget(
        self, namespace: str, name: str
    ) -> kube_client.V1PodDisruptionBudget:
        return _read(
            self.kind, namespace, name, self._api.read_namespaced_pod_disruption_budget
        )

    def create_pod_disruption_budget(
        self, pdb: kube_client.V1PodDisruptionBudget
    ) -> kube_client.V1PodDisruptionBudget:
        self._log_write("create", pdb)
        return self._api.create_namespaced_pod_disruption_budget(
            namespace=pdb.metadata.namespace, body=pdb, **self._write_kwargs()
        )


class SecretControl(_NamespacedControl):
    """Secret access via CoreV1Api."""

    kind = "Secret"

    def get_secret(self, namespace: str, name: str) -> kube_client.V1Secret:
        return _read(self.kind, namespace, name, self._api.read_namespaced_secret)

    def create_secret(self, secret: kube_client.V1Secret) -> bool:
        """Create secret unless an object with its name already exists.

        Returns:
            True if the secret was created.
        """
        namespace = secret.metadata.namespace
        name = secret.metadata.name
        try:
            self.get_secret(namespace, name)
        except NotFoundError:
            logger.info(
                "creating a new secret",
                extra={"Secret.Namespace": namespace, "Secret.Name": name},
            )
            self._log_write("create", secret)
            self._api.create_namespaced_secret(
                namespace=namespace, body=secret, **self._write_kwargs()
            )
            return True
        return False


@dataclass
class KubeClients:
    """The set of controls a reconciliation pass talks to."""

    statefulsets: StatefulSetControl
    services: ServiceControl
    config_maps: ConfigMapControl
    pdbs: PodDisruptionBudgetControl
    secrets: SecretControl

    @classmethod
    def from_api_client(
        cls, api_client: kube_client.ApiClient | None = None, *, dry_run: bool = False
    ) -> KubeClients:
        apps = kube_client.AppsV1Api(api_client)
        core = kube_client.CoreV1Api(api_client)
        policy = kube_client.PolicyV1Api(api_client)
        return cls(
            statefulsets=StatefulSetControl(apps, dry_run=dry_run),
            services=ServiceControl(core, dry_run=dry_run),
            config_maps=ConfigMapControl(core, dry_run=dry_run),
            pdbs=PodDisruptionBudgetControl(policy, dry_run=dry_run),
            secrets=SecretControl(core, dry_run=dry_run),
        )


def load_kube_config(config: Config) -> kube_client.ApiClient:
    """Load cluster credentials and return an API client.

    Uses the pod service account when in_cluster is set, otherwise the
    kubeconfig file (explicit path or the library default).
    """
    if config.in_cluster:
        kube_config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes configuration")
    else:
        config_file = str(config.kubeconfig) if config.kubeconfig else None
        kube_config.load_kube_config(config_file=config_file)
        logger.info(
            "Loaded kubeconfig",
            extra={"kubeconfig": config_file or "default"},
        )
    return kube_client.ApiClient()
