"""Mock Kubernetes API groups backed by MockKubeState.

Only the methods the operator calls are implemented, with the same keyword
signatures as the generated kubernetes client.
"""

from __future__ import annotations

from typing import Any

from .state import MockKubeState


class MockAppsV1Api:
    def __init__(self, state: MockKubeState) -> None:
        self._state = state

    def read_namespaced_stateful_set(self, name: str, namespace: str, **_: Any) -> Any:
        return self._state.read("StatefulSet", namespace, name)

    def create_namespaced_stateful_set(
        self, namespace: str, body: Any, dry_run: str | None = None, **_: Any
    ) -> Any:
        return self._state.create("StatefulSet", namespace, body, dry_run)

    def replace_namespaced_stateful_set(
        self, name: str, namespace: str, body: Any, dry_run: str | None = None, **_: Any
    ) -> Any:
        return self._state.replace("StatefulSet", namespace, name, body, dry_run)


class MockCoreV1Api:
    def __init__(self, state: MockKubeState) -> None:
        self._state = state

    def read_namespaced_service(self, name: str, namespace: str, **_: Any) -> Any:
        return self._state.read("Service", namespace, name)

    def create_namespaced_service(
        self, namespace: str, body: Any, dry_run: str | None = None, **_: Any
    ) -> Any:
        return self._state.create("Service", namespace, body, dry_run)

    def read_namespaced_config_map(self, name: str, namespace: str, **_: Any) -> Any:
        return self._state.read("ConfigMap", namespace, name)

    def create_namespaced_config_map(
        self, namespace: str, body: Any, dry_run: str | None = None, **_: Any
    ) -> Any:
        return self._state.create("ConfigMap", namespace, body, dry_run)

    def replace_namespaced_config_map(
        self, name: str, namespace: str, body: Any, dry_run: str | None = None, **_: Any
    ) -> Any:
        return self._state.replace("ConfigMap", namespace, name, body, dry_run)

    def read_namespaced_secret(self, name: str, namespace: str, **_: Any) -> Any:
        return self._state.read("Secret", namespace, name)

    def create_namespaced_secret(
        self, namespace: str, body: Any, dry_run: str | None = None, **_: Any
    ) -> Any:
        return self._state.create("Secret", namespace, body, dry_run)


class MockPolicyV1Api:
    def __init__(self, state: MockKubeState) -> None:
        self._state = state

    def read_namespaced_pod_disruption_budget(self, name: str, namespace: str, **_: Any) -> Any:
        return self._state.read("PodDisruptionBudget", namespace, name)

    def create_namespaced_pod_disruption_budget(
        self, namespace: str, body: Any, dry_run: str | None = None, **_: Any
    ) -> Any:
        return self._state.create("PodDisruptionBudget", namespace, body, dry_run)
