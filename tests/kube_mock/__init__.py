"""Kubernetes API mock for integration testing.

This package provides an in-memory stand-in for the Kubernetes API groups the
operator talks to, so reconciliation passes can be tested without a cluster.

Key Features:
- In-memory object store with API-server-like copy semantics
- 404 on missing objects, 409 on duplicate creates
- Call log for asserting on reads and writes in order
- Error injection per verb, kind and name
- Server-side dry-run simulation

Usage:
    from kube_mock import MockKubeContext

    with MockKubeContext() as ctx:
        Reconciler(ctx.clients).reconcile(cluster)
        assert len(ctx.state.writes("StatefulSet")) == 3
"""

from .apis import MockAppsV1Api, MockCoreV1Api, MockPolicyV1Api
from .context import MockKubeContext
from .factories import make_cluster, make_restoring_cluster, make_storage_secret
from .state import MockCall, MockKubeState

__all__ = [
    "MockAppsV1Api",
    "MockCall",
    "MockCoreV1Api",
    "MockKubeContext",
    "MockKubeState",
    "MockPolicyV1Api",
    "make_cluster",
    "make_restoring_cluster",
    "make_storage_secret",
]
