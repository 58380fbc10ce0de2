"""Object storage credentials for restoring a cluster from backup.

Restore jobs read backups through rclone. The rclone config is derived from
the backend's storage Secret and materialized as its own Secret so restore
pods can mount it.
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Protocol

from kubernetes import client as kube_client

from .kube import NotFoundError
from .models import Backend

logger = logging.getLogger(__name__)

AWS_ACCESS_KEY_ID = "AWS_ACCESS_KEY_ID"
AWS_SECRET_ACCESS_KEY = "AWS_SECRET_ACCESS_KEY"

RCLONE_CONFIG_KEY = "config"
RCLONE_REMOTE = "s3"


class CredentialError(Exception):
    """Raised when restore credentials cannot be derived."""

    pass


class SecretReader(Protocol):
    def get_secret(self, namespace: str, name: str) -> kube_client.V1Secret: ...


def _decode(secret: kube_client.V1Secret, key: str) -> str:
    data = secret.data or {}
    if key in data:
        try:
            return base64.b64decode(data[key], validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise CredentialError(
                f"Key {key} of Secret {secret.metadata.name} is not valid base64 text"
            ) from e
    # stringData is only echoed back by fakes and dry runs, accept it anyway
    string_data = secret.string_data or {}
    if key in string_data:
        return string_data[key]
    raise CredentialError(f"Secret {secret.metadata.name} has no key {key}")


def render_rclone_config(
    access_key_id: str, secret_access_key: str, endpoint: str, region: str
) -> str:
    lines = [
        f"[{RCLONE_REMOTE}]",
        "type = s3",
        "provider = Ceph" if endpoint else "provider = AWS",
        "env_auth = false",
        f"access_key_id = {access_key_id}",
        f"secret_access_key = {secret_access_key}",
    ]
    if region:
        lines.append(f"region = {region}")
    if endpoint:
        lines.append(f"endpoint = {endpoint}")
    return "\n".join(lines) + "\n"


def new_osm_secret(
    secrets: SecretReader, secret_name: str, namespace: str, backend: Backend | None
) -> kube_client.V1Secret:
    """Derive the rclone config Secret for backend.

    Args:
        secrets: Reader for the backend's storage Secret.
        secret_name: Name of the Secret to build.
        namespace: Namespace of the cluster being restored.
        backend: Storage backend of the backup.

    Raises:
        CredentialError: If the backend or its storage Secret is unusable.
    """
    if backend is None or not backend.provider:
        raise CredentialError("Backup has no storage backend")
    if backend.provider != "s3" or backend.s3 is None:
        raise CredentialError(f"Unsupported backup backend for restore: {backend.provider}")

    s3 = backend.s3
    if not s3.storage_secret_name:
        raise CredentialError("S3 backend has no storageSecretName")

    try:
        storage = secrets.get_secret(namespace, s3.storage_secret_name)
    except NotFoundError as e:
        raise CredentialError(
            f"Storage Secret {namespace}/{s3.storage_secret_name} not found"
        ) from e

    config = render_rclone_config(
        access_key_id=_decode(storage, AWS_ACCESS_KEY_ID),
        secret_access_key=_decode(storage, AWS_SECRET_ACCESS_KEY),
        endpoint=s3.endpoint,
        region=s3.region,
    )

    logger.debug(
        "Derived restore credentials",
        extra={"secret_name": secret_name, "namespace": namespace, "bucket": s3.bucket},
    )
    return kube_client.V1Secret(
        api_version="v1",
        kind="Secret",
        metadata=kube_client.V1ObjectMeta(name=secret_name, namespace=namespace),
        type="Opaque",
        string_data={RCLONE_CONFIG_KEY: config},
    )
