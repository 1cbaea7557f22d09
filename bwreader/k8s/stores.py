"""Secret Store and Resource Store adapters over the kubernetes client.

The official client is synchronous, so every call runs in a worker thread
via ``asyncio.to_thread`` with a per-call ``_request_timeout``.  All
failures surface as :class:`StoreError` / :class:`NotFoundError`.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, TypeVar

from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import HTTPError as Urllib3HTTPError

from bwreader.k8s.errors import StoreError, from_api_exception

T = TypeVar("T")

BITWARDEN_GROUP = "k8s.bitwarden.com"
BITWARDEN_VERSION = "v1"
BITWARDEN_PLURAL = "bitwardensecrets"

_MERGE_PATCH = "application/merge-patch+json"


@dataclass(frozen=True)
class SecretRecord:
    """A Kubernetes Secret as seen by the reader: base64 values plus annotations."""

    data: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)


class SecretStore(Protocol):
    async def get(self, name: str, namespace: str) -> SecretRecord: ...


class ResourceStore(Protocol):
    async def get(self, name: str, namespace: str | None = None) -> dict[str, Any]: ...

    async def list(self, namespace: str, limit: int = 1) -> dict[str, Any]: ...

    async def merge_patch_annotations(
        self,
        name: str,
        namespace: str | None,
        annotations: dict[str, str],
    ) -> None: ...


async def _call(fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking client call in a thread, translating its failures."""
    try:
        return await asyncio.to_thread(fn, *args, **kwargs)
    except ApiException as exc:
        raise from_api_exception(exc) from exc
    except (Urllib3HTTPError, OSError) as exc:
        raise StoreError(f"Kubernetes API unreachable: {exc}") from exc


class KubeSecretStore:
    """Reads ``v1/Secret`` objects through CoreV1Api."""

    def __init__(self, core_v1: Any, request_timeout: float = 10.0) -> None:
        self._core_v1 = core_v1
        self._timeout = request_timeout

    async def get(self, name: str, namespace: str) -> SecretRecord:
        secret = await _call(
            self._core_v1.read_namespaced_secret,
            name,
            namespace,
            _request_timeout=self._timeout,
        )
        metadata = secret.metadata
        return SecretRecord(
            data=dict(secret.data or {}),
            annotations=dict((metadata.annotations if metadata else None) or {}),
        )


class KubeResourceStore:
    """Reads and patches BitwardenSecret custom objects through CustomObjectsApi.

    ``namespace=None`` addresses the cluster-scoped endpoint.
    """

    def __init__(
        self,
        custom_objects: Any,
        request_timeout: float = 10.0,
        group: str = BITWARDEN_GROUP,
        version: str = BITWARDEN_VERSION,
        plural: str = BITWARDEN_PLURAL,
    ) -> None:
        self._api = custom_objects
        self._timeout = request_timeout
        self._group = group
        self._version = version
        self._plural = plural

    @property
    def group(self) -> str:
        return self._group

    async def get(self, name: str, namespace: str | None = None) -> dict[str, Any]:
        if namespace is None:
            return await _call(
                self._api.get_cluster_custom_object,
                self._group,
                self._version,
                self._plural,
                name,
                _request_timeout=self._timeout,
            )
        return await _call(
            self._api.get_namespaced_custom_object,
            self._group,
            self._version,
            namespace,
            self._plural,
            name,
            _request_timeout=self._timeout,
        )

    async def list(self, namespace: str, limit: int = 1) -> dict[str, Any]:
        return await _call(
            self._api.list_namespaced_custom_object,
            self._group,
            self._version,
            namespace,
            self._plural,
            limit=limit,
            _request_timeout=self._timeout,
        )

    async def merge_patch_annotations(
        self,
        name: str,
        namespace: str | None,
        annotations: dict[str, str],
    ) -> None:
        body = {"metadata": {"annotations": annotations}}
        if namespace is None:
            await _call(
                self._api.patch_cluster_custom_object,
                self._group,
                self._version,
                self._plural,
                name,
                body,
                _content_type=_MERGE_PATCH,
                _request_timeout=self._timeout,
            )
            return
        await _call(
            self._api.patch_namespaced_custom_object,
            self._group,
            self._version,
            namespace,
            self._plural,
            name,
            body,
            _content_type=_MERGE_PATCH,
            _request_timeout=self._timeout,
        )
