"""Shared fixtures for bitwarden-reader integration tests.

Provides real resolver, reader, hub, publisher and trigger components wired
to in-memory Secret and Resource stores, so tests can exercise full
pull/push/trigger flows without touching a real Kubernetes cluster.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Any

import pytest
from fastapi import FastAPI

from bwreader.api.app import create_app
from bwreader.hub import BroadcastHub
from bwreader.k8s.errors import NotFoundError, StoreError
from bwreader.k8s.stores import SecretRecord
from bwreader.models.config import BwReaderConfig, HubConfig
from bwreader.publisher import SnapshotPublisher
from bwreader.reader import SYNC_TIME_ANNOTATION, SecretReader
from bwreader.resolver import ResourceResolver
from bwreader.sync import SyncTrigger

NAMESPACE = "apps"
SECRET_NAMES = ["db-creds", "api-key", "smtp"]


def b64(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def make_bitwarden_secret(name: str, status: str = "True", last_sync: str = "2026-03-01T09:00:00Z") -> dict[str, Any]:
    """Create a BitwardenSecret object as the API server returns it."""
    return {
        "apiVersion": "k8s.bitwarden.com/v1",
        "kind": "BitwardenSecret",
        "metadata": {
            "name": name,
            "namespace": NAMESPACE,
            "creationTimestamp": "2026-01-10T08:00:00Z",
            "annotations": {},
        },
        "status": {
            "lastSuccessfulSyncTime": last_sync,
            "conditions": [
                {
                    "type": "SuccessfulSync",
                    "status": status,
                    "reason": "ReconciliationSuccessful" if status == "True" else "ReconciliationFailed",
                    "message": "Secret synced" if status == "True" else "Bitwarden API returned 401",
                }
            ],
        },
    }


# ---------------------------------------------------------------------------
# In-memory stores
# ---------------------------------------------------------------------------


@dataclass
class InMemorySecretStore:
    """Secret Store keyed by name; ``failures`` maps names to errors to raise."""

    secrets: dict[str, SecretRecord] = field(default_factory=dict)
    failures: dict[str, StoreError] = field(default_factory=dict)
    calls: list[str] = field(default_factory=list)

    async def get(self, name: str, namespace: str) -> SecretRecord:
        self.calls.append(name)
        if name in self.failures:
            raise self.failures[name]
        if name not in self.secrets:
            raise NotFoundError(f'secrets "{name}" not found', status=404, reason="NotFound")
        return self.secrets[name]


@dataclass
class InMemoryResourceStore:
    """Resource Store with separate namespaced and cluster-scoped objects."""

    namespaced: dict[str, dict[str, Any]] = field(default_factory=dict)
    cluster: dict[str, dict[str, Any]] = field(default_factory=dict)
    patches: list[tuple[str, str | None, dict[str, str]]] = field(default_factory=list)

    async def get(self, name: str, namespace: str | None = None) -> dict[str, Any]:
        objects = self.cluster if namespace is None else self.namespaced
        if name not in objects:
            raise NotFoundError(f'bitwardensecrets.k8s.bitwarden.com "{name}" not found', status=404)
        return objects[name]

    async def list(self, namespace: str, limit: int = 1) -> dict[str, Any]:
        return {"items": list(self.namespaced.values())[:limit]}

    async def merge_patch_annotations(
        self,
        name: str,
        namespace: str | None,
        annotations: dict[str, str],
    ) -> None:
        objects = self.cluster if namespace is None else self.namespaced
        objects[name]["metadata"].setdefault("annotations", {}).update(annotations)
        self.patches.append((name, namespace, annotations))


# ---------------------------------------------------------------------------
# Component fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def secret_store() -> InMemorySecretStore:
    return InMemorySecretStore(
        secrets={
            "db-creds": SecretRecord(
                data={"username": b64("app"), "password": b64("hunter2")},
                annotations={SYNC_TIME_ANNOTATION: "2026-03-01T09:00:05Z"},
            ),
            "api-key": SecretRecord(data={"token": b64("abc123")}, annotations={}),
        }
    )


@pytest.fixture
def resource_store() -> InMemoryResourceStore:
    return InMemoryResourceStore(
        namespaced={"db-creds": make_bitwarden_secret("db-creds")},
        cluster={"api-key": make_bitwarden_secret("api-key", status="False")},
    )


@dataclass
class Components:
    config: BwReaderConfig
    resolver: ResourceResolver
    reader: SecretReader
    hub: BroadcastHub
    publisher: SnapshotPublisher
    trigger: SyncTrigger
    app: FastAPI


def build_components(
    secret_store: InMemorySecretStore | None,
    resource_store: InMemoryResourceStore | None,
) -> Components:
    config = BwReaderConfig(
        namespace=NAMESPACE,
        secret_names=list(SECRET_NAMES),
        app_version="9.9.9",
        refresh_interval_seconds=3600,
        hub=HubConfig(send_buffer=16, command_buffer=16),
    )
    resolver = ResourceResolver(resource_store)
    reader = SecretReader(secret_store, resolver, NAMESPACE)
    hub = BroadcastHub(command_buffer=config.hub.command_buffer)
    publisher = SnapshotPublisher(reader, hub, config.secret_names, config.refresh_interval_seconds)
    trigger = SyncTrigger(resolver, publisher, NAMESPACE)
    app = create_app(hub=hub, reader=reader, sync_trigger=trigger, config=config)
    return Components(config, resolver, reader, hub, publisher, trigger, app)


@pytest.fixture
def components(secret_store: InMemorySecretStore, resource_store: InMemoryResourceStore) -> Components:
    return build_components(secret_store, resource_store)


@pytest.fixture
def standalone_components() -> Components:
    return build_components(None, None)
