"""Reader orchestrator: builds one Snapshot from the Secret Store and the resolver.

Failures are isolated per secret name; one unreadable secret never aborts
the cycle for the others.
"""

from __future__ import annotations

import base64
import binascii
import time
from collections.abc import Iterable
from dataclasses import replace

from bwreader.k8s.stores import SecretStore
from bwreader.models.secrets import SecretEntry, Snapshot, SyncInfo
from bwreader.observability.logging import get_logger
from bwreader.observability.metrics import snapshot_duration_seconds
from bwreader.resolver import ResourceResolver, is_not_found

_log = get_logger("reader")

STANDALONE_ERROR = "Kubernetes client not available - running in standalone mode"
SYNC_TIME_ANNOTATION = "bitwarden-secrets-operator.io/sync-time"


def decode_secret_value(raw: str) -> str:
    """Decode one base64 Secret value to text.

    Values that are not valid base64, or whose bytes are not UTF-8, are
    returned unchanged.
    """
    try:
        return base64.b64decode(raw, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return raw


def decode_secret_data(data: dict[str, str]) -> dict[str, str]:
    return {key: decode_secret_value(value) for key, value in data.items()}


def clean_names(names: Iterable[str]) -> list[str]:
    """Trim names and drop blanks, preserving order."""
    return [name.strip() for name in names if name and name.strip()]


class SecretReader:
    """Reads every configured secret and its BitwardenSecret sync status.

    Args:
        secret_store: Secret Store adapter, or None in standalone mode.
        resolver:     Resolver for the BitwardenSecret resources.
        namespace:    Namespace holding both the Secrets and the resources.
    """

    def __init__(
        self,
        secret_store: SecretStore | None,
        resolver: ResourceResolver,
        namespace: str,
    ) -> None:
        self._secrets = secret_store
        self._resolver = resolver
        self._namespace = namespace

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def standalone(self) -> bool:
        return self._secrets is None

    async def read_snapshot(self, secret_names: Iterable[str]) -> Snapshot:
        """Build a Snapshot for *secret_names*, in order."""
        started = time.monotonic()
        entries = await self.read_secrets(secret_names)
        snapshot = Snapshot(
            entries=tuple(entries),
            namespace=self._namespace,
            error=STANDALONE_ERROR if self.standalone else None,
        )
        elapsed = time.monotonic() - started
        snapshot_duration_seconds.observe(elapsed)
        _log.debug(
            "snapshot_built",
            secrets=len(snapshot.entries),
            found=snapshot.total_found,
            standalone=self.standalone,
            duration_ms=round(elapsed * 1000, 1),
        )
        return snapshot

    async def read_secrets(self, secret_names: Iterable[str]) -> list[SecretEntry]:
        names = clean_names(secret_names)
        if self._secrets is None:
            return [SecretEntry(name=name, error=STANDALONE_ERROR) for name in names]
        return [await self._read_one(self._secrets, name) for name in names]

    async def _read_one(self, store: SecretStore, name: str) -> SecretEntry:
        try:
            record = await store.get(name, self._namespace)
        except Exception as exc:
            if is_not_found(exc):
                return SecretEntry(name=name, error=f"Secret '{name}' not found")
            _log.warning("secret_read_failed", name=name, namespace=self._namespace, error=str(exc))
            return SecretEntry(name=name, error=f"Error reading secret: {exc}")

        result = await self._resolver.resolve(name, self._namespace)
        sync_info: SyncInfo = replace(
            result.sync_info,
            k8s_secret_sync_time=record.annotations.get(SYNC_TIME_ANNOTATION, ""),
        )
        return SecretEntry(
            name=name,
            found=True,
            keys=decode_secret_data(record.data),
            sync_info=sync_info,
        )
