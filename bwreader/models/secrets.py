"""Secret status data structures and the snapshot wire envelope."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


def utc_timestamp(now: datetime | None = None) -> str:
    """Return an RFC 3339 UTC timestamp with second precision."""
    now = now or datetime.now(tz=UTC)
    return now.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(frozen=True)
class SyncInfo:
    """Synchronization state read from the BitwardenSecret resource."""

    crd_found: bool = False
    last_successful_sync: str = ""
    sync_status: str = ""
    sync_reason: str = ""
    sync_message: str = ""
    crd_creation_time: str = ""
    k8s_secret_sync_time: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "crdFound": self.crd_found,
            "lastSuccessfulSync": self.last_successful_sync,
            "syncStatus": self.sync_status,
            "syncReason": self.sync_reason,
            "syncMessage": self.sync_message,
            "crdCreationTime": self.crd_creation_time,
            "k8sSecretSyncTime": self.k8s_secret_sync_time,
        }


@dataclass(frozen=True)
class SecretEntry:
    """Status of one configured secret name.

    ``sync_info`` is always present, even for entries that were not found.
    """

    name: str
    found: bool = False
    keys: dict[str, str] = field(default_factory=dict)
    sync_info: SyncInfo = field(default_factory=SyncInfo)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "found": self.found,
            "keys": dict(self.keys),
            "syncInfo": self.sync_info.to_dict(),
            "error": self.error,
        }


@dataclass(frozen=True)
class Snapshot:
    """Point-in-time, ordered view of every configured secret.

    Rebuilt on every cycle and never persisted.  ``total_found`` is derived
    from the entries so it cannot drift from them.
    """

    entries: tuple[SecretEntry, ...]
    namespace: str
    timestamp: str = field(default_factory=utc_timestamp)
    error: str | None = None

    @property
    def total_found(self) -> int:
        return sum(1 for entry in self.entries if entry.found)

    def to_envelope(self) -> dict[str, Any]:
        """Serialise to the JSON envelope shared by the pull endpoint and the push channel."""
        envelope: dict[str, Any] = {
            "secrets": [entry.to_dict() for entry in self.entries],
            "namespace": self.namespace,
            "totalFound": self.total_found,
            "timestamp": self.timestamp,
        }
        if self.error:
            envelope["error"] = self.error
        return envelope
