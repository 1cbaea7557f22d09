"""Core data structures for bitwarden-reader."""

from bwreader.models.config import BwReaderConfig
from bwreader.models.secrets import SecretEntry, Snapshot, SyncInfo

__all__ = [
    "BwReaderConfig",
    "SecretEntry",
    "Snapshot",
    "SyncInfo",
]
