"""Kubernetes access layer for bitwarden-reader.

Submodules:
    errors -- StoreError / NotFoundError and ApiException translation.
    stores -- Secret Store and Resource Store protocols and adapters.
    client -- In-cluster / kubeconfig bootstrap with standalone fallback.
"""

from bwreader.k8s.errors import NotFoundError, StoreError
from bwreader.k8s.stores import ResourceStore, SecretRecord, SecretStore

__all__ = [
    "NotFoundError",
    "ResourceStore",
    "SecretRecord",
    "SecretStore",
    "StoreError",
]
