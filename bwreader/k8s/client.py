"""Kubernetes client bootstrap.

Tries in-cluster service-account configuration first and falls back to a
kubeconfig file for local development.  When neither exists the reader
runs in standalone mode and :func:`load_clients` returns None.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from kubernetes import client as k8s_client
from kubernetes import config as k8s_config

from bwreader.k8s.stores import KubeResourceStore, KubeSecretStore
from bwreader.observability.logging import get_logger

_log = get_logger("k8s.client")


@dataclass
class KubeClients:
    """Store adapters sharing one ApiClient connection pool."""

    api_client: k8s_client.ApiClient
    secret_store: KubeSecretStore
    resource_store: KubeResourceStore

    def close(self) -> None:
        self.api_client.close()


def _kubeconfig_paths() -> list[str]:
    raw = os.environ.get("KUBECONFIG") or k8s_config.KUBE_CONFIG_DEFAULT_LOCATION
    return [os.path.expanduser(path) for path in raw.split(os.pathsep) if path]


def load_clients(request_timeout: float = 10.0) -> KubeClients | None:
    """Build store adapters, or return None when no cluster configuration exists.

    Raises:
        kubernetes.config.ConfigException: a kubeconfig exists but is unusable.
    """
    configuration = k8s_client.Configuration()
    try:
        k8s_config.load_incluster_config(client_configuration=configuration)
        _log.info("k8s_configured", source="in-cluster")
    except k8s_config.ConfigException:
        existing = [path for path in _kubeconfig_paths() if os.path.exists(path)]
        if not existing:
            _log.warning("k8s_config_absent", mode="standalone")
            return None
        k8s_config.load_kube_config(
            config_file=os.pathsep.join(existing) if len(existing) > 1 else existing[0],
            client_configuration=configuration,
        )
        _log.info("k8s_configured", source="kubeconfig", paths=existing)

    api_client = k8s_client.ApiClient(configuration)
    return KubeClients(
        api_client=api_client,
        secret_store=KubeSecretStore(k8s_client.CoreV1Api(api_client), request_timeout),
        resource_store=KubeResourceStore(k8s_client.CustomObjectsApi(api_client), request_timeout),
    )
