"""BitwardenSecret resolver: scope fallback and error classification.

The operator may install the BitwardenSecret CRD namespaced or
cluster-scoped, so a lookup tries the namespace first and the cluster
scope only after an explicit not-found.  Every other failure is mapped to
a :class:`ResolveOutcome` with a message fit for display; :meth:`resolve`
never raises.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from bwreader.k8s.errors import StoreError
from bwreader.k8s.stores import BITWARDEN_GROUP, ResourceStore
from bwreader.models.secrets import SyncInfo, utc_timestamp
from bwreader.observability.logging import get_logger
from bwreader.observability.metrics import resolver_outcomes_total

_log = get_logger("resolver")

SUCCESSFUL_SYNC_CONDITION = "SuccessfulSync"
FORCE_SYNC_ANNOTATION = "k8s.bitwarden.com/force-sync"

# Substrings the API server uses when the resource type itself is unknown,
# as opposed to a missing object of a known type.
_DISCOVERY_SIGNALS = (
    "could not find the requested resource",
    "no matches for kind",
)

_INVALID_REQUEST_STATUSES = frozenset({400, 405, 422})


class ResolveOutcome(StrEnum):
    """Classified result of a BitwardenSecret lookup."""

    FOUND = "found"
    NOT_FOUND = "not_found"
    NOT_CONFIGURED = "not_configured"
    API_DISCOVERY = "api_discovery"
    PERMISSION_DENIED = "permission_denied"
    INVALID_REQUEST = "invalid_request"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ResolveResult:
    """SyncInfo plus the outcome that produced it."""

    sync_info: SyncInfo
    outcome: ResolveOutcome

    @property
    def ok(self) -> bool:
        """True when the backend answered; a missing resource is not a failure."""
        return self.outcome in (ResolveOutcome.FOUND, ResolveOutcome.NOT_FOUND)


class ForceSyncError(Exception):
    """Raised when the force-sync annotation could not be applied."""

    def __init__(self, message: str, outcome: ResolveOutcome = ResolveOutcome.UNKNOWN) -> None:
        super().__init__(message)
        self.outcome = outcome


def is_not_found(exc: BaseException) -> bool:
    return isinstance(exc, StoreError) and exc.status == 404


def classify_error(exc: BaseException) -> ResolveOutcome:
    """Map a backend failure onto a ResolveOutcome.

    Discoverability is checked before not-found: an uninstalled CRD also
    answers 404, but with a message about the resource type.
    """
    if not isinstance(exc, StoreError):
        return ResolveOutcome.UNKNOWN
    text = f"{exc.message} {exc.reason}".lower()
    if any(signal in text for signal in _DISCOVERY_SIGNALS):
        return ResolveOutcome.API_DISCOVERY
    if exc.status == 404:
        return ResolveOutcome.NOT_FOUND
    if exc.status == 403:
        return ResolveOutcome.PERMISSION_DENIED
    if exc.status in _INVALID_REQUEST_STATUSES:
        return ResolveOutcome.INVALID_REQUEST
    return ResolveOutcome.UNKNOWN


def _failure_message(outcome: ResolveOutcome, name: str, exc: BaseException, group: str) -> str:
    if outcome is ResolveOutcome.API_DISCOVERY:
        return (
            f"API group '{group}' not discoverable. CRD may not be installed or "
            f"API server hasn't discovered it yet. Error: {exc}"
        )
    if outcome is ResolveOutcome.PERMISSION_DENIED:
        return f"Permission denied accessing CRD {name}. Check RBAC permissions. Error: {exc}"
    if outcome is ResolveOutcome.INVALID_REQUEST:
        return f"API group/resource issue: {exc}"
    return f"Failed to get CRD: {exc}"


def _string_at(obj: Any, *path: str) -> str:
    """Return the string at *path* inside nested dicts, or "" if absent or not a string."""
    for key in path:
        if not isinstance(obj, dict):
            return ""
        obj = obj.get(key)
    return obj if isinstance(obj, str) else ""


def _first_condition(resource: dict[str, Any], condition_type: str) -> dict[str, Any]:
    status = resource.get("status")
    conditions = status.get("conditions") if isinstance(status, dict) else None
    if not isinstance(conditions, list):
        return {}
    for condition in conditions:
        if isinstance(condition, dict) and condition.get("type") == condition_type:
            return condition
    return {}


def extract_sync_info(resource: dict[str, Any]) -> SyncInfo:
    """Build a SyncInfo from a BitwardenSecret object.

    Only the first ``SuccessfulSync`` condition is used.  Absent or
    non-string fields become "".
    """
    condition = _first_condition(resource, SUCCESSFUL_SYNC_CONDITION)
    return SyncInfo(
        crd_found=True,
        last_successful_sync=_string_at(resource, "status", "lastSuccessfulSyncTime"),
        sync_status=_string_at(condition, "status"),
        sync_reason=_string_at(condition, "reason"),
        sync_message=_string_at(condition, "message"),
        crd_creation_time=_string_at(resource, "metadata", "creationTimestamp"),
    )


class ResourceResolver:
    """Locates BitwardenSecret resources and reads their sync status.

    Args:
        store: Resource Store adapter; None when no cluster is reachable.
        group: API group, used in user-facing discoverability messages.
    """

    def __init__(self, store: ResourceStore | None, group: str = BITWARDEN_GROUP) -> None:
        self._store = store
        self._group = group

    @property
    def configured(self) -> bool:
        return self._store is not None

    async def resolve(self, name: str, namespace: str) -> ResolveResult:
        """Return the SyncInfo for *name*.  Never raises."""
        result = await self._resolve(name, namespace)
        resolver_outcomes_total.labels(outcome=result.outcome.value).inc()
        return result

    async def _resolve(self, name: str, namespace: str) -> ResolveResult:
        if self._store is None:
            return self._not_configured("Resource store not initialized", name, namespace)
        if not name:
            return self._not_configured("CRD name is empty", name, namespace)
        if not namespace:
            return self._not_configured("Namespace is empty", name, namespace)

        try:
            resource = await self._store.get(name, namespace)
        except Exception as exc:
            if not is_not_found(exc):
                return self._failure(classify_error(exc), name, namespace, exc, scope="namespace")
            namespaced_exc = exc
        else:
            return self._found(resource, name, namespace, scope="namespace")

        try:
            resource = await self._store.get(name)
        except Exception as exc:
            if not is_not_found(exc):
                return self._failure(classify_error(exc), name, namespace, exc, scope="cluster")
            # A namespaced CRD has no cluster endpoint and vice versa, so one
            # scope reporting an unknown resource type is expected.  Only both
            # doing so means the CRD is not served at all.
            if (
                classify_error(namespaced_exc) is ResolveOutcome.API_DISCOVERY
                and classify_error(exc) is ResolveOutcome.API_DISCOVERY
            ):
                return self._failure(ResolveOutcome.API_DISCOVERY, name, namespace, namespaced_exc, scope="namespace")
            _log.info("crd_not_found", name=name, namespace=namespace)
            return ResolveResult(
                sync_info=SyncInfo(sync_message=f"CRD not found: {name}"),
                outcome=ResolveOutcome.NOT_FOUND,
            )
        return self._found(resource, name, namespace, scope="cluster")

    def _found(self, resource: dict[str, Any], name: str, namespace: str, scope: str) -> ResolveResult:
        info = extract_sync_info(resource)
        _log.debug(
            "crd_resolved",
            name=name,
            namespace=namespace,
            scope=scope,
            sync_status=info.sync_status,
            last_sync=info.last_successful_sync,
        )
        return ResolveResult(sync_info=info, outcome=ResolveOutcome.FOUND)

    def _failure(
        self,
        outcome: ResolveOutcome,
        name: str,
        namespace: str,
        exc: BaseException,
        scope: str,
    ) -> ResolveResult:
        message = _failure_message(outcome, name, exc, self._group)
        if scope == "cluster":
            message = f"{message} (cluster-scoped lookup)"
        _log.warning(
            "crd_lookup_failed",
            name=name,
            namespace=namespace,
            scope=scope,
            outcome=outcome.value,
            error=str(exc),
        )
        return ResolveResult(sync_info=SyncInfo(sync_message=message), outcome=outcome)

    def _not_configured(self, message: str, name: str, namespace: str) -> ResolveResult:
        _log.warning("crd_lookup_not_configured", name=name, namespace=namespace, reason=message)
        return ResolveResult(sync_info=SyncInfo(sync_message=message), outcome=ResolveOutcome.NOT_CONFIGURED)

    # ------------------------------------------------------------------
    # Force sync
    # ------------------------------------------------------------------

    async def _locate_scope(self, name: str, namespace: str) -> str | None:
        """Return the namespace the resource lives in, or None when cluster-scoped."""
        assert self._store is not None
        try:
            await self._store.get(name, namespace)
        except Exception as exc:
            if not is_not_found(exc):
                raise ForceSyncError(f"failed to get CRD: {exc}", classify_error(exc)) from exc
        else:
            return namespace

        try:
            await self._store.get(name)
        except Exception as exc:
            raise ForceSyncError(
                f"failed to get CRD (tried namespace and cluster-scoped): {exc}",
                ResolveOutcome.NOT_FOUND if is_not_found(exc) else classify_error(exc),
            ) from exc
        return None

    async def force_sync(self, name: str, namespace: str, now: datetime | None = None) -> None:
        """Annotate the resource so the operator re-syncs it immediately.

        Raises:
            ForceSyncError: the resource could not be located or patched.
        """
        if self._store is None:
            raise ForceSyncError("resource store not initialized", ResolveOutcome.NOT_CONFIGURED)
        if not name or not namespace:
            raise ForceSyncError("name and namespace are required", ResolveOutcome.NOT_CONFIGURED)

        scope_namespace = await self._locate_scope(name, namespace)
        stamp = utc_timestamp(now or datetime.now(tz=UTC))
        try:
            await self._store.merge_patch_annotations(name, scope_namespace, {FORCE_SYNC_ANNOTATION: stamp})
        except Exception as exc:
            raise ForceSyncError(f"failed to patch CRD: {exc}", classify_error(exc)) from exc
        _log.info(
            "force_sync_applied",
            name=name,
            namespace=namespace,
            scope="cluster" if scope_namespace is None else "namespace",
            at=stamp,
        )

    # ------------------------------------------------------------------
    # Discoverability probe
    # ------------------------------------------------------------------

    async def probe(self, namespace: str) -> ResolveOutcome | None:
        """List at most one resource to check that the API group is served.

        Returns None when the list succeeds, otherwise the classified failure.
        Used for startup diagnostics only; lookups never depend on it.
        """
        if self._store is None or not namespace:
            return ResolveOutcome.NOT_CONFIGURED
        try:
            await self._store.list(namespace, limit=1)
        except Exception as exc:
            outcome = classify_error(exc)
            _log.warning("crd_probe_failed", namespace=namespace, outcome=outcome.value, error=str(exc))
            return outcome
        return None
