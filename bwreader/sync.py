"""Force-sync trigger.

Applies the force-sync annotation to each requested BitwardenSecret in
turn, collecting per-name results, then forces one out-of-cycle publish
if anything succeeded.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from bwreader.observability.logging import get_logger
from bwreader.observability.metrics import trigger_sync_total
from bwreader.publisher import SnapshotPublisher
from bwreader.reader import clean_names
from bwreader.resolver import ForceSyncError, ResourceResolver

_log = get_logger("sync")


@dataclass
class TriggerResult:
    """Per-name outcome of a trigger request."""

    successes: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.errors)


class SyncTrigger:
    """Forces the operator to re-sync selected secrets.

    Args:
        resolver:  Resolver used to locate and annotate the resources.
        publisher: Publisher used for the out-of-cycle publish.
        namespace: Namespace of the resources.
    """

    def __init__(self, resolver: ResourceResolver, publisher: SnapshotPublisher, namespace: str) -> None:
        self._resolver = resolver
        self._publisher = publisher
        self._namespace = namespace

    @property
    def available(self) -> bool:
        return self._resolver.configured

    async def trigger(self, secret_names: Iterable[str] | None = None) -> TriggerResult:
        """Trigger *secret_names*, or every configured name when None or empty.

        Names are trimmed and blanks dropped only after that choice, so a
        request holding nothing but blank names touches nothing.
        """
        requested = list(secret_names) if secret_names is not None else []
        if not requested:
            names = self._publisher.secret_names
        else:
            names = clean_names(requested)

        result = TriggerResult()
        for name in names:
            try:
                await self._resolver.force_sync(name, self._namespace)
            except ForceSyncError as exc:
                result.errors.append(f"{name}: {exc}")
                trigger_sync_total.labels(result="error").inc()
                _log.warning("trigger_sync_failed", name=name, outcome=exc.outcome.value, error=str(exc))
            else:
                result.successes.append(name)
                trigger_sync_total.labels(result="success").inc()

        if result.successes:
            await self._publisher.publish_now()
        _log.info("trigger_sync_completed", successes=len(result.successes), errors=len(result.errors))
        return result
