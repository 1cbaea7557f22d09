"""Periodic snapshot publisher.

Runs the reader on a fixed interval and hands each snapshot to the hub.
``publish_now`` lets request handlers force an extra, out-of-cycle publish.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

from bwreader.hub import BroadcastHub
from bwreader.models.secrets import Snapshot
from bwreader.observability.logging import get_logger
from bwreader.reader import SecretReader

_log = get_logger("publisher")


class SnapshotPublisher:
    """Owns the refresh loop feeding the broadcast hub.

    Args:
        reader:           Reader orchestrator.
        hub:              Broadcast hub to publish to.
        secret_names:     Configured secret names, in display order.
        interval_seconds: Delay between periodic publishes.
    """

    def __init__(
        self,
        reader: SecretReader,
        hub: BroadcastHub,
        secret_names: Sequence[str],
        interval_seconds: float = 5.0,
    ) -> None:
        self._reader = reader
        self._hub = hub
        self._secret_names = list(secret_names)
        self._interval = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def secret_names(self) -> list[str]:
        return list(self._secret_names)

    async def publish_now(self) -> Snapshot:
        """Build a fresh snapshot and publish it immediately."""
        snapshot = await self._reader.read_snapshot(self._secret_names)
        self._hub.publish(snapshot)
        return snapshot

    async def run(self) -> None:
        """Publish every interval until cancelled."""
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.publish_now()
            except Exception as exc:
                _log.error("periodic_publish_failed", error=str(exc))

    async def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self.run(), name="snapshot-publisher")
        _log.info("publisher_started", interval_seconds=self._interval, secrets=len(self._secret_names))

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
