"""Broadcast hub: fans snapshots out to live WebSocket viewers.

BroadcastHub -- owns the set of registered connections.  The set is only
                touched by a single dispatch task that consumes register,
                unregister and broadcast commands from one bounded queue,
                so no lock is needed and ``publish`` never waits.
Connection   -- one viewer: a bounded outbound queue plus two pumps.  The
                write pump drains the queue to the transport under a
                per-write deadline; the read pump only watches for the
                peer going away.  Protocol ping/pong is left to the ASGI
                server (see ``bwreader.app.build_server_config``).

A viewer whose outbound queue is full is treated as dead and evicted.
Failures never leave the connection they happened on.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol
from uuid import uuid4

from bwreader.models.secrets import Snapshot
from bwreader.observability.logging import get_logger
from bwreader.observability.metrics import hub_connections, hub_evictions_total, hub_publishes_total

_log = get_logger("hub")


class TransportClosed(Exception):
    """The peer closed the transport."""


class Transport(Protocol):
    """Minimal text-frame transport a Connection drives."""

    async def accept(self) -> None: ...

    async def send_text(self, data: str) -> None: ...

    async def receive_text(self) -> str: ...

    async def close(self) -> None: ...


class ConnectionState(StrEnum):
    REGISTERED = "registered"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


_CLOSE = object()


class Connection:
    """A registered viewer and its outbound queue.

    Liveness is the transport's concern: the ASGI server sends protocol
    pings and reports a peer that stops answering as a disconnect.

    Args:
        transport:   Text-frame transport (see :class:`Transport`).
        send_buffer: Outbound queue capacity.  A full queue gets the
                     connection evicted on the next publish.
        write_wait:  Seconds allowed for a single write.
    """

    def __init__(
        self,
        transport: Transport,
        send_buffer: int = 256,
        write_wait: float = 10.0,
    ) -> None:
        self.id = uuid4().hex[:12]
        self.state = ConnectionState.REGISTERED
        self._transport = transport
        self._outbound: asyncio.Queue[object] = asyncio.Queue(maxsize=send_buffer)
        self._outbound_closed = False
        self._write_wait = write_wait

    @property
    def outbound_closed(self) -> bool:
        return self._outbound_closed

    @property
    def pending(self) -> int:
        return self._outbound.qsize()

    def offer(self, message: str) -> bool:
        """Enqueue *message* without waiting.  Returns False if the queue is full or closed."""
        if self._outbound_closed:
            return False
        try:
            self._outbound.put_nowait(message)
        except asyncio.QueueFull:
            return False
        return True

    def close_outbound(self) -> None:
        """Discard pending messages and tell the write pump to stop.  Idempotent."""
        if self._outbound_closed:
            return
        self._outbound_closed = True
        while not self._outbound.empty():
            self._outbound.get_nowait()
        self._outbound.put_nowait(_CLOSE)

    async def serve(self, hub: BroadcastHub) -> None:
        """Register with *hub*, accept the transport, run both pumps until either stops.

        Registration is queued before the handshake completes, so every
        publish the peer could observe is ordered after it.
        """
        await hub.register(self)
        try:
            await self._transport.accept()
        except Exception as exc:
            _log.warning("connection_accept_failed", connection=self.id, error=str(exc))
            self.state = ConnectionState.CLOSING
            await hub.unregister(self)
            self.state = ConnectionState.CLOSED
            return
        self.state = ConnectionState.ACTIVE
        writer = asyncio.create_task(self._write_pump(), name=f"ws-write-{self.id}")
        reader = asyncio.create_task(self._read_pump(), name=f"ws-read-{self.id}")
        reason = "cancelled"
        try:
            done, _ = await asyncio.wait({writer, reader}, return_when=asyncio.FIRST_COMPLETED)
            reason = next(iter(done)).result()
        finally:
            self.state = ConnectionState.CLOSING
            for task in (writer, reader):
                task.cancel()
            await asyncio.gather(writer, reader, return_exceptions=True)
            await hub.unregister(self)
            await self._close_transport()
            self.state = ConnectionState.CLOSED
            _log.info("connection_closed", connection=self.id, reason=reason)

    async def _close_transport(self) -> None:
        try:
            await self._transport.close()
        except Exception as exc:
            _log.debug("connection_close_error", connection=self.id, error=str(exc))

    async def _write_pump(self) -> str:
        while True:
            message = await self._outbound.get()
            if message is _CLOSE:
                return "outbound closed"
            try:
                await asyncio.wait_for(self._transport.send_text(str(message)), timeout=self._write_wait)
            except TimeoutError:
                return "write deadline exceeded"
            except TransportClosed:
                return "peer closed"
            except Exception as exc:
                _log.warning("connection_write_error", connection=self.id, error=str(exc))
                return "write error"

    async def _read_pump(self) -> str:
        # Inbound content is ignored; this only notices the peer going away.
        while True:
            try:
                await self._transport.receive_text()
            except TransportClosed:
                return "peer closed"
            except Exception as exc:
                _log.warning("connection_read_error", connection=self.id, error=str(exc))
                return "read error"


class _CommandKind(StrEnum):
    REGISTER = "register"
    UNREGISTER = "unregister"
    BROADCAST = "broadcast"


@dataclass(frozen=True)
class _Command:
    kind: _CommandKind
    connection: Connection | None = None
    message: str = ""


class BroadcastHub:
    """Single-owner registry of live connections.

    Args:
        command_buffer: Capacity of the dispatch queue.  When it is full,
                        ``publish`` drops the snapshot instead of waiting;
                        register and unregister wait for room.
    """

    def __init__(self, command_buffer: int = 64) -> None:
        self._connections: set[Connection] = set()
        self._commands: asyncio.Queue[_Command] = asyncio.Queue(maxsize=command_buffer)
        self._task: asyncio.Task[None] | None = None
        self._stopped = False

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def __contains__(self, connection: object) -> bool:
        return connection in self._connections

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._stopped = False
        self._task = asyncio.create_task(self._dispatch(), name="broadcast-hub")
        _log.info("hub_started")

    async def stop(self) -> None:
        """Stop dispatching and close every remaining connection's outbound queue."""
        self._stopped = True
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        # Commands the dispatch task never saw still count against flush().
        while not self._commands.empty():
            command = self._commands.get_nowait()
            if command.kind is _CommandKind.REGISTER and command.connection is not None:
                command.connection.close_outbound()
            self._commands.task_done()
        for connection in list(self._connections):
            self._remove(connection)
        _log.info("hub_stopped")

    async def register(self, connection: Connection) -> None:
        if self._stopped:
            connection.close_outbound()
            return
        await self._commands.put(_Command(_CommandKind.REGISTER, connection=connection))

    async def unregister(self, connection: Connection) -> None:
        if self._stopped:
            return
        await self._commands.put(_Command(_CommandKind.UNREGISTER, connection=connection))

    def publish(self, snapshot: Snapshot) -> bool:
        """Queue *snapshot* for fan-out.  Never blocks.

        Returns:
            False when the hub is stopped or its dispatch queue is full and
            the snapshot was dropped.
        """
        if self._stopped:
            return False
        message = json.dumps(snapshot.to_envelope())
        try:
            self._commands.put_nowait(_Command(_CommandKind.BROADCAST, message=message))
        except asyncio.QueueFull:
            hub_publishes_total.labels(outcome="dropped").inc()
            _log.warning("publish_dropped", reason="dispatch queue full")
            return False
        hub_publishes_total.labels(outcome="accepted").inc()
        return True

    async def flush(self) -> None:
        """Wait until every command queued so far has been applied."""
        await self._commands.join()

    async def _dispatch(self) -> None:
        while True:
            command = await self._commands.get()
            try:
                if command.kind is _CommandKind.REGISTER:
                    assert command.connection is not None
                    self._connections.add(command.connection)
                    hub_connections.set(len(self._connections))
                    _log.info("connection_registered", connection=command.connection.id, total=len(self._connections))
                elif command.kind is _CommandKind.UNREGISTER:
                    assert command.connection is not None
                    if self._remove(command.connection):
                        _log.info(
                            "connection_unregistered",
                            connection=command.connection.id,
                            total=len(self._connections),
                        )
                else:
                    self._fan_out(command.message)
            finally:
                self._commands.task_done()

    def _fan_out(self, message: str) -> None:
        for connection in list(self._connections):
            if connection.offer(message):
                continue
            self._remove(connection)
            hub_evictions_total.inc()
            _log.warning("connection_evicted", connection=connection.id, reason="outbound queue full")

    def _remove(self, connection: Connection) -> bool:
        if connection not in self._connections:
            return False
        self._connections.discard(connection)
        connection.close_outbound()
        hub_connections.set(len(self._connections))
        return True
