"""Application bootstrap for bitwarden-reader.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config → logging → K8s clients → resolver → reader → hub
              → publisher → REST

Shutdown is graceful: components are stopped in reverse startup order and
each component's stop error is caught and logged independently.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING

from bwreader.config import load_config
from bwreader.models.config import BwReaderConfig
from bwreader.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import structlog
    import uvicorn
    from fastapi import FastAPI

    from bwreader.hub import BroadcastHub
    from bwreader.k8s.client import KubeClients
    from bwreader.publisher import SnapshotPublisher
    from bwreader.reader import SecretReader
    from bwreader.resolver import ResourceResolver
    from bwreader.sync import SyncTrigger

_SHUTDOWN_GRACE_SECONDS = 15


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


def build_server_config(fastapi_app: FastAPI, config: BwReaderConfig) -> uvicorn.Config:
    """Build the uvicorn config serving *fastapi_app*.

    WebSocket liveness rides on protocol ping/pong: uvicorn pings every
    ``ping_period`` and drops a peer whose pong is not back before the rest
    of the ``pong_wait`` window runs out.  Browsers answer pings without any
    page code, so passive viewers stay connected.
    """
    import uvicorn

    hub = config.hub
    return uvicorn.Config(
        app=fastapi_app,
        host="0.0.0.0",
        port=config.api.port,
        log_config=None,  # structlog handles all logging
        access_log=False,
        ws_ping_interval=hub.ping_period_seconds,
        ws_ping_timeout=hub.pong_wait_seconds - hub.ping_period_seconds,
    )


class BwReaderApp:
    """Application root.  Owns every component and coordinates their lifecycle.

    ``stop()`` on an app that was never started, or already stopped, is safe.
    """

    def __init__(self, config: BwReaderConfig | None = None) -> None:
        self.config: BwReaderConfig | None = config

        self._clients: KubeClients | None = None
        self._resolver: ResourceResolver | None = None
        self._reader: SecretReader | None = None
        self._hub: BroadcastHub | None = None
        self._publisher: SnapshotPublisher | None = None
        self._sync_trigger: SyncTrigger | None = None
        self._rest_server: object | None = None

        self._background_tasks: list[asyncio.Task[None]] = []

        self._running = False
        self._log: structlog.stdlib.BoundLogger | None = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def standalone(self) -> bool:
        return self._clients is None

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self, serve_http: bool = True) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start.
        """
        # --- 1. Configuration -------------------------------------------
        if self.config is None:
            self.config = load_config()

        # --- 2. Logging -------------------------------------------------
        setup_logging(self.config.log.level)
        self._log = get_logger("app")
        self._log.info(
            "bwreader_starting",
            version=self.config.app_version,
            namespace=self.config.namespace,
            secrets=len(self.config.secret_names),
        )
        if not self.config.secret_names:
            self._log.warning("no_secret_names_configured")

        # --- 3. Kubernetes clients --------------------------------------
        await self._start_clients()

        # --- 4. Resolver ------------------------------------------------
        await self._start_resolver()

        # --- 5. Reader --------------------------------------------------
        self._start_reader()

        # --- 6. Broadcast hub -------------------------------------------
        await self._start_hub()

        # --- 7. Publisher + trigger -------------------------------------
        await self._start_publisher()

        # --- 8. REST API ------------------------------------------------
        if serve_http:
            await self._start_rest()

        self._running = True
        self._log.info("bwreader_started", port=self.config.api.port, standalone=self.standalone)

    # ------------------------------------------------------------------
    # Component startup helpers
    # ------------------------------------------------------------------

    async def _start_clients(self) -> None:
        """Load cluster configuration; absent configuration means standalone mode."""
        assert self._log is not None
        assert self.config is not None
        try:
            from bwreader.k8s.client import load_clients

            self._clients = await asyncio.to_thread(
                load_clients, self.config.kubernetes.request_timeout_seconds
            )
        except Exception as exc:
            raise _ComponentError("k8s_client", exc) from exc
        if self._clients is None:
            self._log.warning("standalone_mode", reason="no in-cluster config and no kubeconfig")

    async def _start_resolver(self) -> None:
        assert self._log is not None
        assert self.config is not None
        from bwreader.resolver import ResourceResolver

        store = self._clients.resource_store if self._clients is not None else None
        self._resolver = ResourceResolver(store)
        if store is None:
            return
        outcome = await self._resolver.probe(self.config.namespace)
        if outcome is None:
            self._log.info("crd_probe_ok", namespace=self.config.namespace)
        else:
            self._log.warning("crd_probe_degraded", namespace=self.config.namespace, outcome=outcome.value)

    def _start_reader(self) -> None:
        assert self.config is not None
        assert self._resolver is not None
        from bwreader.reader import SecretReader

        store = self._clients.secret_store if self._clients is not None else None
        self._reader = SecretReader(store, self._resolver, self.config.namespace)

    async def _start_hub(self) -> None:
        assert self.config is not None
        from bwreader.hub import BroadcastHub

        self._hub = BroadcastHub(command_buffer=self.config.hub.command_buffer)
        await self._hub.start()

    async def _start_publisher(self) -> None:
        assert self._log is not None
        assert self.config is not None
        assert self._reader is not None
        assert self._hub is not None
        assert self._resolver is not None
        from bwreader.publisher import SnapshotPublisher
        from bwreader.sync import SyncTrigger

        self._publisher = SnapshotPublisher(
            self._reader,
            self._hub,
            self.config.secret_names,
            interval_seconds=self.config.refresh_interval_seconds,
        )
        await self._publisher.start()
        self._sync_trigger = SyncTrigger(self._resolver, self._publisher, self.config.namespace)

    async def _start_rest(self) -> None:
        """Start the uvicorn REST server."""
        assert self._log is not None
        assert self.config is not None
        assert self._hub is not None
        assert self._reader is not None
        assert self._sync_trigger is not None
        try:
            import uvicorn

            from bwreader.api import build_app

            fastapi_app = build_app(
                hub=self._hub,
                reader=self._reader,
                sync_trigger=self._sync_trigger,
                config=self.config,
            )
            server = uvicorn.Server(build_server_config(fastapi_app, self.config))
            task = asyncio.create_task(server.serve(), name="rest-server")
            self._background_tasks.append(task)
            self._rest_server = server
            self._log.info("rest_api_started", port=self.config.api.port)
        except Exception as exc:
            raise _ComponentError("rest", exc) from exc

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order."""
        if not self._running and self._hub is None and self._publisher is None and self._clients is None:
            return

        log = self._log or get_logger("app")
        log.info("bwreader_shutting_down")

        self._running = False

        if self._rest_server is not None:
            # uvicorn exits its serve() loop once should_exit is set.
            self._rest_server.should_exit = True  # type: ignore[attr-defined]
        if self._background_tasks:
            try:
                await asyncio.wait_for(
                    asyncio.gather(*self._background_tasks, return_exceptions=True),
                    timeout=_SHUTDOWN_GRACE_SECONDS,
                )
            except TimeoutError:
                log.warning("rest_server_stop_timed_out", timeout=_SHUTDOWN_GRACE_SECONDS)
                for task in self._background_tasks:
                    task.cancel()
                await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()
        self._rest_server = None

        await self._stop_component("publisher", self._publisher)
        await self._stop_component("hub", self._hub)
        self._publisher = None
        self._hub = None
        self._sync_trigger = None
        self._reader = None
        self._resolver = None
        self._stop_clients()

        log.info("bwreader_stopped")

    async def _stop_component(self, name: str, component: object | None) -> None:
        """Call stop() on a component if it has that method, catching all errors."""
        if component is None:
            return
        log = self._log or get_logger("app")
        stop_fn = getattr(component, "stop", None)
        if stop_fn is None:
            return
        try:
            result = stop_fn()
            if asyncio.iscoroutine(result):
                await asyncio.wait_for(result, timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            log.warning("component_stop_timed_out", component=name, timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.error("component_stop_failed", component=name, error=str(exc))

    def _stop_clients(self) -> None:
        if self._clients is None:
            return
        try:
            self._clients.close()
        except Exception as exc:
            (self._log or get_logger("app")).debug("k8s_client_close_failed", error=str(exc))
        self._clients = None


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main(config: BwReaderConfig | None = None) -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = BwReaderApp(config)
    loop = asyncio.get_running_loop()
    stop_requested = asyncio.Event()

    def _request_shutdown() -> None:
        stop_requested.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _request_shutdown)

    try:
        await app.start()
        waiter = asyncio.create_task(stop_requested.wait(), name="shutdown-wait")
        # The server exiting on its own (e.g. port in use) also ends the run.
        await asyncio.wait({waiter, *app._background_tasks}, return_when=asyncio.FIRST_COMPLETED)
        waiter.cancel()
    except _ComponentError as exc:
        log = get_logger("app")
        log.critical("fatal_startup_error", component=exc.component, error=str(exc.cause))
        await app.stop()
        raise SystemExit(1) from exc
    finally:
        await app.stop()
