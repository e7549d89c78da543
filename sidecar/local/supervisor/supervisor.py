import enum
import signal
import asyncio
import logging
from typing import TYPE_CHECKING, Dict, FrozenSet, Optional
from hypercorn.asyncio import serve
from sidecar.errors import ListenFailure, SpawnFailure
from sidecar.local.supervisor import process_utils, shutdown, startup
from sidecar.local.supervisor.process_utils import WorkerProcess
from sidecar.web import health

if TYPE_CHECKING:
    from sidecar.local.config import LauncherSettings

log = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)


class SupervisorState(enum.Enum):
    IDLE = "idle"
    WORKER_SPAWNED = "worker_spawned"
    SERVING = "serving"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"


_TRANSITIONS: Dict[SupervisorState, FrozenSet[SupervisorState]] = {
    SupervisorState.IDLE: frozenset({SupervisorState.WORKER_SPAWNED, SupervisorState.TERMINATED}),
    SupervisorState.WORKER_SPAWNED: frozenset({SupervisorState.SERVING, SupervisorState.SHUTTING_DOWN}),
    SupervisorState.SERVING: frozenset({SupervisorState.SHUTTING_DOWN}),
    SupervisorState.SHUTTING_DOWN: frozenset({SupervisorState.TERMINATED}),
    SupervisorState.TERMINATED: frozenset(),
}


class Supervisor:
    """
    Runs exactly one worker process, exposes its liveness over HTTP,
    and shuts the worker down when the supervisor itself is asked to stop.

    Lifecycle: Idle -> WorkerSpawned -> Serving -> ShuttingDown -> Terminated.
    """

    def __init__(self, config: "LauncherSettings") -> None:
        self.config = config
        self.state = SupervisorState.IDLE
        self.worker: Optional[WorkerProcess] = None
        self.listener_closed = False
        self.shutdown_signal: Optional[signal.Signals] = None
        self._shutdown_event: Optional[asyncio.Event] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._installed_signals = []

    @property
    def worker_pid(self) -> Optional[int]:
        """The recorded worker PID. Set once at spawn, read-only afterwards."""
        return self.worker.pid if self.worker else None

    def _transition(self, new_state: SupervisorState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid supervisor transition {self.state.name} -> {new_state.name}")
        log.debug(f"Supervisor state: {self.state.name} -> {new_state.name}")
        self.state = new_state

    def _record_worker(self, worker: WorkerProcess) -> None:
        if self.worker is not None:
            raise RuntimeError(f"Supervisor already owns worker PID {self.worker.pid}")
        self.worker = worker

    def _is_worker_alive(self, pid: int) -> bool:
        """Liveness checker handed to the health app."""
        return self.worker is not None and self.worker.is_alive_pid(pid)

    def create_app(self):
        """Builds the health app reading the PID through this supervisor."""
        return health.create_app(
            get_pid=lambda: self.worker_pid,
            is_alive=self._is_worker_alive,
            probe_timeout=self.config.PROBE_TIMEOUT_SECONDS,
            health_paths=self.config.HEALTH_PATHS,
        )

    #* --- Signals ---
    def request_shutdown(self, sig: signal.Signals = signal.SIGTERM) -> None:
        """
        Starts the shutdown sequence. Only the first request counts, so the
        worker is signalled exactly once.

        :param sig: The signal to forward to the worker.
        """
        if self.shutdown_signal is not None:
            log.info(f"Received {sig.name} while already shutting down. Ignoring.")
            return
        if self.state not in (SupervisorState.WORKER_SPAWNED, SupervisorState.SERVING):
            log.debug(f"Shutdown requested in state {self.state.name}. Ignoring.")
            return

        log.info(f"Health server received {sig.name}, shutting down.")
        self.shutdown_signal = sig
        self._transition(SupervisorState.SHUTTING_DOWN)
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    def _install_signal_handlers(self) -> None:
        for sig in SHUTDOWN_SIGNALS:
            try:
                self._loop.add_signal_handler(sig, self.request_shutdown, sig)
                self._installed_signals.append(sig)
            except (NotImplementedError, RuntimeError, ValueError) as e:
                log.warning(f"Could not install handler for {sig.name}: {e}")

    def _remove_signal_handlers(self) -> None:
        for sig in self._installed_signals:
            self._loop.remove_signal_handler(sig)
        self._installed_signals.clear()

    #* --- Lifecycle ---
    def spawn(self) -> WorkerProcess:
        """
        Spawns the worker process. Moves Idle -> WorkerSpawned.

        :raises SpawnFailure: If the worker cannot be started. The supervisor is then Terminated.
        """
        try:
            worker = process_utils.spawn_worker(
                self.config.WORKER_COMMAND,
                cwd=self.config.WORKER_CWD or None,
                capture_output=self.config.CAPTURE_WORKER_OUTPUT,
                logger_name=self.config.WORKER_LOGGER_NAME,
            )
        except SpawnFailure:
            self._transition(SupervisorState.TERMINATED)
            raise
        self._record_worker(worker)
        self._transition(SupervisorState.WORKER_SPAWNED)
        return worker

    async def _stop_worker(self, sig: signal.Signals) -> None:
        await self._loop.run_in_executor(
            None, shutdown.stop_worker, self.worker, sig, float(self.config.GRACEFUL_SHUTDOWN_TIMEOUT)
        )

    async def _abort(self) -> None:
        """Stops the worker after a fatal serving error and terminates."""
        if self.shutdown_signal is None:
            self.request_shutdown(signal.SIGTERM)
        await self._stop_worker(self.shutdown_signal or signal.SIGTERM)
        self._transition(SupervisorState.TERMINATED)

    async def _serve_until_shutdown(self) -> None:
        """
        Serves the health app until shutdown is requested. Moves to Serving
        once the listener accepts connections.

        :raises ListenFailure: If the port cannot be bound or never becomes ready.
        """
        server_config = startup.build_server_config(self.config)
        serve_task = asyncio.ensure_future(
            serve(self.create_app(), server_config, shutdown_trigger=self._shutdown_event.wait)
        )
        ready_task = asyncio.ensure_future(
            startup.wait_for_listener(self.config.HEALTH_HOST, self.config.PORT, self.config.LISTENER_STARTUP_TIMEOUT)
        )
        try:
            await asyncio.wait({serve_task, ready_task}, return_when=asyncio.FIRST_COMPLETED)
            if ready_task.done() and not serve_task.done():
                if ready_task.result():
                    if self.state is SupervisorState.WORKER_SPAWNED:
                        self._transition(SupervisorState.SERVING)
                        log.info(f"Health server listening on port {self.config.PORT} for worker PID {self.worker_pid}")
                else:
                    self.request_shutdown(signal.SIGTERM)
                    await serve_task
                    raise ListenFailure(f"Health server on port {self.config.PORT} did not become ready.")
            await serve_task
        except OSError as e:
            raise ListenFailure(f"Could not bind health server to {self.config.HEALTH_HOST}:{self.config.PORT}: {e}") from e
        finally:
            if not ready_task.done():
                ready_task.cancel()
            self.listener_closed = True
            log.info("Health server closed.")

    async def run(self) -> int:
        """
        Runs the full lifecycle: spawn the worker, serve health checks, and on
        SIGTERM/SIGINT stop the listener, forward the signal, and wait for the worker.

        :return: 0 after a graceful shutdown.
        :raises SpawnFailure: If the worker could not be started.
        :raises ListenFailure: If the health server could not start. The worker is stopped first.
        """
        self._loop = asyncio.get_running_loop()
        self._shutdown_event = asyncio.Event()
        self.spawn()
        self._install_signal_handlers()
        try:
            try:
                await self._serve_until_shutdown()
            except ListenFailure as e:
                log.critical(str(e))
                await self._abort()
                raise
            except Exception as e:
                log.critical(f"Health server stopped unexpectedly: {e}", exc_info=True)
                await self._abort()
                raise

            if self.shutdown_signal is None:
                self.request_shutdown(signal.SIGTERM)
            await self._stop_worker(self.shutdown_signal)
            self._transition(SupervisorState.TERMINATED)
            log.info("Supervisor shutdown complete.")
            return 0
        finally:
            self._remove_signal_handlers()
