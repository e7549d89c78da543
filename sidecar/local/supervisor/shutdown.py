import signal
import psutil
import logging
from sidecar.errors import SignalForwardFailure
from sidecar.local.supervisor.process_utils import WorkerProcess

log = logging.getLogger(__name__)


def forward_signal(worker: WorkerProcess, sig: signal.Signals) -> None:
    """
    Sends the given signal to the worker process.

    psutil refuses to signal a PID that now belongs to another process,
    so a reused PID is reported the same way as an exited worker.

    :param worker: The supervised worker.
    :param sig: The signal the supervisor received.
    :raises SignalForwardFailure: If the worker is gone or cannot be signalled.
    """
    if worker.exited.is_set():
        raise SignalForwardFailure(
            f"Could not kill worker process {worker.pid}: already exited with code {worker.returncode}"
        )
    try:
        log.info(f"Killing worker process PID {worker.pid} with {sig.name}")
        worker.proc.send_signal(sig)
    except psutil.NoSuchProcess as e:
        raise SignalForwardFailure(f"Could not kill worker process {worker.pid}: no such process") from e
    except psutil.Error as e:
        raise SignalForwardFailure(f"Could not kill worker process {worker.pid}: {e}") from e


def wait_for_exit(worker: WorkerProcess, timeout: float) -> bool:
    """
    Blocks until the worker has exited or the timeout expires.

    :return: True if the worker exited in time.
    """
    return worker.exited.wait(timeout)


def forceful_kill(worker: WorkerProcess) -> None:
    """Forcefully kills a worker that did not terminate gracefully."""
    log.warning(f"Worker process PID {worker.pid} did not terminate gracefully. Forcing shutdown...")
    try:
        worker.proc.kill()
    except psutil.NoSuchProcess:
        log.warning(f"Process {worker.pid} no longer exists, skipping forceful kill.")
        return
    if not worker.exited.wait(5):
        log.error(f"Worker process PID {worker.pid} is still running after SIGKILL.")


def stop_worker(worker: WorkerProcess, sig: signal.Signals, timeout: float) -> None:
    """
    Runs the full shutdown sequence for the worker: forward, wait, then kill.

    :param worker: The supervised worker.
    :param sig: The signal to forward first.
    :param timeout: Seconds to wait for a graceful exit before force-killing.
    """
    try:
        forward_signal(worker, sig)
    except SignalForwardFailure as e:
        log.error(str(e))
        return

    if wait_for_exit(worker, timeout):
        log.info(f"Worker process PID {worker.pid} exited with code {worker.returncode}.")
        return
    forceful_kill(worker)
