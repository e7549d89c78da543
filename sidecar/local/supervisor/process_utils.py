import sys
import time
import shlex
import psutil
import logging
import threading
import subprocess
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from sidecar.errors import ProbeFailure, SpawnFailure

log = logging.getLogger(__name__)


#* --- Process Status & Monitoring ---
def pid_exists(pid: int) -> bool:
    """
    Bare PID probe. A wrapper for psutil.pid_exists that never raises.

    This is the weak signal: a PID reused by the OS after the original
    process exited still reports as alive.
    """
    try:
        return psutil.pid_exists(pid)
    except (psutil.Error, OSError) as e:
        log.debug(f"PID probe for {pid} failed: {e}")
        return False


@dataclass
class WorkerProcess:
    """The single child process owned by a Supervisor."""
    popen: subprocess.Popen
    proc: psutil.Process
    started_at: float
    exited: threading.Event = field(default_factory=threading.Event)
    returncode: Optional[int] = None

    @property
    def pid(self) -> int:
        return self.popen.pid

    def is_alive(self) -> bool:
        """
        Checks liveness through the owned process handle.

        :return: False once the exit watcher fired, the PID was reused, or the process is a zombie.
        :raises ProbeFailure: If psutil cannot determine the state.
        """
        if self.exited.is_set():
            return False
        try:
            return self.proc.is_running() and self.proc.status() != psutil.STATUS_ZOMBIE
        except psutil.NoSuchProcess:
            return False
        except psutil.Error as e:
            raise ProbeFailure(f"Could not inspect worker process PID {self.pid}: {e}") from e

    def is_alive_pid(self, pid: int) -> bool:
        """Liveness checker signature used by the health app."""
        return pid == self.pid and self.is_alive()


#* --- Process Creation ---
def parse_command(command: str) -> List[str]:
    """
    Splits a command string into arguments using shell-like rules.

    :param command: The command line, e.g. 'pnpm start-worker'.
    :return: The argument list.
    :raises SpawnFailure: If the command is empty or cannot be parsed.
    """
    try:
        args = shlex.split(command)
    except ValueError as e:
        raise SpawnFailure(f"Could not parse command '{command}': {e}") from e
    if not args:
        raise SpawnFailure("Command is empty. Nothing to launch.")
    return args


def _get_popen_session_flags() -> Dict[str, Any]:
    """Returns platform-specific flags that detach the child from our process group."""
    if sys.platform == "win32":
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    return {"start_new_session": True}


def _read_pipe(pipe, logger_name: str, level: int) -> None:
    """Target function for reader threads. Reads and logs lines from a subprocess pipe."""
    proc_logger = logging.getLogger(logger_name)
    try:
        for line_bytes in iter(pipe.readline, b""):
            line = line_bytes.decode("utf-8", errors="replace").rstrip("\r\n")
            proc_logger.log(level, line)
    except (OSError, ValueError) as e:
        log.debug(f"Pipe reader for {logger_name} stream exited: {e}")
    finally:
        pipe.close()


def log_process_output(process: subprocess.Popen, logger_name: str) -> None:
    """
    Reads a process's stdout/stderr in threads and logs the output.

    Draining both pipes keeps the child from blocking on a full pipe buffer.

    :param process: The `subprocess.Popen` object to monitor.
    :param logger_name: The logger receiving the lines (stdout at INFO, stderr at ERROR).
    """
    if process.stdout:
        threading.Thread(
            target=_read_pipe, args=(process.stdout, logger_name, logging.INFO),
            daemon=True, name="WorkerStdoutReader"
        ).start()
    if process.stderr:
        threading.Thread(
            target=_read_pipe, args=(process.stderr, logger_name, logging.ERROR),
            daemon=True, name="WorkerStderrReader"
        ).start()


def _watch_for_exit(worker: WorkerProcess) -> None:
    """Reaps the worker when it exits and records its return code."""
    worker.returncode = worker.popen.wait()
    worker.exited.set()
    log.warning(f"Worker process PID {worker.pid} exited with code {worker.returncode}.")


def start_exit_watcher(worker: WorkerProcess) -> threading.Thread:
    """
    Starts a daemon thread that waits on the worker and records its exit.

    :param worker: The worker to watch.
    :return: The started thread.
    """
    watcher = threading.Thread(
        target=_watch_for_exit, args=(worker,),
        daemon=True, name="WorkerExitWatcher"
    )
    watcher.start()
    return watcher


def spawn_worker(command: str, cwd: Optional[str] = None, capture_output: bool = True,
                 logger_name: str = "proc.worker") -> WorkerProcess:
    """
    Launches the worker command as a child process and starts watching it.

    :param command: The worker command line.
    :param cwd: Working directory for the child, or None to inherit ours.
    :param capture_output: Relay stdout/stderr through logging instead of inheriting them.
    :param logger_name: Logger used for relayed output.
    :return: The running WorkerProcess.
    :raises SpawnFailure: If the command cannot be started.
    """
    args = parse_command(command)
    log.info(f"Starting worker process: {command}")
    pipe = subprocess.PIPE if capture_output else None
    try:
        p = subprocess.Popen(
            args, stdout=pipe, stderr=pipe, stdin=subprocess.DEVNULL,
            cwd=cwd or None, **_get_popen_session_flags()
        )
    except OSError as e:
        log.critical(f"Failed to start worker process '{command}': {e}")
        raise SpawnFailure(f"Failed to start worker process '{command}': {e}") from e

    if capture_output:
        log_process_output(p, logger_name)

    try:
        proc = psutil.Process(p.pid)
    except psutil.Error as e:
        # The child is at worst a zombie until we reap it, so this is unexpected.
        p.kill()
        p.wait()
        raise SpawnFailure(f"Worker process PID {p.pid} could not be inspected after spawn: {e}") from e

    worker = WorkerProcess(popen=p, proc=proc, started_at=time.time())
    start_exit_watcher(worker)
    log.info(f"Worker process started with PID: {worker.pid}")
    return worker
