"""
Pytest configuration and shared fixtures.

- make_settings: LauncherSettings built from an explicit environment mapping
- free_port: an unused TCP port on loopback
- worker_command: builds a command line running a small Python worker script
"""

import sys
import shlex
import socket
import textwrap

import pytest

from sidecar.local.config import LauncherSettings


WORKER_TEMPLATE = """
import signal
import sys
import time
from pathlib import Path

marker = Path(sys.argv[1])
ready = Path(sys.argv[2])

def on_signal(signum, frame):
    with marker.open("a") as f:
        f.write(f"{{signum}}\\n")
    {on_signal_exit}

signal.signal(signal.SIGTERM, on_signal)
signal.signal(signal.SIGINT, on_signal)
ready.write_text("ready")
while True:
    time.sleep(0.1)
"""


@pytest.fixture
def make_settings():
    """Return a factory building settings from keyword overrides only."""
    def _make(**overrides) -> LauncherSettings:
        return LauncherSettings(environ={key: str(value) for key, value in overrides.items()})
    return _make


@pytest.fixture
def free_port() -> int:
    """Return a TCP port that was free a moment ago."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def worker_command(tmp_path):
    """
    Return a factory for a Python worker that records received signals.

    The worker writes each signal number to `signals.txt` and writes
    `ready.txt` once its handlers are installed.
    """
    def _make(ignore_sigterm: bool = False):
        script = tmp_path / "worker.py"
        script.write_text(textwrap.dedent(WORKER_TEMPLATE).format(
            on_signal_exit="pass" if ignore_sigterm else "sys.exit(0)",
        ))
        marker = tmp_path / "signals.txt"
        ready = tmp_path / "ready.txt"
        command = shlex.join([sys.executable, str(script), str(marker), str(ready)])
        return command, marker, ready
    return _make
