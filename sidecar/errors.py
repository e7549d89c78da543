"""
Error types raised by the launcher.

Startup failures carry the process exit code the entrypoint should use.
Steady-state failures (probe, signal forwarding) never leave the supervisor.
"""


class LauncherError(Exception):
    """Base class for all launcher errors."""
    exit_code = 1


class SettingsError(LauncherError):
    """A setting override could not be applied."""
    exit_code = 3


class SpawnFailure(LauncherError):
    """The worker or server command could not be started."""
    exit_code = 1


class ListenFailure(LauncherError):
    """The health server could not bind or never became ready."""
    exit_code = 2


class ProbeFailure(LauncherError):
    """The liveness of the worker could not be determined."""


class SignalForwardFailure(LauncherError):
    """A signal could not be delivered to the worker process."""
