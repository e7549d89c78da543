import os
import asyncio
import logging
import setproctitle
from typing import TYPE_CHECKING
from sidecar.errors import SpawnFailure
from sidecar.local.supervisor import Supervisor
from sidecar.local.supervisor.process_utils import parse_command

if TYPE_CHECKING:
    from sidecar.local.config import LauncherSettings

log = logging.getLogger(__name__)


class LaunchStrategy:
    """How the container's main command is run."""
    name = "base"

    def __init__(self, config: "LauncherSettings") -> None:
        self.config = config

    def launch(self) -> int:
        """
        Runs the strategy.

        :return: The process exit code.
        """
        raise NotImplementedError


class ServerLaunch(LaunchStrategy):
    """
    Runs the primary server command in the foreground by replacing this process.

    Signals from the platform then reach the server directly and there is no
    health sidecar.
    """
    name = "server"

    def launch(self) -> int:
        args = parse_command(self.config.SERVER_COMMAND)
        log.info(f"Starting server: {self.config.SERVER_COMMAND}")
        for handler in logging.getLogger().handlers:
            handler.flush()
        try:
            os.execvp(args[0], args)
        except OSError as e:
            raise SpawnFailure(f"Failed to start server '{self.config.SERVER_COMMAND}': {e}") from e
        return 0  # Unreachable: execvp only returns by raising.


class SupervisedWorkerLaunch(LaunchStrategy):
    """Spawns the worker and serves its health endpoint until signalled."""
    name = "worker"

    def launch(self) -> int:
        setproctitle.setproctitle(self.config.PROCESS_TITLE)
        supervisor = Supervisor(self.config)
        return asyncio.run(supervisor.run())


def select_strategy(config: "LauncherSettings") -> LaunchStrategy:
    """
    Picks the launch strategy from the mode flag.

    :param config: The launcher settings.
    :return: SupervisedWorkerLaunch in worker mode, ServerLaunch otherwise.
    """
    if config.is_worker_mode:
        return SupervisedWorkerLaunch(config)
    return ServerLaunch(config)
