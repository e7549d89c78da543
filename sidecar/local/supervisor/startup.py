import time
import asyncio
import logging
from typing import TYPE_CHECKING
from hypercorn.config import Config as HypercornConfig

if TYPE_CHECKING:
    from sidecar.local.config import LauncherSettings

log = logging.getLogger(__name__)

# Wildcard binds are probed through loopback.
_PROBE_HOSTS = {"0.0.0.0": "127.0.0.1", "::": "::1", "": "127.0.0.1"}


def build_server_config(config: "LauncherSettings") -> HypercornConfig:
    """
    Builds the Hypercorn configuration for the health server.

    :param config: The launcher settings.
    :return: A Hypercorn Config bound to HEALTH_HOST:PORT.
    """
    server_config = HypercornConfig()
    host = config.HEALTH_HOST
    server_config.bind = [f"[{host}]:{config.PORT}" if ":" in host else f"{host}:{config.PORT}"]
    server_config.graceful_timeout = float(config.SERVER_GRACEFUL_TIMEOUT)
    # Route Hypercorn's own logs into our logging tree.
    server_config.errorlog = logging.getLogger("hypercorn.error")
    server_config.accesslog = None
    return server_config


async def wait_for_listener(host: str, port: int, timeout: float) -> bool:
    """
    Waits for the health server to accept connections on its port.

    :param host: The bind host. Wildcards are probed via loopback.
    :param port: The bind port.
    :param timeout: Seconds to wait before giving up.
    :return: True if the server is up, False if it times out.
    """
    probe_host = _PROBE_HOSTS.get(host, host)
    log.debug(f"Waiting for health server at {probe_host}:{port}...")
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        try:
            _, writer = await asyncio.wait_for(asyncio.open_connection(probe_host, port), timeout=1)
        except (OSError, asyncio.TimeoutError):
            await asyncio.sleep(0.1)
            continue
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True
    log.critical(f"Health server did not become available after {timeout} seconds.")
    return False
