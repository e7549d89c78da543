import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence
from starlette.routing import Route
from starlette.requests import Request
from starlette.middleware import Middleware
from starlette.applications import Starlette
from starlette.responses import JSONResponse, PlainTextResponse, Response
from starlette.types import Receive, Scope, Send

from sidecar import settings as default_settings
from sidecar.errors import ProbeFailure
from sidecar.web.middleware import NoCacheHeadersMiddleware
from sidecar.local.supervisor.process_utils import pid_exists

log = logging.getLogger(__name__)

LivenessChecker = Callable[[int], bool]
PidSource = Callable[[], Optional[int]]
RequestHandler = Callable[[Request], Awaitable[Response]]


@dataclass(frozen=True)
class HealthStatus:
    """The health of the worker as seen by a single request."""
    healthy: bool
    reason: Optional[str] = None

    @property
    def status(self) -> str:
        return "healthy" if self.healthy else "unhealthy"

    @property
    def http_status(self) -> int:
        return 200 if self.healthy else 503

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"status": self.status}
        if self.reason is not None:
            body["reason"] = self.reason
        return body


class AnyMethodEndpoint:
    """
    ASGI endpoint that answers every HTTP method with the same handler.

    A plain function endpoint is limited to its declared methods and anything
    else gets a 405. The health check must answer whatever the prober sends.
    """

    def __init__(self, handler: RequestHandler) -> None:
        self.handler = handler

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive, send)
        response = await self.handler(request)
        await response(scope, receive, send)


def not_found_status(pid: int) -> HealthStatus:
    return HealthStatus(False, f"Worker process PID {pid} not found")


def evaluate_health(pid: Optional[int], is_alive: LivenessChecker) -> HealthStatus:
    """
    Computes the worker's health from its recorded PID.

    :param pid: The recorded worker PID, or None if no worker was started.
    :param is_alive: The liveness checker to consult.
    :return: The derived HealthStatus. Lookup errors count as "not found".
    """
    if not pid:
        return HealthStatus(False, "Worker PID not set")
    try:
        alive = is_alive(pid)
    except (ProbeFailure, OSError) as e:
        log.warning(f"Liveness probe failed: {e}")
        alive = False
    return HealthStatus(True) if alive else not_found_status(pid)


async def probe_health(pid: Optional[int], is_alive: LivenessChecker, timeout: float) -> HealthStatus:
    """Runs evaluate_health off the event loop, bounded by a timeout."""
    loop = asyncio.get_running_loop()
    try:
        return await asyncio.wait_for(loop.run_in_executor(None, evaluate_health, pid, is_alive), timeout)
    except asyncio.TimeoutError:
        log.warning(f"Liveness probe for PID {pid} timed out after {timeout}s.")
        return not_found_status(pid)


def create_app(
    get_pid: PidSource,
    is_alive: LivenessChecker = pid_exists,
    probe_timeout: float = default_settings.PROBE_TIMEOUT_SECONDS,
    health_paths: Sequence[str] = default_settings.HEALTH_PATHS,
) -> Starlette:
    """
    Builds the Starlette app serving the worker health check.

    :param get_pid: Returns the recorded worker PID. Read on every request.
    :param is_alive: The liveness checker. Defaults to the bare PID probe.
    :param probe_timeout: Upper bound for a single liveness probe, in seconds.
    :param health_paths: Paths answered with the health status. Everything else is 404.
    :return: The ASGI application.
    """
    health_paths = frozenset(health_paths)

    async def main_handler(request: Request) -> Response:
        """Answers health paths with the worker status and everything else with 404."""
        if request.url.path not in health_paths:
            return PlainTextResponse("Not Found", status_code=404)

        status = await probe_health(get_pid(), is_alive, probe_timeout)
        if not status.healthy:
            log.debug(f"Health check failed: {status.reason}")
        return JSONResponse(status.to_dict(), status_code=status.http_status)

    routes = [
        Route("/{path:path}", endpoint=AnyMethodEndpoint(main_handler)),
    ]
    middleware = [
        Middleware(NoCacheHeadersMiddleware),
    ]
    return Starlette(debug=False, routes=routes, middleware=middleware)
