"""Unit tests for the health-check app with injected liveness checkers."""

import os
import time

import pytest
from starlette.testclient import TestClient

from sidecar.errors import ProbeFailure
from sidecar.web.health import HealthStatus, create_app, evaluate_health


def alive(pid: int) -> bool:
    return True


def dead(pid: int) -> bool:
    return False


def client_for(pid, checker=alive, **kwargs) -> TestClient:
    return TestClient(create_app(get_pid=lambda: pid, is_alive=checker, **kwargs))


class TestHealthStatus:
    """Tests for the HealthStatus value object."""

    def test_healthy_body_has_no_reason(self):
        status = HealthStatus(True)

        assert status.http_status == 200
        assert status.to_dict() == {"status": "healthy"}

    def test_unhealthy_body_has_reason(self):
        status = HealthStatus(False, "Worker PID not set")

        assert status.http_status == 503
        assert status.to_dict() == {"status": "unhealthy", "reason": "Worker PID not set"}


class TestEvaluateHealth:
    """Tests for evaluate_health."""

    def test_pid_not_set(self):
        assert evaluate_health(None, alive) == HealthStatus(False, "Worker PID not set")

    def test_live_pid(self):
        assert evaluate_health(1234, alive) == HealthStatus(True)

    def test_missing_pid(self):
        assert evaluate_health(1234, dead) == HealthStatus(False, "Worker process PID 1234 not found")

    def test_probe_failure_counts_as_not_found(self):
        def failing(pid):
            raise ProbeFailure("access denied")

        assert evaluate_health(1234, failing).reason == "Worker process PID 1234 not found"

    def test_os_error_counts_as_not_found(self):
        def failing(pid):
            raise PermissionError("denied")

        assert evaluate_health(1234, failing).healthy is False


class TestHealthEndpoint:
    """Tests for the HTTP surface of the health app."""

    @pytest.mark.parametrize("path", ["/", "/health"])
    def test_pid_not_set_returns_503(self, path):
        response = client_for(None).get(path)

        assert response.status_code == 503
        assert response.json() == {"status": "unhealthy", "reason": "Worker PID not set"}

    @pytest.mark.parametrize("path", ["/", "/health"])
    def test_live_worker_returns_200(self, path):
        response = client_for(4242).get(path)

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}
        assert response.text == '{"status":"healthy"}'

    def test_exited_worker_returns_503_with_pid(self):
        response = client_for(4242, checker=dead).get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"
        assert "4242" in response.json()["reason"]

    @pytest.mark.parametrize("path", ["/healthz", "/health/extra", "/favicon.ico"])
    def test_other_paths_return_404(self, path):
        response = client_for(4242).get(path)

        assert response.status_code == 404
        assert response.text == "Not Found"

    def test_other_methods_are_answered(self):
        client = client_for(4242)

        assert client.post("/health").status_code == 200
        assert client.head("/").status_code == 200

    @pytest.mark.parametrize("path, expected", [("/nope", 404), ("/health", 200), ("/", 200)])
    @pytest.mark.parametrize("method", ["TRACE", "PROPFIND"])
    def test_unlisted_methods_are_routed_like_get(self, method, path, expected):
        response = client_for(4242).request(method, path)

        assert response.status_code == expected

    def test_unlisted_method_on_unknown_path_is_plain_not_found(self):
        response = client_for(4242).request("TRACE", "/nope")

        assert response.text == "Not Found"

    def test_repeated_requests_are_identical(self):
        client = client_for(4242, checker=dead)
        first = client.get("/health")
        second = client.get("/health")

        assert first.status_code == second.status_code
        assert first.content == second.content

    def test_pid_is_read_on_every_request(self):
        state = {"pid": None}
        client = TestClient(create_app(get_pid=lambda: state["pid"], is_alive=alive))

        assert client.get("/health").status_code == 503
        state["pid"] = 99
        assert client.get("/health").status_code == 200

    def test_slow_probe_times_out_as_unhealthy(self):
        def slow(pid):
            time.sleep(0.5)
            return True

        response = client_for(4242, checker=slow, probe_timeout=0.05).get("/health")

        assert response.status_code == 503
        assert response.json()["reason"] == "Worker process PID 4242 not found"

    def test_responses_are_not_cacheable(self):
        response = client_for(4242).get("/health")

        assert response.headers["cache-control"] == "no-store"
        assert response.headers["x-content-type-options"] == "nosniff"

    def test_default_checker_uses_real_pids(self):
        client = TestClient(create_app(get_pid=os.getpid))

        assert client.get("/health").status_code == 200
