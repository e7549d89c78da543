"""Tests for logging setup and the Loki handler."""

import sys
import time
import shlex
import logging
from unittest.mock import MagicMock, patch

import pytest

from sidecar.log import resolve_level, setup_logging
from sidecar.log.handler import LokiHandler
from sidecar.log.setup import WORKER_OUTPUT_LOGGER, MainFormatter
from sidecar.local.supervisor import process_utils


def make_record(name: str, msg: str, level: int = logging.INFO) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, msg, None, None)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    proc = logging.getLogger(WORKER_OUTPUT_LOGGER)
    saved = {logger: (list(logger.handlers), logger.level, logger.propagate) for logger in (root, proc)}
    yield root
    for logger, (handlers, level, propagate) in saved.items():
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            if handler not in handlers:
                handler.close()
        for handler in handlers:
            logger.addHandler(handler)
        logger.setLevel(level)
        logger.propagate = propagate


class TestMainFormatter:
    """Tests for MainFormatter."""

    def test_worker_output_is_raw(self):
        assert MainFormatter().format(make_record("proc.worker", "raw line")) == "raw line"

    def test_regular_records_are_decorated(self):
        formatted = MainFormatter().format(make_record("sidecar.test", "hello"))

        assert "INFO" in formatted
        assert "[sidecar.test]" in formatted
        assert formatted.endswith("hello")


class TestSetupLogging:
    """Tests for setup_logging."""

    @pytest.mark.parametrize("name, expected", [("debug", logging.DEBUG), ("WARNING", logging.WARNING), ("bogus", logging.INFO)])
    def test_resolve_level(self, name, expected):
        assert resolve_level(name) == expected

    def test_console_only_by_default(self, restore_root_logger, make_settings):
        setup_logging(logging.WARNING, make_settings())

        assert len(restore_root_logger.handlers) == 1
        assert restore_root_logger.handlers[0].level == logging.WARNING

    def test_repeated_setup_does_not_duplicate_handlers(self, restore_root_logger):
        setup_logging()
        setup_logging()

        assert len(restore_root_logger.handlers) == 1

    def test_loki_handler_added_when_enabled(self, restore_root_logger, make_settings):
        settings = make_settings(LOKI_ENABLED="true", LOKI_URL="http://loki:3100", LOG_BUFFER_FLUSH_INTERVAL="3600")

        with patch("sidecar.log.handler.loki.requests.post"):
            setup_logging(logging.INFO, settings)
            loki = [h for h in restore_root_logger.handlers if isinstance(h, LokiHandler)]

            assert len(loki) == 1
            assert loki[0].url == "http://loki:3100/loki/api/v1/push"
            assert loki[0] in logging.getLogger(WORKER_OUTPUT_LOGGER).handlers

            restore_root_logger.removeHandler(loki[0])
            logging.getLogger(WORKER_OUTPUT_LOGGER).removeHandler(loki[0])
            loki[0].close()

    def test_worker_output_ignores_console_level(self, restore_root_logger, capsys):
        setup_logging(logging.WARNING)

        logging.getLogger("proc.worker").info("WORKER-HELLO")
        logging.getLogger("sidecar.test").info("supervisor chatter")

        out = capsys.readouterr().out
        assert "WORKER-HELLO\n" in out
        assert "supervisor chatter" not in out

    def test_worker_output_is_printed_once(self, restore_root_logger, capsys):
        setup_logging(logging.DEBUG)

        logging.getLogger("proc.worker").info("WORKER-HELLO")

        assert capsys.readouterr().out.count("WORKER-HELLO") == 1


class TestWorkerOutputRelay:
    """Relayed output from a real child process reaches stdout."""

    def test_relay_prints_worker_lines_at_warning_level(self, restore_root_logger, capsys):
        setup_logging(logging.WARNING)
        code = "print('WORKER-HELLO'); print(); print('WORKER-BYE')"
        worker = process_utils.spawn_worker(shlex.join([sys.executable, "-c", code]))
        assert worker.exited.wait(10)

        out = ""
        deadline = time.monotonic() + 10
        while "WORKER-BYE" not in out and time.monotonic() < deadline:
            time.sleep(0.05)
            out += capsys.readouterr().out

        # Supervisor records carry the formatted prefix; worker lines are raw.
        worker_lines = [line for line in out.splitlines() if " - " not in line]
        assert worker_lines == ["WORKER-HELLO", "", "WORKER-BYE"]


class TestLokiHandler:
    """Tests for LokiHandler batching and transport."""

    @pytest.fixture
    def handler(self):
        handler = LokiHandler("http://loki:3100/", org_id="tenant", job="test-job", flush_interval=3600, batch_size=3)
        yield handler
        with patch("sidecar.log.handler.loki.requests.post"):
            handler.close()

    def test_flush_posts_buffered_records(self, handler):
        handler.emit(make_record("sidecar.test", "first"))
        handler.emit(make_record("proc.worker", "worker line", logging.ERROR))

        with patch("sidecar.log.handler.loki.requests.post", return_value=MagicMock(status_code=204)) as post:
            handler.flush()

        post.assert_called_once()
        args, kwargs = post.call_args
        assert args[0] == "http://loki:3100/loki/api/v1/push"
        assert kwargs["headers"]["X-Scope-OrgID"] == "tenant"
        streams = kwargs["json"]["streams"]
        assert len(streams) == 2
        assert streams[0]["stream"]["job"] == "test-job"
        assert streams[1]["stream"]["logger"] == "worker"
        assert streams[1]["stream"]["level"] == "error"
        assert streams[1]["values"][0][1] == "worker line"

    def test_flush_with_empty_buffer_sends_nothing(self, handler):
        with patch("sidecar.log.handler.loki.requests.post") as post:
            handler.flush()

        post.assert_not_called()

    def test_batch_size_triggers_flush(self, handler):
        with patch("sidecar.log.handler.loki.requests.post", return_value=MagicMock(status_code=204)) as post:
            for i in range(3):
                handler.emit(make_record("sidecar.test", f"message {i}"))

        post.assert_called_once()
        assert len(handler.log_buffer) == 0

    def test_transport_errors_do_not_raise(self, handler, capsys):
        import requests

        handler.emit(make_record("sidecar.test", "lost"))
        with patch("sidecar.log.handler.loki.requests.post", side_effect=requests.ConnectionError("down")):
            handler.flush()

        assert "Failed to send 1 logs to Loki" in capsys.readouterr().err
