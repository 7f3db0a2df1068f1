"""Test logging configuration."""

import logging
from pathlib import Path

import structlog
from structlog.testing import LogCapture

from kube_tunnel.common.logging import get_logger, setup_logging


class TestLogging:
    """Test logging functionality."""

    def setup_method(self) -> None:
        """Reset logging configuration before each test."""
        structlog.reset_defaults()
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

    def teardown_method(self) -> None:
        setup_logging()

    def test_setup_logging_default(self) -> None:
        setup_logging()
        logger = get_logger("test")
        assert logger is not None
        assert hasattr(logger, "info")
        assert hasattr(logger, "error")

    def test_setup_logging_with_level(self) -> None:
        setup_logging(level="DEBUG")
        assert logging.getLogger().level == logging.DEBUG

    def test_setup_logging_json_format(self) -> None:
        setup_logging(json_format=True)
        logger = get_logger("test_json")

        cap = LogCapture()
        structlog.configure(processors=[cap])

        logger.info("Port-forward running", port=9200)

        assert len(cap.entries) == 1
        assert cap.entries[0]["event"] == "Port-forward running"
        assert cap.entries[0]["port"] == 9200

    def test_setup_logging_with_file(self, tmp_path: Path) -> None:
        log_file = tmp_path / "tunnel.log"
        setup_logging(log_file=str(log_file))

        python_logger = logging.getLogger("test_file")
        python_logger.info("kubectl stdout: Forwarding from 127.0.0.1:9200")

        for handler in logging.getLogger().handlers:
            handler.flush()

        assert log_file.exists()
        assert "Forwarding from 127.0.0.1:9200" in log_file.read_text()

    def test_get_logger(self) -> None:
        setup_logging()
        logger = get_logger("test_module")
        assert hasattr(logger, "debug")
        assert hasattr(logger, "warning")
