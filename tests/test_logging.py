"""Test logging configuration."""

import logging
from pathlib import Path

import pytest
import structlog
from structlog.testing import LogCapture

from geph_autotest.exceptions import ConfigurationError
from geph_autotest.logging import get_logger, setup_logging


class TestLogging:
    """Test logging functionality."""

    def setup_method(self) -> None:
        """Setup before each test - reset logging configuration."""
        structlog.reset_defaults()
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

    def teardown_method(self) -> None:
        structlog.reset_defaults()

    def test_setup_logging_default(self) -> None:
        setup_logging()
        logger = get_logger("test")
        assert logger is not None
        assert hasattr(logger, "info")
        assert hasattr(logger, "warning")
        assert logging.getLogger().level == logging.INFO

    def test_setup_logging_with_level(self) -> None:
        setup_logging(level="debug")
        assert logging.getLogger().level == logging.DEBUG

    def test_unknown_level(self) -> None:
        with pytest.raises(ConfigurationError):
            setup_logging(level="chatty")

    def test_quiets_http_libraries(self) -> None:
        setup_logging(level="INFO")
        assert logging.getLogger("urllib3").level == logging.WARNING

        setup_logging(level="ERROR")
        assert logging.getLogger("urllib3").level == logging.ERROR

    def test_setup_logging_json_format(self) -> None:
        setup_logging(json_format=True)
        logger = get_logger("test")

        cap = LogCapture()
        structlog.configure(processors=[cap])

        logger.info("Connected to geph", exit="sg-01.example.net")

        assert len(cap.entries) == 1
        assert cap.entries[0]["event"] == "Connected to geph"
        assert cap.entries[0]["exit"] == "sg-01.example.net"

    def test_setup_logging_with_file(self, tmp_path: Path) -> None:
        log_file = tmp_path / "autotest.log"
        setup_logging(log_file=str(log_file))

        logging.getLogger("test_file").info("uploaded test results")

        for handler in logging.getLogger().handlers:
            handler.flush()

        assert "uploaded test results" in log_file.read_text()
