"""Tests for logging setup."""

import logging

import pytest

from ovsx_sync.utils.logging_config import (
    ColoredFormatter,
    ExtensionFilter,
    extension_context,
    set_log_level,
    setup_logging,
)


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Put the root logger back after each test."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestSetupLogging:
    """Handler installation."""

    def test_file_handler(self, tmp_path):
        """A log file gets plain, uncolored records."""
        log_file = tmp_path / "logs" / "ovsx-sync.log"
        setup_logging(log_level="INFO", log_file=log_file, console_output=False)

        logging.getLogger("ovsx_sync.test").info("published %s", "redhat.java")
        for handler in logging.getLogger().handlers:
            handler.flush()

        content = log_file.read_text()
        assert "published redhat.java" in content
        assert "\033[" not in content

    def test_colored_formatter_restores_levelname(self):
        """Coloring does not leak into other handlers."""
        record = logging.LogRecord("ovsx_sync", logging.ERROR, __file__, 1, "boom", None, None)
        formatted = ColoredFormatter(fmt="%(levelname)s %(message)s").format(record)

        assert "\033[31m" in formatted
        assert record.levelname == "ERROR"

    def test_set_log_level_only_app_loggers(self):
        """Third-party loggers are not made verbose."""
        app_logger = logging.getLogger("ovsx_sync.core.sync.batch")
        set_log_level("DEBUG")

        assert app_logger.level == logging.DEBUG
        assert logging.getLogger("urllib3").level == logging.WARNING

    def test_plain_formatter_without_color(self):
        """Color can be switched off for non-terminal output."""
        record = logging.LogRecord("ovsx_sync", logging.WARNING, __file__, 1, "slow", None, None)
        formatted = ColoredFormatter(fmt="%(levelname)s|%(message)s", use_color=False).format(
            record
        )

        assert formatted == "WARNING |slow"


class TestExtensionContext:
    """Tagging records with the extension being processed."""

    def test_records_carry_extension_id(self, tmp_path):
        """Lines logged inside the context name the extension, others show a dash."""
        log_file = tmp_path / "ovsx-sync.log"
        setup_logging(log_level="INFO", log_file=log_file, console_output=False)
        logger = logging.getLogger("ovsx_sync.test")

        with extension_context("redhat.java"):
            logger.info("inside")
        logger.info("outside")
        for handler in logging.getLogger().handlers:
            handler.flush()

        lines = [line for line in log_file.read_text().splitlines() if "side" in line]
        assert "[redhat.java]" in lines[0] and lines[0].endswith("inside")
        assert "[-]" in lines[1] and lines[1].endswith("outside")

    def test_context_restored_after_error(self):
        """The previous extension is restored when the block raises."""
        with extension_context("a.one"):
            with pytest.raises(ValueError):
                with extension_context("b.two"):
                    raise ValueError("boom")
            record = logging.LogRecord("ovsx_sync", logging.INFO, __file__, 1, "x", None, None)
            ExtensionFilter().filter(record)

        assert record.extension == "a.one"
