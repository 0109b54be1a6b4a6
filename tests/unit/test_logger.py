"""Unit tests for core logger module."""
import logging
from logging.handlers import TimedRotatingFileHandler

from stockfunnel.core.logger import setup_logging


class TestSetupLogging:
    def test_returns_logger(self):
        log = setup_logging("SF_TEST")
        assert isinstance(log, logging.Logger)
        assert log.name == "SF_TEST"

    def test_default_level_is_info(self):
        log = setup_logging("SF_DEFAULT")
        assert log.level == logging.INFO

    def test_level_is_case_insensitive(self):
        log = setup_logging("SF_LOWER", level="debug")
        assert log.level == logging.DEBUG

    def test_unknown_level_falls_back_to_info(self):
        log = setup_logging("SF_UNKNOWN", level="VERBOSE")
        assert log.level == logging.INFO

    def test_repeated_calls_do_not_duplicate_handlers(self):
        log = setup_logging("SF_REPEAT")
        count = len(log.handlers)
        log = setup_logging("SF_REPEAT", level="ERROR")
        assert len(log.handlers) == count
        assert log.level == logging.ERROR


class TestFileHandler:
    def test_log_dir_adds_rotating_file_handler(self, tmp_path):
        log_dir = tmp_path / "logs"
        log = setup_logging("SF_FILE", log_dir=str(log_dir))
        file_handlers = [h for h in log.handlers if isinstance(h, TimedRotatingFileHandler)]
        assert len(file_handlers) == 1
        assert log_dir.exists()

        log.info("hello")
        file_handlers[0].flush()
        assert "hello" in (log_dir / "SF_FILE.log").read_text(encoding="utf-8")

    def test_no_log_dir_console_only(self):
        log = setup_logging("SF_CONSOLE")
        assert not any(isinstance(h, TimedRotatingFileHandler) for h in log.handlers)
