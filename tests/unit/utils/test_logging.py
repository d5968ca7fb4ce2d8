"""Tests for the loguru logging setup."""

import io

from journal_mirror.services import HostIdentity
from journal_mirror.utils import logging as mirror_logging


class TestLogging:
    def teardown_method(self):
        # Restore the default console sink for other tests
        mirror_logging.init_logger()

    def test_file_sink_receives_messages(self, temp_dir):
        log_file = temp_dir / "logs" / "journal-mirror.log"

        logger = mirror_logging.init_logger(level="INFO", log_file=log_file, colorize=False)
        logger.info("Mirroring {} hosts", 3)
        logger.complete()

        assert "Mirroring 3 hosts" in log_file.read_text()

    def test_reinitializing_replaces_sinks(self, temp_dir):
        first = temp_dir / "first.log"
        second = temp_dir / "second.log"

        mirror_logging.init_logger(log_file=first, colorize=False)
        logger = mirror_logging.init_logger(log_file=second, colorize=False)
        logger.warning("only in the second file")
        logger.complete()

        assert "only in the second file" not in first.read_text()
        assert "only in the second file" in second.read_text()

    def test_added_sinks_keep_their_own_level(self):
        logger = mirror_logging.init_logger(level="WARNING", colorize=False)
        stream = io.StringIO()
        sink_id = logger.add(stream, level="DEBUG", format="{message}")
        try:
            logger.debug("debug message")
            assert stream.getvalue() == "debug message\n"
        finally:
            logger.remove(sink_id)

    def test_host_logger_binds_host(self):
        stream = io.StringIO()
        sink_id = mirror_logging.logger.add(stream, format="{extra[host]} {message}")
        try:
            mirror_logging.get_host_logger(HostIdentity("prod", "web-1")).info("connected")
        finally:
            mirror_logging.logger.remove(sink_id)

        assert stream.getvalue() == "prod/web-1 connected\n"
