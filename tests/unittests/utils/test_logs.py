import json
import logging

import pytest
import structlog

from mint_runner.utils.logs import NOISY_LOGGERS, configure_logging


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


@pytest.mark.usefixtures("restore_logging")
class TestConfigureLogging:
    def test_log_level_follows_debug_flag(self):
        configure_logging(debug=False)
        assert logging.getLogger().level == logging.INFO
        configure_logging(debug=True)
        assert logging.getLogger().level == logging.DEBUG

    def test_noisy_loggers_are_silenced(self):
        configure_logging(debug=True)
        for name in NOISY_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    def test_log_file_receives_json_lines(self, tmp_path):
        log_file = tmp_path.joinpath("logs", "run.log")
        configure_logging(debug=True, log_file=log_file)

        structlog.get_logger("mint_runner.tests").info("Transaction sent", nonce=7)
        for handler in logging.getLogger().handlers:
            handler.flush()

        entries = [json.loads(line) for line in log_file.read_text().splitlines()]
        assert entries[-1]["event"] == "Transaction sent"
        assert entries[-1]["nonce"] == 7
        assert entries[-1]["level"] == "info"
