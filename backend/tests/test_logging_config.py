"""
Tests for the console formatter and the turn/tool/model log helpers.
"""

import logging

from logging_config import NyxFormatter, log_tool_result, log_turn_start


def _record(name, level, message):
    return logging.LogRecord(name, level, __file__, 1, message, None, None)


class TestNyxFormatter:
    def test_plain_line_has_short_module_name(self):
        line = NyxFormatter(color=False).format(
            _record("routers.chat_orchestration.orchestrator", logging.INFO, ">>> turn session=u1")
        )
        assert line.endswith("INFO orchestrator: >>> turn session=u1")
        assert "\033[" not in line

    def test_color_marks_event_and_level(self):
        formatter = NyxFormatter(color=True)
        tool_line = formatter.format(_record("tool_dispatch", logging.INFO, ">>> tool create_task session=u1"))
        warn_line = formatter.format(_record("chat", logging.WARNING, "slow client"))

        assert "\033[93m>>> tool\033[0m create_task session=u1" in tool_line
        assert "\033[33mWARN\033[0m" in warn_line


class TestHelpers:
    def test_turn_start_previews_message(self, caplog):
        logger = logging.getLogger("test.turns")
        with caplog.at_level(logging.INFO, logger="test.turns"):
            log_turn_start(logger, "u1", "tienen\nfaros " + "x" * 200, image=True)

        message = caplog.records[0].getMessage()
        assert message.startswith('>>> turn session=u1 +image "tienen faros ')
        assert message.endswith('..."')

    def test_failed_tool_logs_warning_with_message(self, caplog):
        logger = logging.getLogger("test.tools")
        with caplog.at_level(logging.INFO, logger="test.tools"):
            log_tool_result(logger, "create_task", "u1", True, 0.01)
            log_tool_result(logger, "generate_quote", "u1", False, 0.2, "motor v8 is out of stock")

        ok, failed = caplog.records
        assert ok.levelno == logging.INFO
        assert ok.getMessage() == "<<< tool create_task session=u1 ok in 0.01s"
        assert failed.levelno == logging.WARNING
        assert failed.getMessage().endswith("failed in 0.20s: motor v8 is out of stock")
