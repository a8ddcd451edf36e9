from __future__ import annotations

import logging

from move_decompiler.logging_config import close_debug_logger, configure_debug_file_logger


def test_trace_logger_replaces_previous_file(tmp_path):
    path = tmp_path / "trace" / "run.log"
    logger = configure_debug_file_logger("move_decompiler.test_trace", path)
    logger.debug("first run")
    logger = configure_debug_file_logger("move_decompiler.test_trace", path)
    logger.debug("second run")
    close_debug_logger(logger)

    assert path.read_text(encoding="utf-8") == "second run\n"
    assert not logger.handlers
    assert logger.propagate is False


def test_close_leaves_foreign_handlers(tmp_path):
    logger = configure_debug_file_logger("move_decompiler.test_foreign", tmp_path / "t.log")
    other = logging.NullHandler()
    logger.addHandler(other)
    close_debug_logger(logger)
    assert logger.handlers == [other]
    logger.removeHandler(other)
