from __future__ import annotations

import logging

from utils.logger import setup_logger


def test_setup_logger_does_not_stack_handlers() -> None:
    first = setup_logger("postgen.test_stack", level=logging.DEBUG, use_rich=False)
    second = setup_logger("postgen.test_stack", level=logging.DEBUG, use_rich=False)

    assert first is second
    assert len(second.handlers) == 1
    assert second.level == logging.DEBUG

