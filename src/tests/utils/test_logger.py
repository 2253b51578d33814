import logging

import pytest

from receiptflow.utils.logger import LOG_FORMAT, setup_logger


@pytest.fixture
def root_logger():
    logger = logging.getLogger()
    handlers, level = list(logger.handlers), logger.level
    yield logger
    logger.handlers[:] = handlers
    logger.setLevel(level)


def _own_handlers(logger):
    return [h for h in logger.handlers if getattr(h, "_receiptflow", False)]


def test_level_from_environment(root_logger, monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "warning")
    setup_logger()
    assert root_logger.level == logging.WARNING


def test_explicit_level_and_format(root_logger):
    setup_logger("debug")

    [handler] = _own_handlers(root_logger)
    assert root_logger.level == logging.DEBUG
    assert handler.formatter._fmt == LOG_FORMAT


def test_repeated_setup_keeps_one_handler(root_logger):
    setup_logger()
    setup_logger()
    assert len(_own_handlers(root_logger)) == 1


def test_unknown_level_falls_back_to_info(root_logger):
    setup_logger("verbose")
    assert root_logger.level == logging.INFO
