from __future__ import annotations

import logging

import pytest

from intrinsic.utils import logging as log_utils


@pytest.fixture()
def fresh_logging(monkeypatch):
    monkeypatch.setattr(log_utils, "_LOGGER_CONFIGURED", False)
    sql_logger = logging.getLogger("sqlalchemy")
    previous = sql_logger.level
    yield sql_logger
    sql_logger.setLevel(previous)


def test_sql_logging_quiet_without_echo(fresh_logging):
    log_utils.configure_logging(debug=True)
    assert fresh_logging.level == logging.WARNING
    assert not logging.getLogger("sqlalchemy.engine").isEnabledFor(logging.INFO)


def test_sql_logging_left_alone_with_echo(fresh_logging):
    fresh_logging.setLevel(logging.NOTSET)
    log_utils.configure_logging(sql_echo=True)
    assert fresh_logging.level == logging.NOTSET


def test_configure_logging_runs_once(fresh_logging):
    log_utils.configure_logging()
    fresh_logging.setLevel(logging.NOTSET)
    log_utils.configure_logging()
    assert fresh_logging.level == logging.NOTSET
