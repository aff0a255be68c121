# tests/utils/test_configure_logging.py
import logging

import pytest

from auditor.utils.configure_logging import LogWithTqdm, configure_logger


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    touched = ["auditor.engine", "aiohttp"]
    levels = {name: logging.getLogger(name).level for name in touched}
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    for name, lvl in levels.items():
        logging.getLogger(name).setLevel(lvl)


def test_configure_logger_installs_tqdm_handler(restore_logging):
    configure_logger("warning", module_specific_levels={"auditor.engine": "DEBUG"},
                     silenced_loggers={"aiohttp": "ERROR"})

    root = logging.getLogger()
    assert root.level == logging.WARNING
    assert len(root.handlers) == 1
    assert isinstance(root.handlers[0], LogWithTqdm)
    assert logging.getLogger("auditor.engine").level == logging.DEBUG
    assert logging.getLogger("aiohttp").level == logging.ERROR


def test_unknown_level_name_falls_back_to_info(restore_logging):
    configure_logger("LOUD")
    assert logging.getLogger().level == logging.INFO


def test_handler_writes_through_tqdm(capsys):
    handler = LogWithTqdm()
    handler.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
    record = logging.LogRecord("auditor.test", logging.ERROR, __file__, 1, "rule %s failed", ("image-alt",), None)
    handler.emit(record)
    assert "ERROR rule image-alt failed" in capsys.readouterr().err
