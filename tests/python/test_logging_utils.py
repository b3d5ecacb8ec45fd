from __future__ import annotations

import logging

import pytest

from slimemold.logging_utils import LOG_NAMESPACE, _coerce_level, configure_logging
from slimemold.sim.core.config import LoggingConfig


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.mark.parametrize(
    "value,expected",
    [("debug", logging.DEBUG), ("WARNING", logging.WARNING), (15, 15), ("nonsense", logging.INFO), (None, logging.INFO)],
)
def test_coerce_level(value, expected):
    assert _coerce_level(value) == expected


def test_file_logging_writes_under_log_dir(tmp_path):
    settings = LoggingConfig(enabled=True, level="DEBUG", file_level="DEBUG", to_console=False, log_dir="out")

    log_path = configure_logging(settings, project_root=tmp_path)
    logging.getLogger(f"{LOG_NAMESPACE}.test").debug("hello lattice")
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert log_path is not None
    assert log_path.parent == tmp_path / "out"
    assert "hello lattice" in log_path.read_text()


def test_disabled_logging_defaults_to_warning_console():
    assert configure_logging({}) is None
    assert logging.getLogger(LOG_NAMESPACE).level == logging.WARNING
