from __future__ import annotations

import json
import logging

import pytest
import structlog
from mediapool_sync.core.logging import bind, clear_bindings, configure_logging


@pytest.fixture
def fresh_logging():
    root = logging.getLogger()
    saved = (list(root.handlers), root.level)
    structlog.reset_defaults()
    yield root
    structlog.reset_defaults()
    clear_bindings()
    root.handlers[:] = saved[0]
    root.setLevel(saved[1])


def test_json_lines_carry_bound_context(fresh_logging, capsys) -> None:
    configure_logging(level="info", fmt="json")
    bind(run_id="r1")

    structlog.get_logger("mediapool_sync.test").info("sync.done", asset_id="3467")

    line = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert line["event"] == "sync.done"
    assert line["run_id"] == "r1"
    assert line["asset_id"] == "3467"
    assert line["level"] == "info"
    assert logging.getLogger("httpx").level == logging.WARNING


def test_first_configuration_wins(fresh_logging) -> None:
    configure_logging(level="warning", fmt="json")
    configure_logging(level="debug", fmt="console")

    assert fresh_logging.level == logging.WARNING
    assert [type(h) for h in fresh_logging.handlers] == [logging.StreamHandler]


def test_unknown_format_is_rejected(fresh_logging) -> None:
    with pytest.raises(ValueError):
        configure_logging(fmt="xml")
    assert not structlog.is_configured()
