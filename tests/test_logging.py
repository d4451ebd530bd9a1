import json
import logging

import pytest

from pour.core.logging import LOG_FILE_NAME, configure_logging, get_logger


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    configure_logging(force=True)


def test_events_are_written_as_json_lines(tmp_path, monkeypatch):
    monkeypatch.setenv("POUR_HOME", str(tmp_path))
    monkeypatch.delenv("POUR_LOG_LEVEL", raising=False)
    configure_logging(force=True)

    get_logger("pour.tests").info("install_complete", package="wget", error=None)
    for handler in logging.root.handlers:
        handler.flush()

    lines = (tmp_path / "logs" / LOG_FILE_NAME).read_text().splitlines()
    record = json.loads(lines[-1])
    assert record["event"] == "install_complete"
    assert record["package"] == "wget"
    assert record["level"] == "info"
    assert "error" not in record


def test_level_comes_from_the_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("POUR_HOME", str(tmp_path))
    monkeypatch.setenv("POUR_LOG_LEVEL", "warning")
    configure_logging(force=True)

    assert logging.root.level == logging.WARNING
