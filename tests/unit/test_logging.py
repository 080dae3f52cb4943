"""Unit tests for logging configuration."""

import json

from lexicard.utils.logging import configure_logging, get_logger


def read_events(log_dir):
    log_file = log_dir / "lexicard.log"
    if not log_file.exists():
        return []
    return [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines() if line.strip()]


def test_writes_json_lines(tmp_path, monkeypatch):
    monkeypatch.setenv("LEXICARD_LOG_LEVEL", "DEBUG")
    configure_logging(tmp_path)

    get_logger("lexicard.tests").debug("sample_event", task_id="abc")

    event = read_events(tmp_path)[-1]
    assert event["event"] == "sample_event"
    assert event["task_id"] == "abc"
    assert event["level"] == "debug"
    assert "timestamp" in event


def test_invalid_level_falls_back_to_info(tmp_path, monkeypatch):
    monkeypatch.setenv("LEXICARD_LOG_LEVEL", "LOUD")
    configure_logging(tmp_path)

    logger = get_logger("lexicard.tests")
    logger.debug("hidden_event")
    logger.info("visible_event")

    events = [e["event"] for e in read_events(tmp_path)]
    assert "hidden_event" not in events
    assert "visible_event" in events


def test_non_ascii_context_kept_readable(tmp_path, monkeypatch):
    monkeypatch.delenv("LEXICARD_LOG_LEVEL", raising=False)
    configure_logging(tmp_path)

    get_logger("lexicard.tests").info("word_event", source="שלום")

    assert "שלום" in (tmp_path / "lexicard.log").read_text(encoding="utf-8")
