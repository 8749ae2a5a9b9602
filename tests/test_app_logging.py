from __future__ import annotations

import json
import logging
from pathlib import Path

from turnspeak.app import config as app_config
from turnspeak.app.logging_setup import log_event, setup_app_logger
from turnspeak.contracts import Speaker
from turnspeak.session.arbiter import TurnState


def _read_lines(log_path: Path) -> list[dict]:
    return [json.loads(ln) for ln in log_path.read_text(encoding="utf-8").splitlines() if ln.strip()]


def _close(logger: logging.Logger) -> None:
    for h in logger.handlers:
        h.close()
    logger.handlers.clear()


def test_setup_app_logger_writes_json_line(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(app_config, "user_config_dir", lambda appname, appauthor=None: str(tmp_path))
    logger, log_dir, log_path = setup_app_logger("turnspeak.test")

    logger.info("hello", extra={"value": 7})
    for h in logger.handlers:
        h.flush()

    assert log_dir == tmp_path / "logs"
    assert log_path.name == "turnspeak.log"
    payload = _read_lines(log_path)[-1]
    assert payload["message"] == "hello"
    assert payload["value"] == 7
    assert payload["level"] == "INFO"
    _close(logger)


def test_log_event_serializes_enums_and_containers(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(app_config, "user_config_dir", lambda appname, appauthor=None: str(tmp_path))
    logger, _, log_path = setup_app_logger("turnspeak.test.events")

    log_event(
        logger,
        logging.INFO,
        "turn_changed",
        speaker=Speaker.SPEAKER1,
        new=TurnState.SPEAKER1_ACTIVE,
        langs=("en", "hi"),
        path=tmp_path,
    )
    log_event(None, logging.INFO, "ignored")
    for h in logger.handlers:
        h.flush()

    payload = _read_lines(log_path)[-1]
    assert payload["message"] == "turn_changed"
    assert payload["speaker"] == "speaker1"
    assert payload["new"] == "speaker1_active"
    assert payload["langs"] == ["en", "hi"]
    assert payload["path"] == str(tmp_path)
    _close(logger)


def test_exceptions_are_logged_with_traceback(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(app_config, "user_config_dir", lambda appname, appauthor=None: str(tmp_path))
    logger, _, log_path = setup_app_logger("turnspeak.test.exc")
    try:
        raise ValueError("bad reply")
    except ValueError:
        logger.exception("translate_failed", extra={"provider": "mymemory"})
    for h in logger.handlers:
        h.flush()

    payload = _read_lines(log_path)[-1]
    assert payload["level"] == "ERROR"
    assert payload["provider"] == "mymemory"
    assert "ValueError: bad reply" in payload["exc_info"]
    _close(logger)
