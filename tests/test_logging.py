# tests/test_logging.py
import logging

from concisely.logging_setup import EventFormatter, logging_config


def _record(**extra):
    record = logging.makeLogRecord({"name": "concisely.test", "levelno": logging.INFO, "levelname": "INFO", "msg": "EMAIL_SENT"})
    record.__dict__.update(extra)
    return record


def test_extra_fields_are_appended():
    line = EventFormatter("%(levelname)s | %(message)s").format(_record(mode="console", recipients=2))
    assert line == "INFO | EMAIL_SENT | mode=console recipients=2"


def test_plain_record_is_untouched():
    assert EventFormatter("%(message)s").format(_record()) == "EMAIL_SENT"


def test_config_levels(tmp_path):
    cfg = logging_config(level="DEBUG", log_file=tmp_path / "x.log")
    assert cfg["loggers"]["concisely"]["level"] == "DEBUG"
    assert cfg["loggers"]["httpx"]["level"] == "WARNING"
    assert cfg["loggers"]["uvicorn.access"]["handlers"] == ["server_console", "file"]
    assert cfg["handlers"]["file"]["filename"] == str(tmp_path / "x.log")
