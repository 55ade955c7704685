import logging
from app.core.logging_config import RequestIdFilter, build_logging_config
from app.core.request_context import parse_flag, request_id_var

def make_record():
    return logging.LogRecord("test", logging.INFO, __file__, 1, "message", None, None)

def test_request_id_filter_outside_request():
    record = make_record()
    assert RequestIdFilter().filter(record) is True
    assert record.request_id == "-"

def test_request_id_filter_inside_request():
    token = request_id_var.set("abc123")
    try:
        record = make_record()
        RequestIdFilter().filter(record)
        assert record.request_id == "abc123"
    finally:
        request_id_var.reset(token)

def test_audit_trail_has_its_own_file(tmp_path):
    config = build_logging_config(str(tmp_path), "DEBUG")

    assert config["loggers"]["audit"]["propagate"] is False
    assert "audit_file" in config["loggers"]["audit"]["handlers"]
    assert config["handlers"]["audit_file"]["backupCount"] == 30
    assert config["handlers"]["audit_file"]["filename"].startswith(str(tmp_path / "audit"))
    assert config["handlers"]["console"]["level"] == "DEBUG"

def test_parse_flag():
    assert parse_flag("true")
    assert parse_flag(" Yes ")
    assert parse_flag("1")
    assert not parse_flag(None)
    assert not parse_flag("false")
