import json
import logging
import sys

from datamind.utils.logger import JSONFormatter, quiet_library_loggers

def _record(**extra):
    record = logging.LogRecord("datamind.chat", logging.INFO, "chat.py", 42, "Created chat session %s", ("s1",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record

def test_json_lines_carry_session_fields():
    line = json.loads(JSONFormatter().format(_record(session_id="s1", agent_type="query", user_id=None)))

    assert line["message"] == "Created chat session s1"
    assert line["level"] == "INFO"
    assert line["logger"] == "datamind.chat"
    assert line["session_id"] == "s1"
    assert line["agent_type"] == "query"
    assert "user_id" not in line
    assert line["location"].endswith(":42")

def test_exceptions_are_rendered():
    try:
        raise ValueError("boom")
    except ValueError:
        record = logging.LogRecord("datamind", logging.ERROR, "x.py", 1, "failed", (), sys.exc_info())

    line = json.loads(JSONFormatter().format(record))
    assert "ValueError: boom" in line["exception"]

def test_library_loggers_are_quietened():
    quiet_library_loggers()
    assert logging.getLogger("snowflake.connector").level == logging.WARNING
