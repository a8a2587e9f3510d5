from __future__ import annotations

import json
import logging

from shared.logger import FlddLogger


def _close(log: FlddLogger) -> None:
    for handler in list(log.underlying.handlers):
        handler.close()
        log.underlying.removeHandler(handler)


def test_underlying_logger():
    log = FlddLogger("unit", console_output=False)

    assert log.tool_name == "unit"
    assert log.underlying.name == "fldd.unit"
    assert log.underlying.propagate is False
    assert isinstance(log.underlying.handlers[0], logging.NullHandler)


def test_reinstantiation_replaces_handlers(tmp_path):
    FlddLogger("dup", log_file=tmp_path / "a.log", console_output=False)
    log = FlddLogger("dup", console_output=False)

    assert len(log.underlying.handlers) == 1
    _close(log)


def test_json_file_records_binary_scope(tmp_path):
    path = tmp_path / "logs" / "fldd.jsonl"
    log = FlddLogger(
        "unit", log_level="DEBUG", log_file=path, json_logs=True, console_output=False
    )

    with log.binary("/bin/outer"):
        with log.binary("/lib/inner.so"):
            log.warning("cannot find %s, skipping...", "libx.so", depth=2)
        log.info("back")
    log.debug("done")
    _close(log)

    records = [json.loads(line) for line in path.read_text().splitlines()]
    assert [r["message"] for r in records] == [
        "cannot find libx.so, skipping...",
        "back",
        "done",
    ]
    assert records[0]["binary"] == "/lib/inner.so"
    assert records[0]["extra"] == {"depth": 2}
    assert records[0]["tool_name"] == "unit"
    assert records[1]["binary"] == "/bin/outer"
    assert "binary" not in records[2]


def test_level_filters_file_output(tmp_path):
    path = tmp_path / "fldd.log"
    log = FlddLogger("unit", log_level="ERROR", log_file=path, console_output=False)

    log.warning("hidden")
    _close(log)

    assert path.read_text() == ""


def test_timed_logs_completion(tmp_path):
    path = tmp_path / "fldd.log"
    log = FlddLogger("unit", log_level="INFO", log_file=path, console_output=False)

    with log.timed("scan") as timer:
        pass
    _close(log)

    assert timer.elapsed >= 0
    assert "Completed: scan" in path.read_text()
