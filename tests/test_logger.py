import json
import logging

from graphpipe.services.logger.base import LogContext
from graphpipe.services.logger.formatters import JsonFormatter, SafeFormatter
from graphpipe.services.logger.std import LoggingConfig, StdLoggerService


def _record(**extra) -> logging.LogRecord:
    record = logging.makeLogRecord({"name": "graphpipe.store", "levelname": "INFO", "msg": "merged %d", "args": (3,)})
    for k, v in extra.items():
        setattr(record, k, v)
    return record


def test_log_context_drops_empty_fields():
    assert LogContext(epoch=1.5).as_extra() == {"epoch": 1.5}
    assert LogContext().as_extra() == {}


def test_safe_formatter_fills_missing_context():
    fmt = SafeFormatter("%(component)s epoch=%(epoch)s %(message)s")
    assert fmt.format(_record()) == "- epoch=- merged 3"
    assert fmt.format(_record(component="store", epoch=2.0)) == "store epoch=2.0 merged 3"


def test_json_formatter_keeps_extra_fields():
    payload = json.loads(JsonFormatter().format(_record(epoch=7.0, component="driver")))
    assert payload["message"] == "merged 3"
    assert payload["logger"] == "graphpipe.store"
    assert payload["epoch"] == 7.0
    assert payload["component"] == "driver"


def test_service_writes_context_to_rotating_file(tmp_path):
    cfg = LoggingConfig(root_ns="graphpipe_test", level="DEBUG", log_dir=str(tmp_path), use_json=True)
    service = StdLoggerService.build(cfg)
    try:
        service.for_store(epoch=12.5).info("merge applied")
        service.for_api().warning("api up")
    finally:
        for h in service.base().handlers:
            h.flush()
        service.shutdown()

    lines = [json.loads(line) for line in (tmp_path / "graphpipe.log").read_text(encoding="utf-8").splitlines()]
    assert lines[0]["logger"] == "graphpipe_test.store"
    assert lines[0]["epoch"] == 12.5
    assert lines[0]["component"] == "store"
    assert lines[1]["component"] == "api"
    assert lines[1]["level"] == "WARNING"


def test_queued_file_sink_flushes_on_shutdown(tmp_path):
    cfg = LoggingConfig(root_ns="graphpipe_queued", level="INFO", log_dir=str(tmp_path), enable_queue=True)
    service = StdLoggerService.build(cfg)
    service.for_driver(epoch=1.0).info("layout converged")
    service.shutdown()

    text = (tmp_path / "graphpipe.log").read_text(encoding="utf-8")
    assert "layout converged" in text
    assert "driver" in text
