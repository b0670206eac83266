"""Tests for structured logging setup."""
import orjson
import pytest
import structlog

from ingest.logging import get_logger, setup_logging


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


def test_json_logs_carry_service_and_context(capsys):
    setup_logging(json_output=True, service_name="telemetry-ingest")
    structlog.contextvars.bind_contextvars(correlation_id="corr-1")

    get_logger().info("event.accepted", id="01J00000000000000000000000")

    entry = orjson.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert entry["event"] == "event.accepted"
    assert entry["service"] == "telemetry-ingest"
    assert entry["correlation_id"] == "corr-1"
    assert entry["level"] == "info"
    assert "ts" in entry


def test_level_filtering(capsys):
    setup_logging(json_output=True, level="WARNING")

    get_logger().info("quiet")
    get_logger().warning("loud")

    out = capsys.readouterr().out
    assert "quiet" not in out
    assert "loud" in out
