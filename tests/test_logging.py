"""Structured logging, error reporting and seeding helpers."""

import json
import logging

import numpy as np

from propel.core import DivergedError, InvalidStateError, JsonFormatter, PropelError, configure_logging, log_with_context
from propel.utils import create_rng, seed_everything


def test_json_formatter_merges_extra_context():
    record = logging.LogRecord("propel.test", logging.INFO, __file__, 10, "iteration_complete", None, None)
    record.extra_context = {"iteration": 3, "error": 0.25}
    payload = json.loads(JsonFormatter().format(record))
    assert payload["message"] == "iteration_complete"
    assert payload["level"] == "INFO"
    assert payload["iteration"] == 3
    assert payload["error"] == 0.25


def test_configure_logging_writes_json_file(tmp_path):
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        configure_logging("debug", tmp_path / "logs", json_logs=True)
        log_with_context(logging.getLogger("propel.test"), "warning", "partition_failed", extra={"partition": 2})
        for handler in root.handlers:
            handler.flush()
        lines = (tmp_path / "logs" / "propel.log").read_text().splitlines()
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
    payload = json.loads(lines[-1])
    assert payload["message"] == "partition_failed"
    assert payload["partition"] == 2


def test_errors_report_code_and_metadata():
    error = DivergedError("Aggregate error is not finite", metadata={"error": float("inf")})
    assert isinstance(error, PropelError)
    assert isinstance(error, RuntimeError)
    assert str(error) == "Aggregate error is not finite"
    assert error.to_dict()["code"] == "diverged"
    assert InvalidStateError("busy").metadata == {}


def test_seed_everything_returns_seeded_generator():
    first = seed_everything(123).uniform(size=3)
    np.testing.assert_array_equal(first, create_rng(123).uniform(size=3))
    assert np.random.rand() == np.random.RandomState(123).rand()
