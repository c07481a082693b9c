import logging

import pytest

from utils.activity import ActivityLog


def test_entries_are_newest_first():
    log = ActivityLog()
    log.info("first")
    log.warning("second")

    assert log.messages() == ["second", "first"]
    assert log.entries()[0].level == "WARNING"


def test_capacity_drops_oldest():
    log = ActivityLog(capacity=20)
    for i in range(25):
        log.info(f"line {i}")

    assert len(log) == 20
    assert log.messages()[0] == "line 24"
    assert log.messages()[-1] == "line 5"


def test_entries_are_mirrored_to_logger(caplog):
    log = ActivityLog(mirror=logging.getLogger("activity_test"))

    with caplog.at_level(logging.ERROR, logger="activity_test"):
        log.error("Restock failed")

    assert "Restock failed" in caplog.text


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        ActivityLog(capacity=0)
