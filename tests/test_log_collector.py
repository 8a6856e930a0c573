"""
Tests for LogCollector buffering and problem grouping
"""

import logging

import pytest

from gaugewatch.log_collector import LogCollector, get_log_collector, setup_log_collector


@pytest.fixture
def collector():
    handler = LogCollector(max_entries=5)
    logger = logging.getLogger("test.collector")
    logger.setLevel(logging.DEBUG)
    logger.addHandler(handler)
    yield handler
    logger.removeHandler(handler)


def log_as(name: str, level: int, message: str, handler: LogCollector):
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    logger.addHandler(handler)
    try:
        logger.log(level, message)
    finally:
        logger.removeHandler(handler)


class TestLogCollector:

    def test_ring_buffer(self, collector):
        logger = logging.getLogger("test.collector")
        for i in range(8):
            logger.info(f"message {i}")

        recent = collector.get_recent_logs(10)
        assert [e.message for e in recent] == [f"message {i}" for i in range(3, 8)]

    def test_level_filter(self, collector):
        logger = logging.getLogger("test.collector")
        logger.debug("noise")
        logger.warning("careful")
        logger.error("broken")

        assert [e.message for e in collector.get_recent_logs(level="WARNING")] == ["careful", "broken"]
        assert [e.message for e in collector.get_warnings()] == ["careful"]
        assert [e.message for e in collector.get_errors()] == ["broken"]

    def test_error_callback(self):
        seen = []
        handler = LogCollector(on_error=seen.append)

        log_as("feed.Boiler", logging.ERROR, "Error accessing camera cam-1", handler)

        assert len(seen) == 1
        assert seen[0].source == "feed.Boiler"

    def test_patterns_and_suggestions(self):
        handler = LogCollector()

        log_as("enumerator", logging.ERROR, "Error accessing media devices: permission_denied", handler)
        log_as("feed.Boiler", logging.ERROR, "Error accessing camera cam-1: not_readable", handler)
        log_as("recognition", logging.ERROR, "Recognition error: HTTP 500", handler)
        log_as("web", logging.ERROR, "something else", handler)

        patterns = handler.analyze_patterns()
        assert len(patterns["permission_issues"]) == 1
        assert len(patterns["bandwidth_issues"]) == 1
        assert len(patterns["recognition_issues"]) == 1
        assert len(patterns["other_issues"]) == 1
        assert len(handler.get_suggestions()) == 3

    def test_summary_is_serializable(self, collector):
        logging.getLogger("test.collector").error("broken")

        summary = collector.summary()

        assert summary["errors"][0]["message"] == "broken"
        assert isinstance(summary["errors"][0]["timestamp"], str)
        assert summary["suggestions"] == []

    def test_setup_replaces_root_handler(self):
        root = logging.getLogger()
        first = setup_log_collector()
        second = setup_log_collector()

        try:
            assert first not in root.handlers
            assert second in root.handlers
            assert get_log_collector() is second
        finally:
            root.removeHandler(second)
