"""
Unit tests for logging configuration
"""

import json
import logging

from inlier_match.utils.logging_setup import JsonFormatter, setup_logging


class TestLogging:
    def test_json_formatter(self):
        record = logging.LogRecord("inlier_match.test", logging.INFO, __file__, 1,
                                   "%d inliers", (12,), None)
        record.extra = {"trials": 3}
        payload = json.loads(JsonFormatter().format(record))
        assert payload["lvl"] == "INFO"
        assert payload["name"] == "inlier_match.test"
        assert payload["msg"] == "12 inliers"
        assert payload["extra"] == {"trials": 3}

    def test_setup_is_idempotent_unless_forced(self):
        root = logging.getLogger()
        saved_handlers, saved_level = list(root.handlers), root.level
        try:
            setup_logging("DEBUG", force=True)
            assert root.level == logging.DEBUG
            setup_logging("ERROR")
            assert root.level == logging.DEBUG
            setup_logging("bogus", fmt="json", force=True)
            assert root.level == logging.INFO
            assert isinstance(root.handlers[0].formatter, JsonFormatter)
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)
