"""Tests for the JSON log formatter."""

import json
import logging
from decimal import Decimal

from budgetly.core.logging import JSONFormatter


def _record(msg="Generated recurring transaction", **extra) -> logging.LogRecord:
    record = logging.LogRecord("budgetly.services.recurrence", logging.INFO, __file__, 1, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_basic_fields(self):
        payload = json.loads(JSONFormatter().format(_record()))
        assert payload["level"] == "INFO"
        assert payload["logger"] == "budgetly.services.recurrence"
        assert payload["message"] == "Generated recurring transaction"
        assert "timestamp" in payload

    def test_extra_fields_included(self):
        payload = json.loads(JSONFormatter().format(_record(schedule_id="abc", occurrence_date="2024-02-29")))
        assert payload["schedule_id"] == "abc"
        assert payload["occurrence_date"] == "2024-02-29"

    def test_non_serialisable_extra_stringified(self):
        payload = json.loads(JSONFormatter().format(_record(amount=Decimal("12.50"))))
        assert payload["amount"] == "12.50"
