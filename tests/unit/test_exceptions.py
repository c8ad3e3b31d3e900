"""Tests for the domain error taxonomy."""

from datetime import date
from uuid import uuid4

import pytest
from pydantic import ValidationError as PydanticValidationError

from budgetly.core.exceptions import (
    BudgetlyError,
    ConcurrencyConflictError,
    GenerationFailure,
    NotFoundError,
    ValidationError,
)
from budgetly.schemas.goal import ContributionCreate


class TestErrorTaxonomy:
    def test_all_errors_share_the_base(self):
        for exc in (
            ValidationError({"amount": "bad"}),
            NotFoundError("FinancialGoal", uuid4()),
            ConcurrencyConflictError("FinancialGoal", uuid4(), 3),
            GenerationFailure(uuid4(), date(2024, 1, 1), "boom"),
        ):
            assert isinstance(exc, BudgetlyError)
            assert exc.to_dict()["code"] == exc.code

    def test_validation_error_fields(self):
        exc = ValidationError({"amount": "must not be zero"})
        assert exc.field_errors == {"amount": "must not be zero"}
        assert exc.details == {"fields": {"amount": "must not be zero"}}
        assert "amount: must not be zero" in exc.message

    def test_from_pydantic_strips_prefix(self):
        with pytest.raises(PydanticValidationError) as exc_info:
            ContributionCreate(amount=0)

        exc = ValidationError.from_pydantic(exc_info.value)
        assert exc.field_errors == {"amount": "Contribution amount must not be zero"}

    def test_not_found_details(self):
        goal_id = uuid4()
        exc = NotFoundError("FinancialGoal", goal_id)
        assert exc.entity_id == goal_id
        assert exc.details == {"entity": "FinancialGoal", "entity_id": str(goal_id)}

    def test_generation_failure_details(self):
        schedule_id = uuid4()
        exc = GenerationFailure(schedule_id, date(2024, 2, 1), "IntegrityError")
        assert exc.details["occurrence_date"] == "2024-02-01"
        assert exc.details["schedule_id"] == str(schedule_id)
        assert exc.generated == []
