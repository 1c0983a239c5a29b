"""Tests for the two-stage entry validator."""

from datetime import date, time
from decimal import Decimal

import pytest

from cashbook.config.settings import AppSettings
from cashbook.models.entry import Attachment, EntryType
from cashbook.validation import EntryValidationError, EntryValidator


TODAY = date(2024, 1, 10)


@pytest.fixture
def validator(app_settings):
    return EntryValidator(app_settings)


class TestSchemaValidation:
    """Stage 1: blocking errors."""

    def test_valid_form(self, validator):
        result = validator.validate("1,500.50", "cash_in", date(2024, 1, 5), time(14, 30), today=TODAY)
        assert result.schema_valid
        assert result.is_valid
        assert result.issues == []

    @pytest.mark.parametrize("amount", [None, "", "   "])
    def test_missing_amount(self, validator, amount):
        result = validator.validate(amount, "cash_in", TODAY, time(9, 0), today=TODAY)
        assert not result.schema_valid
        assert result.issues[0].field == "amount"
        assert result.issues[0].issue_type == "missing"

    @pytest.mark.parametrize("amount", ["abc", "-5", "1e", "NaN"])
    def test_invalid_amount(self, validator, amount):
        result = validator.validate(amount, "cash_out", TODAY, time(9, 0), today=TODAY)
        assert result.has_errors
        assert result.issues[0].issue_type == "invalid_format"
        assert result.issues[0].suggested_fix

    def test_invalid_type(self, validator):
        result = validator.validate("10", "refund", TODAY, time(9, 0), today=TODAY)
        assert [i.field for i in result.issues] == ["type"]

    def test_missing_date_and_time(self, validator):
        result = validator.validate("10", "cash_in", None, None, today=TODAY)
        assert {i.field for i in result.issues} == {"entry_date", "entry_time"}
        assert result.error_count == 2

    def test_remark_too_long(self, validator):
        result = validator.validate("10", "cash_in", TODAY, time(9, 0), remark="x" * 1001, today=TODAY)
        assert result.issues[0].issue_type == "too_long"

    def test_semantic_stage_skipped_on_errors(self, validator):
        result = validator.validate("abc", "cash_in", date(2030, 1, 1), time(9, 0), today=TODAY)
        assert not result.semantic_valid
        assert result.warnings == []


class TestSemanticValidation:
    """Stage 2: warnings only."""

    def test_future_date_warns(self, validator):
        result = validator.validate("10", "cash_in", date(2024, 1, 20), time(9, 0), today=TODAY)
        assert result.is_valid
        assert not result.has_errors
        assert result.issues[0].issue_type == "future_date"
        assert len(result.warnings) == 1

    def test_tomorrow_is_tolerated(self, validator):
        result = validator.validate("10", "cash_in", date(2024, 1, 11), time(9, 0), today=TODAY)
        assert result.warnings == []

    def test_large_amount_warns(self):
        validator = EntryValidator(AppSettings(max_entry_amount=1000))
        result = validator.validate("1000.01", "cash_out", TODAY, time(9, 0), today=TODAY)
        assert result.is_valid
        assert result.issues[0].issue_type == "suspicious_value"

    def test_zero_amount_warns(self, validator):
        result = validator.validate("0", "cash_out", TODAY, time(9, 0), today=TODAY)
        assert result.warnings == ["Amount is zero"]


class TestBuildDraft:

    def test_builds_draft(self, validator):
        links = [Attachment(url="https://example.com/r.png")]
        draft, result = validator.build_draft(
            "1,500.50", "cash_in", date(2024, 1, 5), time(14, 30),
            remark="Salary", payment_mode="UPI", category="Salary",
            attachments=links, today=TODAY,
        )
        assert result.is_valid
        assert draft.amount == Decimal("1500.50")
        assert draft.type == EntryType.CASH_IN
        assert draft.payment_mode == "UPI"
        assert draft.attachments == links

    def test_numeric_amounts_are_accepted(self, validator):
        draft, _ = validator.build_draft(Decimal("12.5"), EntryType.CASH_OUT, TODAY, time(9, 0), today=TODAY)
        assert draft.amount == Decimal("12.5")

    def test_raises_with_result(self, validator):
        with pytest.raises(EntryValidationError) as exc:
            validator.build_draft("", "cash_in", TODAY, time(9, 0), today=TODAY)
        assert exc.value.result.error_messages == ["Amount is required"]
        assert str(exc.value) == "Amount is required"


class TestSummary:

    def test_all_clear(self, validator):
        result = validator.validate("10", "cash_in", TODAY, time(9, 0), today=TODAY)
        assert "All checks passed" in validator.get_user_friendly_summary(result)

    def test_lists_errors_and_fixes(self, validator):
        result = validator.validate("abc", "cash_in", TODAY, time(9, 0), today=TODAY)
        summary = validator.get_user_friendly_summary(result)
        assert "Please fix the following" in summary
        assert "'abc' is not a valid amount" in summary
        assert "1500.50" in summary
