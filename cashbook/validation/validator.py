"""
Two-Stage Entry Validation

Validation of the entry form happens in two stages:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence (amount, type, date, time)
- Amount format ("1,500.50" is fine, "abc" and "-5" are not)
- Remark length

STAGE 2 - SEMANTIC VALIDATION:
- Entry dated in the future
- Implausibly large amount
- Zero amount

Stage 2 only runs when stage 1 passes, and only produces warnings: a
cashbook may legitimately hold a post-dated cheque or a large transfer.

Validation NEVER silently fixes issues. It reports them and the form
shows them to the user.
"""

from datetime import date, time, timedelta
from decimal import Decimal
from typing import Optional, Sequence, Union

from cashbook.config import get_settings
from cashbook.config.settings import AppSettings
from cashbook.interchange.formats import format_amount, parse_amount
from cashbook.models.entry import Attachment, EntryDraft, EntryType
from cashbook.models.validation import ValidationIssue, ValidationResult


REMARK_MAX_LENGTH = 1000

AmountInput = Union[str, int, float, Decimal, None]


class EntryValidationError(ValueError):
    """Raised when an entry form cannot become an entry."""

    def __init__(self, result: ValidationResult):
        self.result = result
        messages = result.error_messages
        super().__init__("; ".join(messages) if messages else "Entry is invalid")


class EntryValidator:
    """
    Validates entry form input through a two-stage pipeline.

    Stage 1: Schema validation (blocking errors)
    Stage 2: Semantic validation (warnings)
    """

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    def _parse_amount(self, amount: AmountInput) -> Optional[Decimal]:
        if amount is None:
            return None
        return parse_amount(str(amount))

    def _validate_schema(
        self,
        amount: AmountInput,
        entry_type: Optional[str],
        entry_date: Optional[date],
        entry_time: Optional[time],
        remark: Optional[str],
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if amount is None or (isinstance(amount, str) and not amount.strip()):
            issues.append(ValidationIssue(
                field="amount",
                issue_type="missing",
                message="Amount is required",
                severity="error",
            ))
        else:
            try:
                self._parse_amount(amount)
            except ValueError:
                issues.append(ValidationIssue(
                    field="amount",
                    issue_type="invalid_format",
                    message=f"'{amount}' is not a valid amount",
                    severity="error",
                    suggested_fix="Enter a positive number, e.g. 1500.50",
                ))

        try:
            EntryType(entry_type)
        except ValueError:
            issues.append(ValidationIssue(
                field="type",
                issue_type="invalid_value",
                message="Choose Cash In or Cash Out",
                severity="error",
            ))

        if entry_date is None:
            issues.append(ValidationIssue(
                field="entry_date",
                issue_type="missing",
                message="Date is required",
                severity="error",
            ))

        if entry_time is None:
            issues.append(ValidationIssue(
                field="entry_time",
                issue_type="missing",
                message="Time is required",
                severity="error",
            ))

        if remark and len(remark.strip()) > REMARK_MAX_LENGTH:
            issues.append(ValidationIssue(
                field="remark",
                issue_type="too_long",
                message=f"Remark is longer than {REMARK_MAX_LENGTH} characters",
                severity="error",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _validate_semantic(
        self,
        amount: Decimal,
        entry_date: date,
        today: date,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Semantic validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        tolerance = timedelta(days=self._settings.future_date_tolerance_days)
        if entry_date > today + tolerance:
            issues.append(ValidationIssue(
                field="entry_date",
                issue_type="future_date",
                message=f"Entry date {entry_date.isoformat()} is in the future",
                severity="warning",
                suggested_fix="Check the date unless this is a post-dated entry",
            ))

        max_amount = Decimal(str(self._settings.max_entry_amount))
        if amount > max_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount {format_amount(amount)} is unusually large",
                severity="warning",
                suggested_fix="Check for extra digits",
            ))
        elif amount == 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message="Amount is zero",
                severity="warning",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def validate(
        self,
        amount: AmountInput,
        entry_type: Optional[str],
        entry_date: Optional[date],
        entry_time: Optional[time],
        remark: Optional[str] = "",
        today: Optional[date] = None,
    ) -> ValidationResult:
        """
        Run full two-stage validation.

        Args:
            amount: Amount as typed (string) or already numeric
            entry_type: "cash_in" or "cash_out"
            entry_date: Entry date
            entry_time: Entry time
            remark: Free text
            today: Reference date for the future-date check

        Returns:
            ValidationResult with all issues found
        """
        all_issues = []

        schema_valid, schema_issues = self._validate_schema(
            amount, entry_type, entry_date, entry_time, remark,
        )
        all_issues.extend(schema_issues)

        semantic_valid = False
        if schema_valid:
            semantic_valid, semantic_issues = self._validate_semantic(
                self._parse_amount(amount),
                entry_date,
                today or date.today(),
            )
            all_issues.extend(semantic_issues)

        warnings = [issue.message for issue in all_issues if issue.severity == "warning"]

        return ValidationResult(
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=all_issues,
            warnings=warnings,
        )

    def build_draft(
        self,
        amount: AmountInput,
        entry_type: Optional[str],
        entry_date: Optional[date],
        entry_time: Optional[time],
        remark: Optional[str] = "",
        payment_mode: Optional[str] = None,
        category: Optional[str] = None,
        attachments: Sequence[Attachment] = (),
        today: Optional[date] = None,
    ) -> tuple[EntryDraft, ValidationResult]:
        """
        Validate the form and build the draft it describes.

        Raises:
            EntryValidationError: if there are blocking errors

        Returns:
            (draft, result) - result carries any warnings to show
        """
        result = self.validate(amount, entry_type, entry_date, entry_time, remark, today)
        if result.has_errors:
            raise EntryValidationError(result)

        draft = EntryDraft(
            amount=self._parse_amount(amount),
            type=EntryType(entry_type),
            remark=remark,
            payment_mode=payment_mode,
            category=category,
            entry_date=entry_date,
            entry_time=entry_time,
            attachments=list(attachments),
        )
        return draft, result

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """Summary of a validation result for display in the form."""
        if result.is_valid and not result.warnings:
            return "✅ All checks passed."

        lines = []

        if result.has_errors:
            lines.append("❌ Please fix the following:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
