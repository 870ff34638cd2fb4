"""
Two-Stage Validation of Transaction Form Input

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- The net amount parses as a positive, finite number
- The selected category exists

STAGE 2 - BUSINESS RULES:
- The category accepts the transaction type
- VAT input is consistent with the exemption flag and the category
- Recurring transactions name a frequency

Stage 2 only runs when stage 1 passes; it needs the resolved category.

IMPORTANT: The validator never corrects input. A manual VAT that
will be saved as 0 is reported, not rewritten.
"""

from datetime import date
from typing import Optional

from finance_tracker.calculation.amounts import (
    parse_amount,
    parse_manual_vat,
    to_decimal,
)
from finance_tracker.errors import InvalidAmount
from finance_tracker.ledger.registry import CategoryRegistry
from finance_tracker.models.finance import (
    Category,
    TransactionDraft,
    UserSettings,
    ValidationIssue,
    ValidationResult,
    VatMode,
)


class TransactionValidator:
    """
    Validates transaction drafts against the user's categories.

    validate() collects every issue for display; ensure_valid() raises
    the first blocking one as a typed error.
    """

    def __init__(self, registry: CategoryRegistry):
        self._registry = registry

    def _validate_schema(
        self,
        draft: TransactionDraft,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        try:
            parse_amount(draft.amount)
        except InvalidAmount as e:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message=e.user_message,
                severity="error",
                suggested_fix="Enter the net amount, e.g. 100 or 99,95",
            ))

        if draft.category_id not in self._registry:
            issues.append(ValidationIssue(
                field="category_id",
                issue_type="missing",
                message=f"Category not found: {draft.category_id}",
                severity="error",
                suggested_fix="Pick one of your categories",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _validate_rules(
        self,
        draft: TransactionDraft,
        settings: UserSettings,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Business rules.

        Returns: (is_valid, list_of_issues)
        """
        issues = []
        category = self._registry.require(draft.category_id)

        if not category.accepts(draft.type):
            issues.append(ValidationIssue(
                field="category_id",
                issue_type="type_mismatch",
                message=(
                    f"Category '{category.name}' is for {category.type.value} "
                    f"transactions, not {draft.type.value}"
                ),
                severity="error",
                suggested_fix="Pick a category for this transaction type",
            ))

        issues.extend(self._vat_issues(draft, settings, category))

        if draft.recurring and draft.recurring_frequency is None:
            issues.append(ValidationIssue(
                field="recurring_frequency",
                issue_type="missing",
                message="Recurring transaction has no frequency",
                severity="warning",
                suggested_fix="Choose daily, weekly, monthly or yearly",
            ))

        if draft.transaction_date > date.today():
            issues.append(ValidationIssue(
                field="transaction_date",
                issue_type="future_date",
                message=f"Transaction date ({draft.transaction_date}) is in the future",
                severity="info",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _vat_issues(
        self,
        draft: TransactionDraft,
        settings: UserSettings,
        category: Category,
    ) -> list[ValidationIssue]:
        if settings.vat_mode != VatMode.MANUAL:
            return []

        issues = []
        raw = draft.manual_vat
        vat = parse_manual_vat(raw)
        typed = to_decimal(raw)

        if raw not in (None, "") and (typed is None or typed < 0):
            issues.append(ValidationIssue(
                field="manual_vat",
                issue_type="invalid_value",
                message=f"VAT '{raw}' is not a valid amount and will be saved as 0",
                severity="warning",
            ))

        if vat > 0 and draft.vat_exempt:
            issues.append(ValidationIssue(
                field="manual_vat",
                issue_type="inconsistent",
                message="VAT is ignored for VAT-exempt transactions",
                severity="warning",
            ))
        elif vat > 0 and not category.vat_applicable:
            issues.append(ValidationIssue(
                field="manual_vat",
                issue_type="inconsistent",
                message=f"Category '{category.name}' carries no VAT; VAT will be 0",
                severity="warning",
            ))

        try:
            net = parse_amount(draft.amount)
        except InvalidAmount:
            return issues
        if vat > net:
            issues.append(ValidationIssue(
                field="manual_vat",
                issue_type="suspicious_value",
                message="VAT is higher than the net amount",
                severity="warning",
                suggested_fix="Check that net amount and VAT are not swapped",
            ))
        return issues

    def validate(
        self,
        draft: TransactionDraft,
        settings: Optional[UserSettings] = None,
    ) -> ValidationResult:
        """
        Run the full two-stage validation.

        Args:
            draft: Form input
            settings: User preferences (VAT mode); defaults apply if None

        Returns:
            ValidationResult with all issues found
        """
        settings = settings or UserSettings()
        all_issues = []

        schema_valid, schema_issues = self._validate_schema(draft)
        all_issues.extend(schema_issues)

        # Only run stage 2 if stage 1 passes
        rules_valid = False
        if schema_valid:
            rules_valid, rule_issues = self._validate_rules(draft, settings)
            all_issues.extend(rule_issues)

        warnings = [i.message for i in all_issues if i.severity == "warning"]

        return ValidationResult(
            schema_valid=schema_valid,
            rules_valid=rules_valid,
            is_valid=schema_valid and rules_valid,
            issues=all_issues,
            warnings=warnings,
        )

    def ensure_valid(self, draft: TransactionDraft) -> Category:
        """
        Raise the first blocking problem of a draft.

        Returns:
            The draft's category

        Raises:
            InvalidAmount: Net amount unusable
            RecordNotFound: Unknown category
            CategoryTypeMismatch: Category is for the other direction
        """
        parse_amount(draft.amount)
        return self._registry.ensure_compatible(draft.category_id, draft.type)

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """
        Summarize a validation result for display under the form.
        """
        if result.is_valid and not result.warnings:
            return "✅ Alle Angaben sind gültig."

        lines = []

        if result.has_errors:
            lines.append("❌ Bitte korrigieren:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Bitte prüfen:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
