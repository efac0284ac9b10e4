"""
Data Validation Module

Rule-based quality checks for the two raw inputs of the engine: the
product catalog and the order feed. The engine itself never rejects
imperfect data; these checks report the problems that make reconciliation
ambiguous so they can be fixed upstream.

Features:
- Not-null, uniqueness and range checks over polars frames
- Catalog checks (duplicate SKUs and name::brand keys shadow each other in
  the resolver indexes)
- Order feed checks (missing timestamps default to "now")
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import polars as pl
import structlog

from sales_analytics.reconciliation.fields import (
    PRODUCT_COST_PRICE_FIELDS,
    PRODUCT_NAME_FIELDS,
    PRODUCT_SELLING_PRICE_FIELDS,
    first_number,
    first_text,
    line_items,
    normalize_text,
    to_number,
)

logger = structlog.get_logger(__name__)


class ValidationSeverity(str, Enum):
    """How much a failed check hurts reconciliation"""
    ERROR = "error"  # Rows cannot be reconciled reliably
    WARNING = "warning"  # Rows reconcile, possibly to the wrong bucket
    INFO = "info"


class ValidationStatus(str, Enum):
    """Outcome of a validation run"""
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"


@dataclass
class ValidationCheck:
    """Outcome of one column check"""
    name: str
    passed: bool
    severity: ValidationSeverity
    message: str
    details: Optional[Dict[str, Any]] = None
    failed_rows: int = 0
    total_rows: int = 0


@dataclass
class ValidationResult:
    """Outcome of a full validator run"""
    status: ValidationStatus
    total_checks: int
    passed_checks: int
    failed_checks: int
    warning_count: int
    checks: List[ValidationCheck] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        """Share of checks that passed, in percent"""
        if not self.total_checks:
            return 100.0
        return self.passed_checks / self.total_checks * 100

    def check(self, name: str) -> Optional[ValidationCheck]:
        """Look a check result up by name"""
        return next((c for c in self.checks if c.name == name), None)


ColumnRule = Callable[[pl.Series, pl.DataFrame], ValidationCheck]


class DataValidator:
    """
    Chainable column checks over a polars frame.

    Each ``add_*`` call registers a rule bound to one column; a rule whose
    column is missing from the frame fails with its own severity.

    Example:
        result = (
            DataValidator()
            .add_not_null_check("id")
            .add_unique_check("sku", severity=ValidationSeverity.WARNING)
            .validate(catalog_frame(products))
        )
    """

    def __init__(self, strict_mode: bool = False):
        self.strict_mode = strict_mode  # warnings count as failures
        self._rules: List[Tuple[str, str, ValidationSeverity, ColumnRule]] = []

    def reset(self) -> None:
        """Drop every registered rule"""
        self._rules = []

    def _register(
        self,
        name: str,
        column: str,
        severity: ValidationSeverity,
        rule: ColumnRule,
    ) -> "DataValidator":
        self._rules.append((name, column, severity, rule))
        return self

    def add_not_null_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Every row must have a value in ``column``"""
        def rule(values: pl.Series, df: pl.DataFrame) -> ValidationCheck:
            missing = values.null_count()
            rows = len(values)
            return ValidationCheck(
                name=f"not_null_{column}",
                passed=missing == 0,
                severity=severity,
                message=f"{missing} of {rows} rows have no '{column}'" if missing else f"'{column}' is always set",
                details={"null_count": missing, "null_percentage": missing / rows * 100 if rows else 0.0},
                failed_rows=missing,
                total_rows=rows,
            )

        return self._register(f"not_null_{column}", column, severity, rule)

    def add_unique_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Set values of ``column`` must not repeat; nulls are ignored"""
        def rule(values: pl.Series, df: pl.DataFrame) -> ValidationCheck:
            present = values.drop_nulls()
            repeats = len(present) - present.n_unique()
            duplicates = (
                present.filter(present.is_duplicated()).unique(maintain_order=True).to_list()
                if repeats
                else []
            )
            return ValidationCheck(
                name=f"unique_{column}",
                passed=repeats == 0,
                severity=severity,
                message=f"'{column}' repeats for {duplicates}" if repeats else f"'{column}' values are unique",
                details={"duplicate_count": repeats, "duplicates": duplicates},
                failed_rows=repeats,
                total_rows=len(present),
            )

        return self._register(f"unique_{column}", column, severity, rule)

    def add_range_check(
        self,
        column: str,
        min_value: Optional[float] = None,
        max_value: Optional[float] = None,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Set values of ``column`` must lie within [min_value, max_value]"""
        def rule(values: pl.Series, df: pl.DataFrame) -> ValidationCheck:
            outside = pl.Series(values.name, [False] * len(values), dtype=pl.Boolean)
            if min_value is not None:
                outside = outside | (values < min_value).fill_null(False)
            if max_value is not None:
                outside = outside | (values > max_value).fill_null(False)
            count = int(outside.sum())
            return ValidationCheck(
                name=f"range_{column}",
                passed=count == 0,
                severity=severity,
                message=(
                    f"{count} rows of '{column}' fall outside [{min_value}, {max_value}]"
                    if count
                    else f"'{column}' is within range"
                ),
                details={"min": min_value, "max": max_value, "out_of_range_count": count},
                failed_rows=count,
                total_rows=len(values),
            )

        return self._register(f"range_{column}", column, severity, rule)

    def _run_rule(
        self,
        df: pl.DataFrame,
        name: str,
        column: str,
        severity: ValidationSeverity,
        rule: ColumnRule,
    ) -> ValidationCheck:
        if column not in df.columns:
            return ValidationCheck(
                name=name,
                passed=False,
                severity=severity,
                message=f"Column '{column}' not found",
                total_rows=len(df),
            )
        return rule(df[column], df)

    def _status(self, errors: int, warnings: int) -> ValidationStatus:
        if errors or (warnings and self.strict_mode):
            return ValidationStatus.FAILED
        if warnings:
            return ValidationStatus.PARTIAL
        return ValidationStatus.PASSED

    def validate(self, df: pl.DataFrame) -> ValidationResult:
        """
        Run every registered rule against a frame.

        Args:
            df: Frame to validate (see catalog_frame / orders_frame)

        Returns:
            ValidationResult; FAILED on any error-severity failure, PARTIAL
            on warnings only (FAILED in strict mode)
        """
        started_at = datetime.now(timezone.utc)
        checks = [self._run_rule(df, *entry) for entry in self._rules]

        failures = [c for c in checks if not c.passed]
        for check in failures:
            logger.warning(
                "Validation check failed",
                check=check.name,
                severity=check.severity.value,
                detail=check.message,
            )

        errors = sum(1 for c in failures if c.severity == ValidationSeverity.ERROR)
        warnings = sum(1 for c in failures if c.severity == ValidationSeverity.WARNING)
        status = self._status(errors, warnings)

        logger.info(
            "Validation complete",
            status=status.value,
            rows=len(df),
            checks=len(checks),
            errors=errors,
            warnings=warnings,
        )

        return ValidationResult(
            status=status,
            total_checks=len(checks),
            passed_checks=len(checks) - len(failures),
            failed_checks=errors,
            warning_count=warnings,
            checks=checks,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
        )


def _text_or_none(value: str) -> Optional[str]:
    return value or None


def catalog_frame(products: Sequence[Mapping[str, Any]]) -> pl.DataFrame:
    """
    Normalize raw catalog documents into a frame of resolver-relevant columns.

    Entries that are not documents are skipped, as the resolver skips them.
    """
    rows = []
    for p in products:
        if not isinstance(p, Mapping):
            continue
        name = normalize_text(first_text(p, *PRODUCT_NAME_FIELDS))
        brand = normalize_text(p.get("brand"))
        rows.append({
            "id": _text_or_none(first_text(p, "id")),
            "name": _text_or_none(name),
            "sku": _text_or_none(normalize_text(p.get("sku"))),
            "name_brand_key": f"{name}::{brand}" if name and brand else None,
            "cost_price": float(first_number(p, *PRODUCT_COST_PRICE_FIELDS)),
            "selling_price": float(first_number(p, *PRODUCT_SELLING_PRICE_FIELDS)),
            "quantity": float(to_number(p.get("quantity"))),
        })
    schema = {
        "id": pl.Utf8,
        "name": pl.Utf8,
        "sku": pl.Utf8,
        "name_brand_key": pl.Utf8,
        "cost_price": pl.Float64,
        "selling_price": pl.Float64,
        "quantity": pl.Float64,
    }
    return pl.DataFrame(rows, schema=schema)


def orders_frame(orders: Sequence[Mapping[str, Any]]) -> pl.DataFrame:
    """Normalize raw order documents into one row per order; non-documents are skipped"""
    rows = []
    for o in orders:
        if not isinstance(o, Mapping):
            continue
        rows.append({
            "id": _text_or_none(first_text(o, "id")),
            "status": _text_or_none(first_text(o, "status", "statusCode")),
            "retailer_id": _text_or_none(first_text(o, "retailerId", "provisionalRetailerId")),
            "timestamp": _text_or_none(first_text(o, "timestamp", "createdAt")),
            "item_count": len(line_items(o)),
        })
    schema = {
        "id": pl.Utf8,
        "status": pl.Utf8,
        "retailer_id": pl.Utf8,
        "timestamp": pl.Utf8,
        "item_count": pl.Int64,
    }
    return pl.DataFrame(rows, schema=schema)


def create_catalog_validator() -> DataValidator:
    """Create pre-configured validator for catalog data"""
    return (
        DataValidator()
        .add_not_null_check("id")
        .add_unique_check("id")
        .add_unique_check("sku", severity=ValidationSeverity.WARNING)
        .add_unique_check("name_brand_key", severity=ValidationSeverity.WARNING)
        .add_range_check("cost_price", min_value=0, severity=ValidationSeverity.WARNING)
        .add_range_check("quantity", min_value=0, severity=ValidationSeverity.WARNING)
    )


def create_orders_validator() -> DataValidator:
    """Create pre-configured validator for the order feed"""
    return (
        DataValidator()
        .add_not_null_check("id")
        .add_unique_check("id")
        .add_not_null_check("timestamp", severity=ValidationSeverity.WARNING)
    )


def validate_catalog(products: Sequence[Mapping[str, Any]]) -> ValidationResult:
    """Validate a raw catalog snapshot"""
    return create_catalog_validator().validate(catalog_frame(products))


def validate_orders(orders: Sequence[Mapping[str, Any]]) -> ValidationResult:
    """Validate a raw order snapshot"""
    return create_orders_validator().validate(orders_frame(orders))
