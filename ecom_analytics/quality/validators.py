"""
Canonical Data Quality Checks

Rule-based validation of canonical tables before a snapshot is published.

Features:
- Key uniqueness (single or composite)
- Sentinel consistency: no nulls in NOT NULL columns
- Value ranges that tolerate the documented sentinel
- Allowed-value and pattern checks
- Referential checks (warnings: analytics tolerate orphans via outer joins)
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

import polars as pl
import structlog

from ecom_analytics.store.models import (
    EntityType,
    MISSING_NUMBER,
    MISSING_TEXT,
    RECORD_TYPES,
)

logger = structlog.get_logger(__name__)


class ValidationSeverity(str, Enum):
    """Severity levels for validation failures"""
    ERROR = "error"  # blocks the load
    WARNING = "warning"
    INFO = "info"


class ValidationStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"


@dataclass
class ValidationCheck:
    """Single validation check result"""
    name: str
    passed: bool
    severity: ValidationSeverity
    message: str
    details: Optional[Dict[str, Any]] = None
    failed_rows: int = 0
    total_rows: int = 0


@dataclass
class ValidationResult:
    """Result of one validator over one table"""
    table: str
    status: ValidationStatus
    total_checks: int
    passed_checks: int
    failed_checks: int
    warning_count: int
    checks: List[ValidationCheck] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        if self.total_checks == 0:
            return 100.0
        return (self.passed_checks / self.total_checks) * 100

    @property
    def errors(self) -> List[ValidationCheck]:
        return [c for c in self.checks if not c.passed and c.severity == ValidationSeverity.ERROR]


CheckFunc = Callable[[pl.DataFrame], ValidationCheck]


def _missing(name: str, columns: Sequence[str], df: pl.DataFrame, severity: ValidationSeverity) -> Optional[ValidationCheck]:
    absent = [c for c in columns if c not in df.columns]
    if not absent:
        return None
    return ValidationCheck(
        name=name,
        passed=False,
        severity=severity,
        message=f"Column(s) not found: {', '.join(absent)}",
    )


class DataValidator:
    """
    Chainable check suite for one canonical table.

    Example:
        validator = (
            DataValidator("order_items")
            .add_unique_check(["order_id", "order_item_id"])
            .add_range_check("price", min_value=0.01, sentinel=-1)
        )
        result = validator.validate(df)
    """

    def __init__(self, table: str = "<frame>", strict_mode: bool = False):
        self.table = table
        self.strict_mode = strict_mode  # Warnings fail the table too
        self._checks: List[CheckFunc] = []

    def add_not_null_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Column never null (sentinels count as values)"""
        name = f"not_null_{column}"

        def check(df: pl.DataFrame) -> ValidationCheck:
            absent = _missing(name, [column], df, severity)
            if absent:
                return absent
            nulls = df[column].null_count()
            return ValidationCheck(
                name=name,
                passed=nulls == 0,
                severity=severity,
                message=f"{nulls} nulls in '{column}'" if nulls else f"No nulls in '{column}'",
                details={"null_count": nulls},
                failed_rows=nulls,
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def add_unique_check(
        self,
        columns: Union[str, Sequence[str]],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Key (single or composite) unique across rows"""
        cols = [columns] if isinstance(columns, str) else list(columns)
        name = f"unique_{'_'.join(cols)}"

        def check(df: pl.DataFrame) -> ValidationCheck:
            absent = _missing(name, cols, df, severity)
            if absent:
                return absent
            distinct = df.select(cols).unique().height
            duplicates = len(df) - distinct
            return ValidationCheck(
                name=name,
                passed=duplicates == 0,
                severity=severity,
                message=(
                    f"{duplicates} duplicate keys on ({', '.join(cols)})"
                    if duplicates else f"Key ({', '.join(cols)}) is unique"
                ),
                details={"distinct_keys": distinct, "duplicate_count": duplicates},
                failed_rows=duplicates,
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def add_range_check(
        self,
        column: str,
        min_value: Optional[float] = None,
        max_value: Optional[float] = None,
        sentinel: Optional[Any] = None,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Values within [min, max]; the sentinel and nulls are exempt"""
        name = f"range_{column}"

        def check(df: pl.DataFrame) -> ValidationCheck:
            absent = _missing(name, [column], df, severity)
            if absent:
                return absent

            outside = pl.lit(False)
            if min_value is not None:
                outside = outside | (pl.col(column) < min_value)
            if max_value is not None:
                outside = outside | (pl.col(column) > max_value)
            if sentinel is not None:
                outside = outside & (pl.col(column) != sentinel)

            out_of_range = df.filter(outside.fill_null(False)).height
            return ValidationCheck(
                name=name,
                passed=out_of_range == 0,
                severity=severity,
                message=(
                    f"{out_of_range} values in '{column}' outside [{min_value}, {max_value}]"
                    if out_of_range else f"All '{column}' values in range"
                ),
                details={"min": min_value, "max": max_value, "sentinel": sentinel},
                failed_rows=out_of_range,
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def add_enum_check(
        self,
        column: str,
        allowed_values: Sequence[Any],
        severity: ValidationSeverity = ValidationSeverity.WARNING,
    ) -> "DataValidator":
        """Values drawn from a known set"""
        name = f"enum_{column}"
        allowed = list(allowed_values)

        def check(df: pl.DataFrame) -> ValidationCheck:
            absent = _missing(name, [column], df, severity)
            if absent:
                return absent
            unexpected = df.filter(~pl.col(column).is_in(allowed) & pl.col(column).is_not_null())
            values = sorted(set(unexpected[column].to_list()))
            return ValidationCheck(
                name=name,
                passed=unexpected.height == 0,
                severity=severity,
                message=(
                    f"{unexpected.height} unexpected values in '{column}'"
                    if unexpected.height else f"All '{column}' values allowed"
                ),
                details={"unexpected_values": values[:20]},
                failed_rows=unexpected.height,
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def add_pattern_check(
        self,
        column: str,
        pattern: str,
        severity: ValidationSeverity = ValidationSeverity.WARNING,
    ) -> "DataValidator":
        """Non-sentinel text values match a regex"""
        name = f"pattern_{column}"

        def check(df: pl.DataFrame) -> ValidationCheck:
            absent = _missing(name, [column], df, severity)
            if absent:
                return absent
            candidates = df.filter(pl.col(column).is_not_null() & (pl.col(column) != MISSING_TEXT))
            non_matching = candidates.filter(~pl.col(column).str.contains(pattern)).height
            return ValidationCheck(
                name=name,
                passed=non_matching == 0,
                severity=severity,
                message=(
                    f"{non_matching} values in '{column}' do not match {pattern}"
                    if non_matching else f"All '{column}' values match"
                ),
                details={"pattern": pattern},
                failed_rows=non_matching,
                total_rows=candidates.height,
            )

        self._checks.append(check)
        return self

    def add_custom_check(
        self,
        name: str,
        check_func: Callable[[pl.DataFrame], bool],
        message_on_fail: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        def check(df: pl.DataFrame) -> ValidationCheck:
            passed = bool(check_func(df))
            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message="Check passed" if passed else message_on_fail,
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def add_referential_check(
        self,
        column: str,
        reference: pl.DataFrame,
        reference_column: str,
        severity: ValidationSeverity = ValidationSeverity.WARNING,
    ) -> "DataValidator":
        """Count rows whose (non-sentinel) reference has no dimension row"""
        name = f"ref_{column}"
        known = reference[reference_column].unique()

        def check(df: pl.DataFrame) -> ValidationCheck:
            absent = _missing(name, [column], df, severity)
            if absent:
                return absent
            orphans = df.filter(
                pl.col(column).is_not_null()
                & (pl.col(column) != MISSING_TEXT)
                & ~pl.col(column).is_in(known)
            ).height
            return ValidationCheck(
                name=name,
                passed=orphans == 0,
                severity=severity,
                message=f"{orphans} orphan '{column}' values" if orphans else f"All '{column}' values resolve",
                details={"orphan_count": orphans},
                failed_rows=orphans,
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def validate(self, df: pl.DataFrame) -> ValidationResult:
        """Run every check against one frame"""
        started_at = datetime.utcnow()
        results = [check(df) for check in self._checks]

        for result in results:
            if not result.passed:
                logger.warning(
                    f"Validation failed: {self.table}.{result.name}",
                    message=result.message,
                    severity=result.severity.value,
                )

        passed_checks = sum(1 for r in results if r.passed)
        failed_checks = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.ERROR)
        warning_count = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.WARNING)

        if failed_checks or (warning_count and self.strict_mode):
            status = ValidationStatus.FAILED
        elif warning_count:
            status = ValidationStatus.PARTIAL
        else:
            status = ValidationStatus.PASSED

        logger.debug(
            f"Validated {self.table}: {status.value}",
            rows=len(df),
            passed=passed_checks,
            failed=failed_checks,
            warnings=warning_count,
        )
        return ValidationResult(
            table=self.table,
            status=status,
            total_checks=len(results),
            passed_checks=passed_checks,
            failed_checks=failed_checks,
            warning_count=warning_count,
            checks=results,
            started_at=started_at,
            completed_at=datetime.utcnow(),
        )


# Canonical table validators

ORDER_STATUSES = [
    "created", "approved", "invoiced", "processing", "shipped",
    "delivered", "unavailable", "canceled", MISSING_TEXT,
]
PAYMENT_TYPES = ["credit_card", "boleto", "voucher", "debit_card", "not_defined", MISSING_TEXT]


def _base_validator(entity: EntityType) -> DataValidator:
    """Key uniqueness plus not-null on every NOT NULL column"""
    record_type = RECORD_TYPES[entity]
    validator = DataValidator(record_type.table_name)
    validator.add_unique_check(list(record_type.key_fields))
    for column in record_type.not_null_columns():
        validator.add_not_null_check(column)
    return validator


def create_canonical_validators(
    frames: Optional[Mapping[EntityType, pl.DataFrame]] = None,
) -> Dict[EntityType, DataValidator]:
    """
    Validators for every canonical table.

    Args:
        frames: Canonical frames; when given, referential checks against the
            dimension tables are added

    Returns:
        Mapping of entity type to its validator
    """
    frames = frames or {}
    validators = {entity: _base_validator(entity) for entity in EntityType}

    sentinel = float(MISSING_NUMBER)
    for column in ("product_weight_g", "product_length_cm", "product_height_cm", "product_width_cm"):
        validators[EntityType.PRODUCT].add_range_check(column, min_value=0.01, sentinel=sentinel)
    validators[EntityType.ORDER_ITEM].add_range_check("price", min_value=0.01, sentinel=sentinel)
    validators[EntityType.ORDER_ITEM].add_range_check("freight_value", min_value=0)
    validators[EntityType.REVIEW].add_range_check(
        "review_score", min_value=1, max_value=5, sentinel=MISSING_NUMBER,
        severity=ValidationSeverity.WARNING,
    )
    validators[EntityType.GEOLOCATION].add_range_check("geolocation_lat", min_value=-90, max_value=90)
    validators[EntityType.GEOLOCATION].add_range_check("geolocation_lng", min_value=-180, max_value=180)
    validators[EntityType.ORDER].add_enum_check("order_status", ORDER_STATUSES)
    validators[EntityType.PAYMENT].add_enum_check("payment_type", PAYMENT_TYPES)
    validators[EntityType.SELLER].add_pattern_check("seller_city", r"^[^0-9]+$", severity=ValidationSeverity.ERROR)

    references = [
        (EntityType.ORDER, "customer_id", EntityType.CUSTOMER, "customer_id"),
        (EntityType.ORDER_ITEM, "order_id", EntityType.ORDER, "order_id"),
        (EntityType.ORDER_ITEM, "product_id", EntityType.PRODUCT, "product_id"),
        (EntityType.ORDER_ITEM, "seller_id", EntityType.SELLER, "seller_id"),
        (EntityType.PAYMENT, "order_id", EntityType.ORDER, "order_id"),
        (EntityType.REVIEW, "order_id", EntityType.ORDER, "order_id"),
    ]
    for entity, column, ref_entity, ref_column in references:
        if ref_entity in frames:
            validators[entity].add_referential_check(column, frames[ref_entity], ref_column)

    return validators


def validate_canonical_tables(
    frames: Mapping[EntityType, pl.DataFrame],
) -> Dict[EntityType, ValidationResult]:
    """Run the canonical validators over every provided table"""
    validators = create_canonical_validators(frames)
    results = {
        entity: validators[EntityType(entity)].validate(df)
        for entity, df in frames.items()
    }
    failed = [r.table for r in results.values() if r.status == ValidationStatus.FAILED]
    logger.info(
        "Canonical validation complete",
        tables=len(results),
        failed_tables=failed,
    )
    return results
