"""
Unit Tests - Data Quality
"""
from datetime import datetime
from decimal import Decimal

import polars as pl

from ecom_analytics.quality import (
    DataValidator,
    ValidationSeverity,
    ValidationStatus,
    create_canonical_validators,
    validate_canonical_tables,
)
from ecom_analytics.store.models import EntityType, OrderItem, Seller


def _frame(record_type, records):
    return pl.DataFrame([r.to_row() for r in records], schema=record_type.polars_schema())


class TestDataValidator:
    """Tests for DataValidator"""

    def test_not_null_check(self):
        """Test not null check with and without nulls"""
        validator = DataValidator("t").add_not_null_check("id")

        assert validator.validate(pl.DataFrame({"id": [1, 2, 3]})).status == ValidationStatus.PASSED

        result = validator.validate(pl.DataFrame({"id": [1, None, 3]}))
        assert result.status == ValidationStatus.FAILED
        assert result.failed_checks == 1
        assert result.errors[0].failed_rows == 1

    def test_composite_unique_check(self):
        """Test uniqueness over a composite key"""
        df = pl.DataFrame({"order_id": ["o1", "o1", "o1"], "order_item_id": [1, 2, 1]})

        result = DataValidator("order_items").add_unique_check(["order_id", "order_item_id"]).validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.checks[0].details["duplicate_count"] == 1

    def test_range_check_exempts_sentinel(self):
        """Test the sentinel is not counted as out of range"""
        df = pl.DataFrame({"price": [10.0, -1.0, -5.0, None]})

        result = DataValidator().add_range_check("price", min_value=0.01, sentinel=-1.0).validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.checks[0].failed_rows == 1

    def test_enum_check_warns(self):
        """Test unexpected values are a warning by default"""
        df = pl.DataFrame({"order_status": ["delivered", "lost"]})

        result = DataValidator().add_enum_check("order_status", ["delivered"]).validate(df)

        assert result.status == ValidationStatus.PARTIAL
        assert result.warning_count == 1
        assert result.checks[0].details["unexpected_values"] == ["lost"]

    def test_strict_mode(self):
        """Test warnings fail the table in strict mode"""
        df = pl.DataFrame({"order_status": ["lost"]})
        result = DataValidator(strict_mode=True).add_enum_check("order_status", ["delivered"]).validate(df)
        assert result.status == ValidationStatus.FAILED

    def test_pattern_check_skips_sentinel(self):
        """Test the text sentinel is not pattern checked"""
        df = pl.DataFrame({"seller_city": ["CAMPINAS", "N/A", "SAO PAULO 2"]})

        result = DataValidator().add_pattern_check(
            "seller_city", r"^[^0-9]+$", severity=ValidationSeverity.ERROR
        ).validate(df)

        assert result.checks[0].failed_rows == 1
        assert result.checks[0].total_rows == 2

    def test_referential_check(self):
        """Test orphan references are counted"""
        orders = pl.DataFrame({"order_id": ["o1", "o2"]})
        items = pl.DataFrame({"order_id": ["o1", "o3", "N/A"]})

        result = DataValidator().add_referential_check("order_id", orders, "order_id").validate(items)

        assert result.status == ValidationStatus.PARTIAL
        assert result.checks[0].details["orphan_count"] == 1

    def test_missing_column(self):
        """Test checks on absent columns fail"""
        result = DataValidator().add_not_null_check("missing").validate(pl.DataFrame({"id": [1]}))
        assert result.status == ValidationStatus.FAILED

    def test_custom_check(self):
        """Test custom check"""
        df = pl.DataFrame({"total": [10.0, 20.0]})
        validator = DataValidator().add_custom_check(
            "positive_total", lambda d: (d["total"] > 0).all(), "non-positive totals"
        )
        result = validator.validate(df)
        assert result.status == ValidationStatus.PASSED
        assert result.success_rate == 100.0


class TestCanonicalValidators:
    """Tests for the canonical table validators"""

    def test_validator_per_entity(self):
        """Test every entity type has a validator"""
        validators = create_canonical_validators()
        assert set(validators) == set(EntityType)

    def test_clean_items_pass(self):
        """Test sentinel prices and zero freight pass"""
        items = [
            OrderItem("o1", 1, "p1", "s1", datetime(2018, 1, 1), Decimal("10.00"), Decimal("0.00")),
            OrderItem("o1", 2, "p1", "s1", datetime(2018, 1, 1), Decimal("-1.00"), Decimal("3.00")),
        ]
        results = validate_canonical_tables({EntityType.ORDER_ITEM: _frame(OrderItem, items)})
        assert results[EntityType.ORDER_ITEM].status == ValidationStatus.PASSED

    def test_seller_city_with_digits_fails(self):
        """Test a seller city with digits blocks the load"""
        sellers = [Seller("s1", 13000, "CAMPINAS 2", "SP")]
        results = validate_canonical_tables({EntityType.SELLER: _frame(Seller, sellers)})

        result = results[EntityType.SELLER]
        assert result.status == ValidationStatus.FAILED
        assert [c.name for c in result.errors] == ["pattern_seller_city"]

    def test_negative_freight_fails(self):
        """Test a negative freight value is an error"""
        items = [OrderItem("o1", 1, "p1", "s1", datetime(2018, 1, 1), Decimal("10.00"), Decimal("-2.00"))]
        results = validate_canonical_tables({EntityType.ORDER_ITEM: _frame(OrderItem, items)})
        assert results[EntityType.ORDER_ITEM].status == ValidationStatus.FAILED

    def test_orphans_are_warnings(self):
        """Test references to missing dimension rows only warn"""
        items = [OrderItem("o1", 1, "p9", "s9", datetime(2018, 1, 1), Decimal("10.00"), Decimal("1.00"))]
        sellers = [Seller("s1", 13000, "CAMPINAS", "SP")]
        results = validate_canonical_tables({
            EntityType.ORDER_ITEM: _frame(OrderItem, items),
            EntityType.SELLER: _frame(Seller, sellers),
        })

        result = results[EntityType.ORDER_ITEM]
        assert result.status == ValidationStatus.PARTIAL
        assert result.warning_count == 1
