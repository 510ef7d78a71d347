# Overview: Pytest coverage for the stock movement engine and ledger audit.

import pytest
from sqlalchemy import event
from sqlalchemy.exc import StatementError

from invsaas.extensions import db
from invsaas.errors import (
    InsufficientStockError,
    InvalidMovementError,
    NotFoundError,
    ValidationError,
)
from invsaas.models import Product, Variant, StockMovement
from invsaas.models.ledger import ImmutableMovementError
from invsaas.services import stock_service
from invsaas.services.stock_service import apply_movement, classify_movement, InventoryWorkflow

from conftest import variant_by_sku


def _movements_for(variant_id):
    return (
        db.session.query(StockMovement)
        .filter_by(variant_id=variant_id)
        .order_by(StockMovement.id)
        .all()
    )


class TestClassifyMovement:
    """Direction rules for every movement type."""

    @pytest.mark.parametrize("movement_type", ["purchase", "return"])
    def test_increasing_types(self, movement_type):
        assert classify_movement(movement_type, 1) == 1

    @pytest.mark.parametrize("movement_type", ["sale", "damage"])
    def test_decreasing_types(self, movement_type):
        assert classify_movement(movement_type, 1) == -1

    def test_adjustment_defaults_to_increase(self):
        assert classify_movement("adjustment", 5) == 1
        assert classify_movement("adjustment", 5, "decrease") == -1

    def test_adjustment_rejects_unknown_direction(self):
        with pytest.raises(InvalidMovementError):
            classify_movement("adjustment", 5, "sideways")

    def test_direction_rejected_for_fixed_types(self):
        with pytest.raises(InvalidMovementError):
            classify_movement("sale", 5, "increase")

    def test_transfer_rejected(self):
        with pytest.raises(InvalidMovementError):
            classify_movement("transfer", 5)

    def test_unknown_type_rejected(self):
        with pytest.raises(InvalidMovementError):
            classify_movement("theft", 1)

    @pytest.mark.parametrize("quantity", [0, -3, 2.5, True, "4", None])
    def test_quantity_must_be_positive_int(self, quantity):
        with pytest.raises(InvalidMovementError):
            classify_movement("purchase", quantity)


class TestApplyMovement:
    """Core check-and-write behavior."""

    def test_sale_decrements_and_records_movement(self, db_session, product_a):
        variant = variant_by_sku(product_a, "TS-RED-M")
        variant.low_stock_threshold = 20
        db_session.commit()

        variant, movement = apply_movement(
            tenant_id=product_a.tenant_id,
            product_id=product_a.id,
            variant_id=variant.id,
            movement_type="sale",
            quantity=3,
            performed_by="user-1",
        )

        assert variant.stock == 7
        assert movement.previous_stock == 10
        assert movement.new_stock == 7
        assert movement.quantity == 3
        assert movement.movement_type == "sale"
        assert movement.sku == "TS-RED-M"
        assert movement.reference_type == "Manual"
        assert movement.performed_by == "user-1"
        assert movement.unit_price_cents == 1999
        assert movement.total_value_cents == 3 * 1999

    def test_insufficient_stock_leaves_no_trace(self, db_session, product_a):
        variant = variant_by_sku(product_a, "TS-RED-M")
        variant.stock = 5
        db_session.commit()
        variant_id = variant.id

        with pytest.raises(InsufficientStockError) as exc_info:
            apply_movement(
                tenant_id=product_a.tenant_id,
                product_id=product_a.id,
                variant_id=variant_id,
                movement_type="sale",
                quantity=10,
                performed_by="user-1",
            )

        assert exc_info.value.details["current_stock"] == 5
        assert exc_info.value.details["requested_quantity"] == 10
        assert exc_info.value.details["sku"] == "TS-RED-M"
        assert db.session.get(Variant, variant_id).stock == 5
        assert _movements_for(variant_id) == []

    def test_sale_to_exactly_zero(self, db_session, product_a):
        variant = variant_by_sku(product_a, "TS-BLUE-L")
        variant, movement = apply_movement(
            tenant_id=product_a.tenant_id,
            product_id=product_a.id,
            variant_id=variant.id,
            movement_type="sale",
            quantity=3,
            performed_by="user-1",
        )
        assert variant.stock == 0
        assert movement.new_stock == 0

    def test_adjustment_decrease(self, db_session, product_a):
        variant = variant_by_sku(product_a, "TS-RED-M")
        variant, movement = apply_movement(
            tenant_id=product_a.tenant_id,
            product_id=product_a.id,
            variant_id=variant.id,
            movement_type="adjustment",
            quantity=4,
            direction="decrease",
            reason="Cycle count",
            performed_by="user-1",
        )
        assert variant.stock == 6
        assert movement.quantity == 4
        assert movement.delta == -4
        assert movement.reason == "Cycle count"

    def test_total_stock_follows_movements(self, db_session, product_a):
        variant = variant_by_sku(product_a, "TS-RED-M")
        apply_movement(
            tenant_id=product_a.tenant_id,
            product_id=product_a.id,
            variant_id=variant.id,
            movement_type="purchase",
            quantity=5,
            performed_by="user-1",
        )
        product = db.session.get(Product, product_a.id)
        assert product.total_stock == 15 + 3

        apply_movement(
            tenant_id=product_a.tenant_id,
            product_id=product_a.id,
            variant_id=variant_by_sku(product_a, "TS-BLUE-L").id,
            movement_type="sale",
            quantity=2,
            performed_by="user-1",
        )
        db.session.expire_all()
        product = db.session.get(Product, product_a.id)
        assert product.total_stock == sum(v.stock for v in product.variants) == 16

    def test_total_stock_written_as_increment(self, db_session, product_a):
        """The cache UPDATE adds a delta to the stored value, never a re-aggregated SUM."""
        statements = []

        def capture(conn, cursor, statement, parameters, context, executemany):
            if statement.startswith("UPDATE products"):
                statements.append(statement)

        event.listen(db.engine, "before_cursor_execute", capture)
        try:
            apply_movement(
                tenant_id=product_a.tenant_id,
                product_id=product_a.id,
                variant_id=variant_by_sku(product_a, "TS-RED-M").id,
                movement_type="damage",
                quantity=1,
                performed_by="user-1",
            )
        finally:
            event.remove(db.engine, "before_cursor_execute", capture)

        assert len(statements) == 1
        assert "products.total_stock +" in statements[0]
        assert "sum(" not in statements[0].lower()

    def test_version_increments_on_each_write(self, db_session, product_a):
        variant = variant_by_sku(product_a, "TS-RED-M")
        start_version = variant.version
        for _ in range(2):
            apply_movement(
                tenant_id=product_a.tenant_id,
                product_id=product_a.id,
                variant_id=variant.id,
                movement_type="return",
                quantity=1,
                performed_by="user-1",
            )
        assert db.session.get(Variant, variant.id).version == start_version + 2

    def test_transfer_rejected_without_side_effects(self, db_session, product_a):
        variant = variant_by_sku(product_a, "TS-RED-M")
        with pytest.raises(InvalidMovementError):
            apply_movement(
                tenant_id=product_a.tenant_id,
                product_id=product_a.id,
                variant_id=variant.id,
                movement_type="transfer",
                quantity=1,
                performed_by="user-1",
            )
        assert db.session.get(Variant, variant.id).stock == 10
        assert _movements_for(variant.id) == []

    def test_unknown_product(self, db_session, product_a):
        with pytest.raises(NotFoundError):
            apply_movement(
                tenant_id=product_a.tenant_id,
                product_id=99999,
                variant_id=1,
                movement_type="purchase",
                quantity=1,
                performed_by="user-1",
            )

    def test_variant_of_other_product(self, db_session, product_a, tenant_a):
        from conftest import make_product
        other = make_product(db_session, tenant_a.id, "Socks", [("SK-BLK", 4, 499)])
        sock_variant_id = other.variants[0].id

        with pytest.raises(NotFoundError):
            apply_movement(
                tenant_id=product_a.tenant_id,
                product_id=product_a.id,
                variant_id=sock_variant_id,
                movement_type="purchase",
                quantity=1,
                performed_by="user-1",
            )

    def test_cross_tenant_is_not_found(self, db_session, product_a, product_b):
        variant_b = product_b.variants[0]
        with pytest.raises(NotFoundError):
            apply_movement(
                tenant_id=product_a.tenant_id,
                product_id=product_b.id,
                variant_id=variant_b.id,
                movement_type="sale",
                quantity=1,
                performed_by="user-1",
            )
        assert db.session.get(Variant, variant_b.id).stock == 7

    def test_performed_by_required(self, db_session, product_a):
        variant = variant_by_sku(product_a, "TS-RED-M")
        with pytest.raises(ValidationError):
            apply_movement(
                tenant_id=product_a.tenant_id,
                product_id=product_a.id,
                variant_id=variant.id,
                movement_type="purchase",
                quantity=1,
                performed_by="",
            )

    def test_invalid_reference_type(self, db_session, product_a):
        variant = variant_by_sku(product_a, "TS-RED-M")
        with pytest.raises(InvalidMovementError):
            apply_movement(
                tenant_id=product_a.tenant_id,
                product_id=product_a.id,
                variant_id=variant.id,
                movement_type="purchase",
                quantity=1,
                reference_type="Invoice",
                performed_by="user-1",
            )


class TestLedger:
    """Ledger chaining, immutability and audit."""

    def _run_sequence(self, product, variant):
        for movement_type, quantity in [("purchase", 5), ("sale", 8), ("damage", 1), ("return", 2)]:
            apply_movement(
                tenant_id=product.tenant_id,
                product_id=product.id,
                variant_id=variant.id,
                movement_type=movement_type,
                quantity=quantity,
                performed_by="user-1",
            )

    def test_chain_links_consecutive_movements(self, db_session, product_a):
        variant = variant_by_sku(product_a, "TS-RED-M")
        self._run_sequence(product_a, variant)

        movements = _movements_for(variant.id)
        assert [m.new_stock for m in movements] == [15, 7, 6, 8]
        for earlier, later in zip(movements, movements[1:]):
            assert later.previous_stock == earlier.new_stock
        assert movements[-1].new_stock == db.session.get(Variant, variant.id).stock

    def test_verify_consistent_ledger(self, db_session, product_a):
        variant = variant_by_sku(product_a, "TS-RED-M")
        self._run_sequence(product_a, variant)

        report = stock_service.verify_variant_ledger(product_a.tenant_id, variant.id)
        assert report["consistent"] is True
        assert report["movement_count"] == 4
        assert report["stock"] == 8
        assert report["problems"] == []

    def test_verify_detects_out_of_band_stock_write(self, db_session, product_a):
        variant = variant_by_sku(product_a, "TS-RED-M")
        self._run_sequence(product_a, variant)

        db.session.execute(
            Variant.__table__.update().where(Variant.__table__.c.id == variant.id).values(stock=99)
        )
        db.session.commit()

        report = stock_service.verify_variant_ledger(product_a.tenant_id, variant.id)
        assert report["consistent"] is False
        assert [p["kind"] for p in report["problems"]] == ["stock_mismatch"]

    def test_movement_update_blocked(self, db_session, product_a):
        variant = variant_by_sku(product_a, "TS-RED-M")
        _, movement = apply_movement(
            tenant_id=product_a.tenant_id,
            product_id=product_a.id,
            variant_id=variant.id,
            movement_type="purchase",
            quantity=1,
            performed_by="user-1",
        )

        movement = db.session.get(StockMovement, movement.id)
        movement.quantity = 100
        with pytest.raises((ImmutableMovementError, StatementError)):
            db.session.flush()
        db.session.rollback()

    def test_movement_delete_blocked(self, db_session, product_a):
        variant = variant_by_sku(product_a, "TS-RED-M")
        _, movement = apply_movement(
            tenant_id=product_a.tenant_id,
            product_id=product_a.id,
            variant_id=variant.id,
            movement_type="purchase",
            quantity=1,
            performed_by="user-1",
        )

        db.session.delete(db.session.get(StockMovement, movement.id))
        with pytest.raises((ImmutableMovementError, StatementError)):
            db.session.flush()
        db.session.rollback()

    def test_list_movements_newest_first_and_filtered(self, db_session, product_a, product_b):
        variant = variant_by_sku(product_a, "TS-RED-M")
        self._run_sequence(product_a, variant)
        apply_movement(
            tenant_id=product_b.tenant_id,
            product_id=product_b.id,
            variant_id=product_b.variants[0].id,
            movement_type="sale",
            quantity=1,
            performed_by="user-2",
        )

        movements = stock_service.list_stock_movements(product_a.tenant_id, product_id=product_a.id)
        assert [m.movement_type for m in movements] == ["return", "damage", "sale", "purchase"]
        assert all(m.tenant_id == product_a.tenant_id for m in movements)

        sales = stock_service.list_stock_movements(product_a.tenant_id, sku="ts-red-m", movement_type="sale")
        assert len(sales) == 1


class TestInventoryWorkflow:
    """Manual stock updates publish after commit."""

    def test_update_stock_publishes(self, db_session, product_a, notifier):
        variant = variant_by_sku(product_a, "TS-RED-M")
        InventoryWorkflow(notifier).update_stock(
            tenant_id=product_a.tenant_id,
            product_id=product_a.id,
            variant_id=variant.id,
            movement_type="damage",
            quantity=2,
            reason="Water damage",
            performed_by="user-1",
        )

        assert notifier.names() == ["stock-updated"]
        event = notifier.events[0]
        assert event.tenant_id == product_a.tenant_id
        assert event.payload["movement"]["new_stock"] == 8

    def test_failed_update_publishes_nothing(self, db_session, product_a, notifier):
        variant = variant_by_sku(product_a, "TS-BLUE-L")
        with pytest.raises(InsufficientStockError):
            InventoryWorkflow(notifier).update_stock(
                tenant_id=product_a.tenant_id,
                product_id=product_a.id,
                variant_id=variant.id,
                movement_type="sale",
                quantity=4,
                performed_by="user-1",
            )
        assert notifier.events == []


class TestLowStock:

    def test_low_stock_excludes_out_of_stock_and_other_tenants(self, db_session, product_a, product_b):
        blue = variant_by_sku(product_a, "TS-BLUE-L")
        red = variant_by_sku(product_a, "TS-RED-M")
        red.stock = 0
        db_session.commit()

        low = stock_service.get_low_stock_variants(product_a.tenant_id)
        assert [v.sku for v in low] == [blue.sku]

    def test_get_variant_by_sku_normalizes(self, db_session, product_a):
        variant = stock_service.get_variant_by_sku(product_a.tenant_id, "  ts-red-m ")
        assert variant.sku == "TS-RED-M"
        with pytest.raises(NotFoundError):
            stock_service.get_variant_by_sku("tenant-beta", "TS-RED-M")
