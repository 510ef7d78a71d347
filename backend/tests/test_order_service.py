# Overview: Pytest coverage for the sales order workflow.

import pytest

from invsaas.extensions import db
from invsaas.errors import (
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from invsaas.models import Order, Variant, StockMovement
from invsaas.services import order_service
from invsaas.services.order_service import OrderWorkflow

from conftest import variant_by_sku


def _stock(variant_id):
    return db.session.get(Variant, variant_id).stock


def _movement_types(order_id):
    return [
        m.movement_type
        for m in db.session.query(StockMovement)
        .filter_by(reference_type="Order", reference_id=order_id)
        .order_by(StockMovement.id)
    ]


class ExplodingNotifier:
    def publish(self, event):
        raise RuntimeError("socket closed")


@pytest.fixture
def workflow(notifier):
    return OrderWorkflow(notifier)


def _item(product, sku, quantity, **extra):
    item = {
        "product_id": product.id,
        "variant_id": variant_by_sku(product, sku).id,
        "quantity": quantity,
    }
    item.update(extra)
    return item


class TestCreateOrder:

    def test_create_decrements_stock_per_item(self, db_session, product_a, workflow):
        red = variant_by_sku(product_a, "TS-RED-M").id
        blue = variant_by_sku(product_a, "TS-BLUE-L").id

        order = workflow.create_order(
            tenant_id=product_a.tenant_id,
            customer={"name": "Dana", "email": "dana@example.test"},
            items=[_item(product_a, "TS-RED-M", 2), _item(product_a, "TS-BLUE-L", 1, unit_price_cents=1500)],
            performed_by="user-1",
        )

        assert order.status == "pending"
        assert order.order_number == "ORD-000001"
        assert order.customer["name"] == "Dana"
        assert order.total_amount_cents == 2 * 1999 + 1500
        assert [i.sku for i in order.items] == ["TS-RED-M", "TS-BLUE-L"]
        assert _stock(red) == 8
        assert _stock(blue) == 2
        assert _movement_types(order.id) == ["sale", "sale"]

    def test_insufficient_second_item_rolls_back_everything(self, db_session, product_a, workflow, notifier):
        red = variant_by_sku(product_a, "TS-RED-M").id
        blue = variant_by_sku(product_a, "TS-BLUE-L").id

        with pytest.raises(InsufficientStockError) as exc_info:
            workflow.create_order(
                tenant_id=product_a.tenant_id,
                items=[_item(product_a, "TS-RED-M", 2), _item(product_a, "TS-BLUE-L", 5)],
                performed_by="user-1",
            )

        assert exc_info.value.details["sku"] == "TS-BLUE-L"
        assert exc_info.value.details["line"] == 2
        assert _stock(red) == 10
        assert _stock(blue) == 3
        assert db.session.query(Order).count() == 0
        assert db.session.query(StockMovement).count() == 0
        assert notifier.events == []

    def test_empty_items_rejected(self, db_session, product_a, workflow):
        with pytest.raises(ValidationError):
            workflow.create_order(tenant_id=product_a.tenant_id, items=[], performed_by="user-1")

    def test_unknown_variant_rejected(self, db_session, product_a, workflow):
        with pytest.raises(NotFoundError):
            workflow.create_order(
                tenant_id=product_a.tenant_id,
                items=[{"product_id": product_a.id, "variant_id": 424242, "quantity": 1}],
                performed_by="user-1",
            )
        assert db.session.query(Order).count() == 0

    def test_other_tenant_product_rejected(self, db_session, product_a, product_b, workflow):
        with pytest.raises(NotFoundError):
            workflow.create_order(
                tenant_id=product_a.tenant_id,
                items=[_item(product_b, "HD-GRY-M", 1)],
                performed_by="user-1",
            )
        assert _stock(product_b.variants[0].id) == 7

    def test_zero_quantity_rejected(self, db_session, product_a, workflow):
        with pytest.raises(ValidationError):
            workflow.create_order(
                tenant_id=product_a.tenant_id,
                items=[_item(product_a, "TS-RED-M", 0)],
                performed_by="user-1",
            )

    def test_order_numbers_unique_and_per_tenant(self, db_session, product_a, product_b, workflow):
        first = workflow.create_order(
            tenant_id=product_a.tenant_id, items=[_item(product_a, "TS-RED-M", 1)], performed_by="user-1"
        )
        second = workflow.create_order(
            tenant_id=product_a.tenant_id, items=[_item(product_a, "TS-RED-M", 1)], performed_by="user-1"
        )
        other_tenant = workflow.create_order(
            tenant_id=product_b.tenant_id, items=[_item(product_b, "HD-GRY-M", 1)], performed_by="user-2"
        )

        assert first.order_number == "ORD-000001"
        assert second.order_number == "ORD-000002"
        assert other_tenant.order_number == "ORD-000001"

    def test_created_event_published(self, db_session, product_a, workflow, notifier):
        order = workflow.create_order(
            tenant_id=product_a.tenant_id, items=[_item(product_a, "TS-RED-M", 1)], performed_by="user-1"
        )
        assert notifier.names() == ["order-created"]
        assert notifier.events[0].payload["order"]["id"] == order.id

    def test_failing_notifier_does_not_undo_commit(self, db_session, product_a):
        red = variant_by_sku(product_a, "TS-RED-M").id
        order = OrderWorkflow(ExplodingNotifier()).create_order(
            tenant_id=product_a.tenant_id, items=[_item(product_a, "TS-RED-M", 4)], performed_by="user-1"
        )
        assert order.id is not None
        assert _stock(red) == 6


class TestOrderStatus:

    @pytest.fixture
    def order(self, db_session, product_a, workflow, notifier):
        order = workflow.create_order(
            tenant_id=product_a.tenant_id, items=[_item(product_a, "TS-RED-M", 4)], performed_by="user-1"
        )
        notifier.clear()
        return order

    def test_cancel_processing_order_restocks(self, db_session, product_a, order, workflow, notifier):
        red = variant_by_sku(product_a, "TS-RED-M").id
        workflow.update_order_status(tenant_id=product_a.tenant_id, order_id=order.id, status="processing")
        assert _stock(red) == 6

        cancelled = workflow.update_order_status(
            tenant_id=product_a.tenant_id, order_id=order.id, status="cancelled", performed_by="user-9"
        )

        assert cancelled.status == "cancelled"
        assert _stock(red) == 10
        assert _movement_types(order.id) == ["sale", "return"]
        restock = db.session.query(StockMovement).filter_by(movement_type="return").one()
        assert restock.quantity == 4
        assert restock.performed_by == "user-9"
        assert notifier.names() == ["order-updated", "order-updated"]

    def test_metadata_transition_has_no_stock_effect(self, db_session, product_a, order, workflow):
        for status in ("processing", "shipped", "delivered"):
            workflow.update_order_status(tenant_id=product_a.tenant_id, order_id=order.id, status=status)
        assert _stock(variant_by_sku(product_a, "TS-RED-M").id) == 6
        assert _movement_types(order.id) == ["sale"]

    def test_same_status_is_noop(self, db_session, product_a, order, workflow, notifier):
        workflow.update_order_status(tenant_id=product_a.tenant_id, order_id=order.id, status="cancelled")
        workflow.update_order_status(tenant_id=product_a.tenant_id, order_id=order.id, status="cancelled")

        assert _stock(variant_by_sku(product_a, "TS-RED-M").id) == 10
        assert _movement_types(order.id) == ["sale", "return"]
        assert notifier.names() == ["order-updated"]

    def test_cancelled_order_cannot_reopen(self, db_session, product_a, order, workflow):
        workflow.update_order_status(tenant_id=product_a.tenant_id, order_id=order.id, status="cancelled")
        with pytest.raises(InvalidStateError):
            workflow.update_order_status(tenant_id=product_a.tenant_id, order_id=order.id, status="pending")

    def test_invalid_status(self, db_session, product_a, order, workflow):
        with pytest.raises(ValidationError):
            workflow.update_order_status(tenant_id=product_a.tenant_id, order_id=order.id, status="lost")

    def test_status_is_case_insensitive(self, db_session, product_a, order, workflow):
        updated = workflow.update_order_status(tenant_id=product_a.tenant_id, order_id=order.id, status=" Shipped ")
        assert updated.status == "shipped"

    def test_other_tenant_cannot_update(self, db_session, product_a, tenant_b, order, workflow):
        with pytest.raises(NotFoundError):
            workflow.update_order_status(tenant_id=tenant_b.id, order_id=order.id, status="cancelled")
        assert _stock(variant_by_sku(product_a, "TS-RED-M").id) == 6


class TestDeleteOrder:

    @pytest.fixture
    def order(self, db_session, product_a, workflow, notifier):
        order = workflow.create_order(
            tenant_id=product_a.tenant_id, items=[_item(product_a, "TS-RED-M", 4)], performed_by="user-1"
        )
        notifier.clear()
        return order

    def test_delete_pending_restocks_and_hides(self, db_session, product_a, order, workflow, notifier):
        workflow.delete_order(tenant_id=product_a.tenant_id, order_id=order.id, performed_by="user-1")

        assert _stock(variant_by_sku(product_a, "TS-RED-M").id) == 10
        assert _movement_types(order.id) == ["sale", "return"]
        assert notifier.names() == ["order-deleted"]

        with pytest.raises(NotFoundError):
            order_service.get_order(product_a.tenant_id, order.id)
        assert order_service.list_orders(product_a.tenant_id) == []

        # Soft delete keeps the row for audit
        assert db.session.get(Order, order.id).deleted_at is not None

    def test_non_pending_delete_rejected(self, db_session, product_a, order, workflow):
        workflow.update_order_status(tenant_id=product_a.tenant_id, order_id=order.id, status="shipped")
        with pytest.raises(InvalidStateError):
            workflow.delete_order(tenant_id=product_a.tenant_id, order_id=order.id)
        assert _stock(variant_by_sku(product_a, "TS-RED-M").id) == 6

    def test_delete_twice_is_not_found(self, db_session, product_a, order, workflow):
        workflow.delete_order(tenant_id=product_a.tenant_id, order_id=order.id)
        with pytest.raises(NotFoundError):
            workflow.delete_order(tenant_id=product_a.tenant_id, order_id=order.id)
        assert _stock(variant_by_sku(product_a, "TS-RED-M").id) == 10


class TestListOrders:

    def test_list_filters_by_status_and_tenant(self, db_session, product_a, product_b, workflow):
        first = workflow.create_order(
            tenant_id=product_a.tenant_id, items=[_item(product_a, "TS-RED-M", 1)], performed_by="user-1"
        )
        workflow.create_order(
            tenant_id=product_a.tenant_id, items=[_item(product_a, "TS-RED-M", 1)], performed_by="user-1"
        )
        workflow.create_order(
            tenant_id=product_b.tenant_id, items=[_item(product_b, "HD-GRY-M", 1)], performed_by="user-2"
        )
        workflow.update_order_status(tenant_id=product_a.tenant_id, order_id=first.id, status="shipped")

        assert len(order_service.list_orders(product_a.tenant_id)) == 2
        shipped = order_service.list_orders(product_a.tenant_id, status="shipped")
        assert [o.id for o in shipped] == [first.id]
