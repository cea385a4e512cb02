"""Application tests for checkout, status transitions and cancellation."""

import re

import pytest
from protean import current_domain
from protean.exceptions import ValidationError

from orderflow import orchestrator
from orderflow.agent.agent import DeliveryAgent
from orderflow.errors import InsufficientStock, NotFound, PreconditionFailed
from orderflow.order.order import Order
from orderflow.order.sequence import AllocateOrderNumber
from orderflow.stock.stock import ProductStock


def _line(product_id, quantity, unit_price):
    return {"product_id": product_id, "product_name": product_id, "quantity": quantity, "unit_price": unit_price}


def _available(product_id):
    return current_domain.repository_for(ProductStock).get(product_id).available_quantity


class TestOrderNumbering:
    def test_numbers_are_sequential_per_day(self):
        first = current_domain.process(AllocateOrderNumber(date="2026-03-01"), asynchronous=False)
        second = current_domain.process(AllocateOrderNumber(date="2026-03-01"), asynchronous=False)
        other_day = current_domain.process(AllocateOrderNumber(date="2026-03-02"), asynchronous=False)
        assert first == "ORD-20260301-0001"
        assert second == "ORD-20260301-0002"
        assert other_day == "ORD-20260302-0001"


class TestCreateOrder:
    def test_cod_checkout_reserves_stock(self, place_order):
        orchestrator.register_product("prod-1", quantity=5)
        order = place_order([_line("prod-1", 2, 150.0)])
        assert re.fullmatch(r"ORD-\d{8}-\d{4}", order.order_number)
        assert order.status == "confirmed"
        assert order.payment_status == "pending"
        assert [e.status for e in order.timeline()] == ["pending", "confirmed"]
        assert _available("prod-1") == 3

    def test_insufficient_stock_creates_nothing(self, place_order):
        orchestrator.register_product("prod-1", quantity=5)
        orchestrator.register_product("prod-2", quantity=0)
        with pytest.raises(InsufficientStock):
            place_order([_line("prod-1", 1, 100.0), _line("prod-2", 1, 100.0)])
        assert _available("prod-1") == 5
        assert current_domain.repository_for(Order)._dao.query.all().items == []

    def test_rejected_placement_releases_stock(self, place_order):
        orchestrator.register_product("prod-1", quantity=5)
        with pytest.raises(ValidationError) as exc:
            place_order([_line("prod-1", 2, 6000.0)])
        assert "payment_method" in exc.value.messages
        assert _available("prod-1") == 5

    @pytest.mark.parametrize(
        "line",
        [
            {"product_id": "prod-1", "quantity": 2},
            {"product_id": "prod-1", "quantity": 2, "unit_price": "free"},
            {"product_id": "prod-1", "quantity": "two", "unit_price": 100.0},
            {"quantity": 2, "unit_price": 100.0},
        ],
    )
    def test_malformed_line_rejected_before_reserving(self, address, line):
        orchestrator.register_product("prod-1", quantity=5)
        with pytest.raises(ValidationError) as exc:
            orchestrator.create_order(
                customer_id="cust-001",
                items=[line],
                delivery_address=address,
                pricing={"items_total": 200.0, "total_amount": 200.0},
                payment_method="cod",
            )
        assert "items" in exc.value.messages
        assert _available("prod-1") == 5

    def test_unexpected_placement_failure_releases_stock(self, place_order, monkeypatch):
        orchestrator.register_product("prod-1", quantity=5)

        def _unavailable(cls, **kwargs):
            raise RuntimeError("order store unavailable")

        monkeypatch.setattr(Order, "place", classmethod(_unavailable))
        with pytest.raises(RuntimeError):
            place_order([_line("prod-1", 2, 150.0)])
        assert _available("prod-1") == 5

    def test_online_checkout_confirms_payment(self, place_order, payment_gateway):
        orchestrator.register_product("prod-1", quantity=5)
        order = place_order([_line("prod-1", 1, 500.0)], payment_method="online")
        assert order.payment_status == "paid"
        assert order.payment_reference
        assert payment_gateway.calls[0]["amount"] == 500.0

    def test_unconfirmed_online_payment(self, place_order, payment_gateway):
        orchestrator.register_product("prod-1", quantity=5)
        payment_gateway.configure(should_succeed=False)
        with pytest.raises(PreconditionFailed):
            place_order([_line("prod-1", 1, 500.0)], payment_method="online")
        assert _available("prod-1") == 5


class TestTransitions:
    def test_transition_through_pipeline(self, place_order):
        orchestrator.register_product("prod-1", quantity=5)
        order = place_order([_line("prod-1", 1, 100.0)])
        orchestrator.transition_status(str(order.id), "processing", actor="admin")
        order = orchestrator.transition_status(str(order.id), "packed", actor="admin")
        assert order.status == "packed"
        assert order.timeline()[-1].actor == "admin"

    def test_transition_to_cancelled_goes_through_cancellation(self, place_order):
        orchestrator.register_product("prod-1", quantity=5)
        order = place_order([_line("prod-1", 2, 100.0)])
        order = orchestrator.transition_status(str(order.id), "cancelled", actor="admin", note="Fraud check")
        assert order.status == "cancelled"
        assert order.cancellation_reason == "Fraud check"
        assert _available("prod-1") == 5

    def test_unknown_order(self):
        with pytest.raises(NotFound):
            orchestrator.transition_status("missing", "packed")


class TestCancelOrder:
    def test_cancel_confirmed_order_restores_stock(self, place_order):
        orchestrator.register_product("prod-1", quantity=5)
        order = place_order([_line("prod-1", 2, 100.0)])
        assert _available("prod-1") == 3

        order = orchestrator.cancel_order(str(order.id), cancelled_by="cust-001")
        assert order.status == "cancelled"
        assert order.cancellation_reason == "Cancelled by customer"
        assert _available("prod-1") == 5

    def test_shipped_order_cannot_be_cancelled(self, place_order):
        orchestrator.register_product("prod-1", quantity=5)
        order = place_order([_line("prod-1", 2, 100.0)])
        orchestrator.transition_status(str(order.id), "shipped")

        with pytest.raises(PreconditionFailed) as exc:
            orchestrator.cancel_order(str(order.id))
        assert "current status: shipped" in exc.value.messages["status"][0]
        assert _available("prod-1") == 3

    def test_cancel_frees_the_agent(self, place_order, approved_agent, fixed_codes):
        orchestrator.register_product("prod-1", quantity=5)
        order = place_order([_line("prod-1", 1, 100.0)])
        agent = approved_agent()
        orchestrator.assign_delivery(str(order.id), str(agent.id))

        orchestrator.cancel_order(str(order.id))
        agent = current_domain.repository_for(DeliveryAgent).get(str(agent.id))
        assert agent.active_order_ids == []
