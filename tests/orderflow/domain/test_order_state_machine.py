"""Tests for the Order aggregate — placement, status pipeline, cancellation, assignment."""

from datetime import UTC, datetime, timedelta

import pytest
from protean.exceptions import ValidationError

from orderflow.errors import Conflict, InvalidStatus, PreconditionFailed
from orderflow.order.events import OrderCancelled, OrderPlaced, OrderStatusChanged
from orderflow.order.order import Order, OrderStatus, PaymentStatus

ADDRESS = {
    "name": "Asha Rao",
    "phone": "+919800000001",
    "street": "12 MG Road",
    "city": "Bengaluru",
    "pincode": "560001",
}


def _place(payment_method="cod", total=400.0, payment_confirmed=False, cod_limit=10000):
    return Order.place(
        order_number="ORD-20260101-0001",
        customer_id="cust-001",
        items_data=[{"product_id": "prod-1", "product_name": "Kettle", "quantity": 2, "unit_price": 200.0}],
        delivery_address=ADDRESS,
        pricing={"items_total": 400.0, "total_amount": total, "delivery_charge": total - 400.0},
        payment_method=payment_method,
        payment_confirmed=payment_confirmed,
        cod_limit=cod_limit,
    )


def _statuses(order):
    return [entry.status for entry in order.timeline()]


class TestPlacement:
    def test_cod_order_is_confirmed_with_pending_payment(self):
        order = _place()
        assert order.status == OrderStatus.CONFIRMED.value
        assert order.payment_status == PaymentStatus.PENDING.value
        assert _statuses(order) == ["pending", "confirmed"]
        assert order.timeline()[1].note == "COD order confirmed"

    def test_online_order_requires_confirmed_payment(self):
        with pytest.raises(PreconditionFailed):
            _place(payment_method="online")

    def test_online_order_is_paid(self):
        order = _place(payment_method="online", payment_confirmed=True)
        assert order.payment_status == PaymentStatus.PAID.value
        assert order.timeline()[1].note == "Order confirmed"

    def test_cod_above_limit_rejected(self):
        with pytest.raises(ValidationError) as exc:
            _place(cod_limit=300)
        assert "payment_method" in exc.value.messages

    def test_unknown_payment_method(self):
        with pytest.raises(ValidationError):
            _place(payment_method="barter")

    def test_mismatched_total_rejected(self):
        with pytest.raises(ValidationError) as exc:
            Order.place(
                order_number="ORD-20260101-0002",
                customer_id="cust-001",
                items_data=[{"product_id": "prod-1", "quantity": 1, "unit_price": 100.0}],
                delivery_address=ADDRESS,
                pricing={"items_total": 100.0, "total_amount": 90.0},
                payment_method="cod",
            )
        assert "pricing" in exc.value.messages

    def test_empty_order_rejected(self):
        with pytest.raises(ValidationError):
            Order.place(
                order_number="ORD-20260101-0003",
                customer_id="cust-001",
                items_data=[],
                delivery_address=ADDRESS,
                pricing={"items_total": 0.0, "total_amount": 0.0},
                payment_method="cod",
            )

    def test_placed_event_raised(self):
        order = _place()
        assert isinstance(order._events[0], OrderPlaced)
        assert order.items[0].subtotal == 400.0


class TestTransitions:
    def test_forward_move_appends_history(self):
        order = _place()
        order.transition_status("processing", actor="admin")
        order.transition_status("packed", actor="admin", note="Boxed")
        assert order.status == "packed"
        assert _statuses(order) == ["pending", "confirmed", "processing", "packed"]
        assert order.timeline()[-1].note == "Boxed"
        assert isinstance(order._events[-1], OrderStatusChanged)

    def test_skipping_ahead_is_allowed(self):
        order = _place()
        order.transition_status("shipped")
        assert order.status == "shipped"

    def test_unknown_status(self):
        order = _place()
        with pytest.raises(InvalidStatus):
            order.transition_status("teleported")

    def test_regression_rejected(self):
        order = _place()
        order.transition_status("packed")
        with pytest.raises(PreconditionFailed) as exc:
            order.transition_status("processing")
        assert exc.value.current_status == "packed"

    def test_out_for_delivery_requires_agent(self):
        order = _place()
        with pytest.raises(PreconditionFailed) as exc:
            order.transition_status("out_for_delivery")
        assert "must be assigned before dispatch" in exc.value.messages["assigned_agent_id"][0]

    def test_delivered_only_through_otp(self):
        order = _place()
        with pytest.raises(PreconditionFailed):
            order.transition_status("delivered")

    def test_failed_is_terminal(self):
        order = _place()
        order.transition_status("failed")
        with pytest.raises(PreconditionFailed):
            order.transition_status("packed")

    def test_history_grows_by_one_per_transition(self):
        order = _place()
        before = len(order.status_history)
        order.transition_status("processing")
        assert len(order.status_history) == before + 1


class TestCancellation:
    def test_cancel_confirmed_order(self):
        order = _place()
        order.cancel(cancelled_by="cust-001")
        assert order.status == "cancelled"
        assert order.cancellation_reason == "Cancelled by customer"
        assert order.cancelled_at is not None
        event = order._events[-1]
        assert isinstance(event, OrderCancelled)

    def test_shipped_order_cannot_be_cancelled(self):
        order = _place()
        order.transition_status("shipped")
        assert order.can_cancel() is False
        with pytest.raises(PreconditionFailed) as exc:
            order.cancel()
        assert "current status: shipped" in exc.value.messages["status"][0]

    def test_cannot_cancel_twice(self):
        order = _place()
        order.cancel()
        with pytest.raises(PreconditionFailed):
            order.cancel()


class TestAssignment:
    def test_assign_moves_to_processing(self):
        order = _place()
        previous = order.assign_agent("agent-1", handover_code="123456")
        assert previous is None
        assert order.status == "processing"
        assert order.handover_code.code == "123456"
        assert order.timeline()[-1].note == "Assigned to delivery agent agent-1"

    def test_assign_later_status_does_not_regress(self):
        order = _place()
        order.transition_status("packed")
        order.assign_agent("agent-1", handover_code="123456")
        assert order.status == "packed"

    def test_assign_same_agent_conflicts(self):
        order = _place()
        order.assign_agent("agent-1", handover_code="123456")
        with pytest.raises(Conflict):
            order.assign_agent("agent-1", handover_code="654321")

    def test_reassign_returns_previous_agent(self):
        order = _place()
        order.assign_agent("agent-1", handover_code="123456")
        assert order.assign_agent("agent-2", handover_code="654321") == "agent-1"

    def test_unassign_regresses_to_confirmed(self):
        order = _place()
        order.assign_agent("agent-1", handover_code="123456")
        assert order.unassign_agent() == "agent-1"
        assert order.status == "confirmed"
        assert order.assigned_agent_id is None
        assert order.handover_code is None
        assert order.timeline()[-1].note == "Unassigned from agent-1 by admin"

    def test_unassign_after_packing_keeps_status(self):
        order = _place()
        order.assign_agent("agent-1", handover_code="123456")
        order.transition_status("packed")
        order.unassign_agent()
        assert order.status == "packed"

    def test_unassign_without_agent(self):
        order = _place()
        with pytest.raises(PreconditionFailed):
            order.unassign_agent()

    def test_handover_code_verification(self):
        order = _place()
        order.assign_agent("agent-1", handover_code="123456")
        with pytest.raises(ValidationError):
            order.verify_handover_code("000000")
        order.verify_handover_code("123456")
        assert order.handover_code.verified is True

    def test_accept_is_idempotent(self):
        order = _place()
        order.assign_agent("agent-1", handover_code="123456")
        assert order.accept_delivery("agent-1") is True
        assert order.status == "out_for_delivery"
        assert order.accept_delivery("agent-1") is False

    def test_reassignment_mid_route_needs_new_acceptance(self):
        order = _place()
        order.assign_agent("agent-1", handover_code="123456")
        order.accept_delivery("agent-1")

        order.assign_agent("agent-2", handover_code="654321")
        assert order.accepted_at is None
        assert order.status == "out_for_delivery"
        with pytest.raises(PreconditionFailed):
            order.issue_delivery_otp("4821")

        assert order.accept_delivery("agent-2") is True
        assert order.accepted_at is not None
        assert order.status == "out_for_delivery"
        assert order.timeline()[-1].note == "Accepted by delivery agent"

    def test_only_assigned_agent_can_accept(self):
        order = _place()
        order.assign_agent("agent-1", handover_code="123456")
        with pytest.raises(PreconditionFailed):
            order.accept_delivery("agent-2")

    def test_report_issue(self):
        order = _place()
        order.assign_agent("agent-1", handover_code="123456")
        order.report_issue("agent-1", "customer_unreachable", "No answer")
        assert "customer_unreachable" in order.delivery_issues


class TestReturnEligibility:
    def test_not_returnable_before_delivery(self):
        assert _place().can_return() is False

    def test_window_measured_from_delivery(self):
        order = _place()
        order.status = OrderStatus.DELIVERED.value
        order.delivered_at = datetime.now(UTC) - timedelta(days=6)
        assert order.can_return() is True
        assert order.can_return(now=datetime.now(UTC) + timedelta(days=2)) is False
