"""Application tests for returns, refunds and exchanges through the orchestrator."""

from datetime import UTC, datetime, timedelta

import pytest
from protean import current_domain

from orderflow import orchestrator
from orderflow.errors import Conflict, ExternalFailure, NotFound, PreconditionFailed
from orderflow.order.order import Order
from orderflow.returns.return_request import ReturnRequest
from orderflow.stock.stock import ProductStock


def _item_status(order_id):
    order = current_domain.repository_for(Order).get(order_id)
    return order.items[0].return_status


@pytest.fixture()
def delivered_order(out_for_delivery, fixed_codes):
    order, _ = out_for_delivery()
    orchestrator.issue_delivery_otp(str(order.id))
    return orchestrator.verify_delivery_otp(str(order.id), fixed_codes["delivery"])


@pytest.fixture()
def open_return(delivered_order):
    return orchestrator.initiate_return(
        str(delivered_order.id),
        str(delivered_order.items[0].id),
        reason="Product damaged/defective",
        quantity=1,
        description="Cracked lid",
    )


def _to_quality_checked(return_id, agent_id, passed=True):
    orchestrator.approve_return(return_id, admin="admin")
    orchestrator.schedule_return_pickup(return_id, datetime.now(UTC).date() + timedelta(days=1), "10:00-12:00")
    orchestrator.assign_return_pickup_agent(return_id, agent_id)
    orchestrator.mark_return_picked_up(return_id, notes="Collected")
    orchestrator.mark_return_in_transit(return_id)
    orchestrator.mark_return_received(return_id)
    return orchestrator.record_quality_check(return_id, passed=passed, notes="Checked")


class TestInitiateReturn:
    def test_initiate_marks_item_requested(self, open_return, delivered_order):
        assert open_return.status == "pending"
        assert _item_status(str(delivered_order.id)) == "requested"

    def test_duplicate_active_return_conflicts(self, open_return, delivered_order):
        with pytest.raises(Conflict):
            orchestrator.initiate_return(
                str(delivered_order.id),
                str(delivered_order.items[0].id),
                reason="Other",
                quantity=1,
            )

    def test_new_return_allowed_after_rejection(self, open_return, delivered_order):
        orchestrator.reject_return(str(open_return.id), reason="Photos unclear")
        again = orchestrator.initiate_return(
            str(delivered_order.id),
            str(delivered_order.items[0].id),
            reason="Other",
            quantity=1,
        )
        assert again.status == "pending"

    def test_order_not_delivered(self, place_order):
        orchestrator.register_product("prod-1", quantity=5)
        order = place_order([{"product_id": "prod-1", "quantity": 1, "unit_price": 100.0}])
        with pytest.raises(PreconditionFailed):
            orchestrator.initiate_return(str(order.id), str(order.items[0].id), reason="Other", quantity=1)

    def test_unknown_order(self):
        with pytest.raises(NotFound):
            orchestrator.initiate_return("missing", "item", reason="Other", quantity=1)

    def test_unknown_return(self):
        with pytest.raises(NotFound):
            orchestrator.approve_return("missing")


class TestReturnLifecycle:
    def test_every_step_is_mirrored_on_the_item(self, open_return, delivered_order, approved_agent):
        return_id = str(open_return.id)
        order_id = str(delivered_order.id)
        pickup_agent = approved_agent(name="Kiran", phone="+919833333333")

        orchestrator.approve_return(return_id)
        assert _item_status(order_id) == "approved"

        orchestrator.schedule_return_pickup(return_id, datetime.now(UTC).date())
        assert _item_status(order_id) == "pickup_scheduled"

        request = orchestrator.assign_return_pickup_agent(return_id, str(pickup_agent.id))
        assert request.pickup_agent_id == str(pickup_agent.id)

        orchestrator.mark_return_picked_up(return_id)
        orchestrator.mark_return_in_transit(return_id)
        orchestrator.mark_return_received(return_id)
        assert _item_status(order_id) == "received_at_warehouse"

        request = orchestrator.record_quality_check(return_id, passed=False, notes="Signs of use")
        assert request.status == "quality_check_failed"
        assert _item_status(order_id) == "quality_check_failed"

    def test_quality_check_does_not_restock(self, open_return, approved_agent):
        before = current_domain.repository_for(ProductStock).get("prod-1").available_quantity
        agent = approved_agent(name="Kiran", phone="+919833333333")
        _to_quality_checked(str(open_return.id), str(agent.id), passed=True)
        after = current_domain.repository_for(ProductStock).get("prod-1").available_quantity
        assert after == before

    def test_cancel_clears_item_marker(self, open_return, delivered_order):
        request = orchestrator.cancel_return(str(open_return.id), reason="Keeping it")
        assert request.status == "cancelled"
        assert _item_status(str(delivered_order.id)) is None

    def test_admin_note(self, open_return):
        request = orchestrator.add_return_note(str(open_return.id), "Customer called", author="support")
        assert request.notes()[-1].note == "Customer called"


class TestRefund:
    def test_refund_runs_through_executor(self, open_return, delivered_order, approved_agent, refund_executor):
        agent = approved_agent(name="Kiran", phone="+919833333333")
        _to_quality_checked(str(open_return.id), str(agent.id))

        request = orchestrator.initiate_refund(str(open_return.id), transaction_ref="RFD-001")
        assert request.status == "refund_initiated"
        assert request.refund_amount == 180.0
        assert request.refund_transaction_id.startswith("fake_rfd_")
        assert refund_executor.calls[0]["amount"] == 180.0
        assert _item_status(str(delivered_order.id)) == "refund_initiated"

        request = orchestrator.complete_refund(str(open_return.id))
        assert request.status == "refund_completed"
        assert _item_status(str(delivered_order.id)) == "refund_completed"

    def test_failed_execution_leaves_refund_initiated(self, open_return, approved_agent, refund_executor):
        agent = approved_agent(name="Kiran", phone="+919833333333")
        _to_quality_checked(str(open_return.id), str(agent.id))
        refund_executor.configure(should_succeed=False, failure_reason="Bank timeout")

        with pytest.raises(ExternalFailure) as exc:
            orchestrator.initiate_refund(str(open_return.id), transaction_ref="RFD-002")
        assert exc.value.reason == "Bank timeout"

        stored = current_domain.repository_for(ReturnRequest).get(str(open_return.id))
        assert stored.status == "refund_initiated"
        assert stored.refund_transaction_id is None


class TestExchange:
    def test_exchange(self, open_return, delivered_order, approved_agent):
        agent = approved_agent(name="Kiran", phone="+919833333333")
        _to_quality_checked(str(open_return.id), str(agent.id))

        request = orchestrator.initiate_exchange(str(open_return.id), "prod-2", exchange_variant="Blue")
        assert request.status == "exchange_initiated"
        request = orchestrator.mark_exchange_delivered(str(open_return.id))
        assert request.status == "exchange_delivered"
        assert _item_status(str(delivered_order.id)) == "exchange_delivered"


class TestRefundRetry:
    @pytest.fixture()
    def failed_refund(self, open_return, approved_agent, refund_executor):
        agent = approved_agent(name="Kiran", phone="+919833333333")
        _to_quality_checked(str(open_return.id), str(agent.id))
        refund_executor.configure(should_succeed=False, failure_reason="Bank timeout")
        with pytest.raises(ExternalFailure):
            orchestrator.initiate_refund(str(open_return.id), transaction_ref="RFD-003")
        return open_return

    def test_retry_executes_with_original_reference(self, failed_refund, delivered_order, refund_executor):
        refund_executor.configure(should_succeed=True)

        request = orchestrator.retry_refund(str(failed_refund.id))
        assert request.status == "refund_initiated"
        assert request.refund_transaction_id.startswith("fake_rfd_")
        assert [call["reference"] for call in refund_executor.calls] == ["RFD-003", "RFD-003"]

        request = orchestrator.complete_refund(str(failed_refund.id))
        assert request.status == "refund_completed"
        assert _item_status(str(delivered_order.id)) == "refund_completed"

    def test_failed_retry_still_reports_external_failure(self, failed_refund, refund_executor):
        with pytest.raises(ExternalFailure):
            orchestrator.retry_refund(str(failed_refund.id))
        assert len(refund_executor.calls) == 2

    def test_unexecuted_refund_cannot_be_completed(self, failed_refund):
        with pytest.raises(PreconditionFailed):
            orchestrator.complete_refund(str(failed_refund.id))
        stored = current_domain.repository_for(ReturnRequest).get(str(failed_refund.id))
        assert stored.status == "refund_initiated"

    def test_settled_refund_is_not_retried(self, open_return, approved_agent, refund_executor):
        agent = approved_agent(name="Kiran", phone="+919833333333")
        _to_quality_checked(str(open_return.id), str(agent.id))
        orchestrator.initiate_refund(str(open_return.id), transaction_ref="RFD-004")

        with pytest.raises(Conflict):
            orchestrator.retry_refund(str(open_return.id))
        assert len(refund_executor.calls) == 1

    def test_retry_before_initiation(self, open_return):
        with pytest.raises(PreconditionFailed):
            orchestrator.retry_refund(str(open_return.id))
