"""Fulfilment use cases — the only entry points that touch more than one aggregate.

Every handler in this package changes exactly one aggregate. The functions
here sequence those commands under per-key locks so that related aggregates
(an order and its agent, a return and its order item, the stock lines of a
checkout) never drift apart:

- locks are always taken in the order return → order → agent → product;
- locks are acquired *before* the aggregate is loaded, so every command in
  the critical section sees the latest committed state;
- calls to collaborators (payment, SMS, refunds) happen outside the locks,
  after the state they depend on has been persisted.

Each use case returns the reloaded aggregate or raises one of the typed
errors in ``orderflow.errors``.
"""

import json
from dataclasses import dataclass
from datetime import UTC, date, datetime

from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from orderflow.agent.agent import DeliveryAgent
from orderflow.agent.management import (
    ApproveDeliveryAgent,
    DeactivateDeliveryAgent,
    RegisterDeliveryAgent,
    ResetDailyEarnings,
    SetAgentPresence,
)
from orderflow.agent.workload import CreditDelivery, ReleaseOrder, TakeOrder
from orderflow.domain import logger
from orderflow.errors import (
    AttemptsExceeded,
    Expired,
    ExternalFailure,
    InvalidCode,
    NotFound,
    PreconditionFailed,
)
from orderflow.gateway import get_otp_notifier, get_payment_gateway, get_refund_executor
from orderflow.locking import agent_locks, order_lock, product_locks, return_lock, sequence_lock
from orderflow.order import otp
from orderflow.order.assignment import (
    AcceptDelivery,
    AssignDeliveryAgent,
    ReportDeliveryIssue,
    UnassignDeliveryAgent,
    VerifyHandoverCode,
)
from orderflow.order.cancellation import CancelOrder
from orderflow.order.creation import PlaceOrder
from orderflow.order.order import Order, OrderStatus, PaymentMethod
from orderflow.order.sequence import AllocateOrderNumber
from orderflow.order.status import MarkFeedbackGiven, RecordItemReturnStatus, TransitionOrderStatus
from orderflow.order.verification import IssueDeliveryOTP, ResendDeliveryOTP, VerifyDeliveryOTP
from orderflow.returns.initiation import InitiateReturn
from orderflow.returns.pickup import (
    AssignReturnPickupAgent,
    MarkReturnInTransit,
    MarkReturnPickedUp,
    MarkReturnReceived,
    ScheduleReturnPickup,
)
from orderflow.returns.resolution import (
    CompleteRefund,
    InitiateExchange,
    InitiateRefund,
    MarkExchangeDelivered,
    RecordQualityCheck,
    RecordRefundTransaction,
)
from orderflow.returns.return_request import ReturnRequest
from orderflow.returns.review import AddReturnNote, ApproveReturn, CancelReturn, RejectReturn
from orderflow.settings import setting
from orderflow.stock.ledger import get_ledger
from orderflow.stock.management import RegisterProductStock, RestockProduct
from orderflow.stock.stock import ProductStock
from orderflow.utils.logging import log_context


@dataclass(frozen=True)
class OTPDispatch:
    """Result of issuing a code: the updated order and whether the SMS went out."""

    order: Order
    notification_sent: bool
    message_id: str | None = None


def _process(command):
    return current_domain.process(command, asynchronous=False)


def _fetch(aggregate_cls, identifier: str):
    try:
        return current_domain.repository_for(aggregate_cls).get(identifier)
    except ObjectNotFoundError as exc:
        raise NotFound(aggregate_cls.__name__, identifier) from exc


def _send_code(order: Order, code: str, purpose: str) -> tuple[bool, str | None]:
    """Deliver a code to the customer. Failures are logged, never raised."""
    destination = order.delivery_address.phone if order.delivery_address else None
    if not destination:
        logger.warning("otp_not_sent", order_id=str(order.id), purpose=purpose, reason="no phone number")
        return False, None

    result = get_otp_notifier().send_otp(
        destination,
        code,
        {"order_id": str(order.id), "order_number": order.order_number, "purpose": purpose},
    )
    if not result.success:
        logger.warning("otp_not_sent", order_id=str(order.id), purpose=purpose, reason=result.failure_reason)
        return False, None

    logger.info("otp_sent", order_id=str(order.id), purpose=purpose, message_id=result.message_id)
    return True, result.message_id


# ---------------------------------------------------------------------------
# Stock and agents
# ---------------------------------------------------------------------------
def register_product(product_id: str, quantity: int, sku: str | None = None) -> ProductStock:
    with product_locks([product_id]):
        _process(RegisterProductStock(product_id=product_id, quantity=quantity, sku=sku))
    return _fetch(ProductStock, product_id)


def restock_product(product_id: str, quantity: int) -> ProductStock:
    with product_locks([product_id]):
        _process(RestockProduct(product_id=product_id, quantity=quantity))
    return _fetch(ProductStock, product_id)


def register_agent(name: str, phone: str, max_active_orders: int | None = None) -> DeliveryAgent:
    agent_id = _process(RegisterDeliveryAgent(name=name, phone=phone, max_active_orders=max_active_orders))
    return _fetch(DeliveryAgent, agent_id)


def approve_agent(agent_id: str) -> DeliveryAgent:
    with agent_locks(agent_id):
        _fetch(DeliveryAgent, agent_id)
        _process(ApproveDeliveryAgent(agent_id=agent_id))
    return _fetch(DeliveryAgent, agent_id)


def deactivate_agent(agent_id: str, reason: str | None = None) -> DeliveryAgent:
    with agent_locks(agent_id):
        _fetch(DeliveryAgent, agent_id)
        _process(DeactivateDeliveryAgent(agent_id=agent_id, reason=reason))
    return _fetch(DeliveryAgent, agent_id)


def set_agent_presence(agent_id: str, is_online: bool, is_available: bool | None = None) -> DeliveryAgent:
    with agent_locks(agent_id):
        _fetch(DeliveryAgent, agent_id)
        _process(SetAgentPresence(agent_id=agent_id, is_online=is_online, is_available=is_available))
    return _fetch(DeliveryAgent, agent_id)


def reset_daily_earnings(agent_id: str, day: date) -> DeliveryAgent:
    with agent_locks(agent_id):
        _fetch(DeliveryAgent, agent_id)
        _process(ResetDailyEarnings(agent_id=agent_id, day=day.isoformat()))
    return _fetch(DeliveryAgent, agent_id)


# ---------------------------------------------------------------------------
# Order lifecycle
# ---------------------------------------------------------------------------
def _stock_lines(items: list[dict]) -> list[tuple[str, int]]:
    """Check every checkout line is complete before any stock is touched."""
    if not items:
        raise ValidationError({"items": ["Order must contain at least one item"]})

    lines = []
    for index, line in enumerate(items):
        if not isinstance(line, dict):
            raise ValidationError({"items": [f"Line {index} must be a mapping"]})
        missing = [name for name in ("product_id", "quantity", "unit_price") if line.get(name) in (None, "")]
        if missing:
            raise ValidationError({"items": [f"Line {index} is missing {', '.join(missing)}"]})
        try:
            quantity = int(line["quantity"])
            unit_price = float(line["unit_price"])
        except (TypeError, ValueError):
            raise ValidationError({"items": [f"Line {index} has a non-numeric quantity or unit price"]}) from None
        if quantity < 1 or unit_price < 0:
            raise ValidationError({"items": [f"Line {index} needs a positive quantity and a non-negative price"]})
        lines.append((str(line["product_id"]), quantity))
    return lines


def create_order(
    customer_id: str,
    items: list[dict],
    delivery_address: dict,
    pricing: dict,
    payment_method: str,
    payment_reference: str | None = None,
) -> Order:
    """Check out: confirm payment, number the order, reserve stock, place it.

    Lines are checked before stock is reserved, and the reservation is
    released again if placement fails for any reason.
    """
    lines = _stock_lines(items)

    payment_confirmed = False
    if payment_method == PaymentMethod.ONLINE.value:
        confirmation = get_payment_gateway().confirm(
            {
                "customer_id": customer_id,
                "amount": pricing.get("total_amount"),
                "payment_reference": payment_reference,
            }
        )
        if not confirmation.paid:
            raise PreconditionFailed(
                "payment_status", f"Online payment has not been confirmed: {confirmation.failure_reason}"
            )
        payment_confirmed = True
        payment_reference = confirmation.reference

    day = datetime.now(UTC).date().isoformat()
    with sequence_lock(day):
        order_number = _process(AllocateOrderNumber(date=day))

    ledger = get_ledger()
    token = ledger.reserve(lines)

    try:
        order_id = _process(
            PlaceOrder(
                order_number=order_number,
                customer_id=customer_id,
                items=json.dumps(items),
                delivery_address=json.dumps(delivery_address),
                payment_method=payment_method,
                payment_confirmed=payment_confirmed,
                payment_reference=payment_reference,
                **pricing,
            )
        )
    except Exception:
        ledger.release(token.lines, reason="Order placement failed")
        logger.info("order_placement_rejected", order_number=order_number, reservation_id=token.reservation_id)
        raise

    logger.info("order_created", order_id=order_id, order_number=order_number, customer_id=customer_id)
    return _fetch(Order, order_id)


def cancel_order(order_id: str, reason: str | None = None, cancelled_by: str | None = None) -> Order:
    """Cancel an order, return its stock and free its delivery agent."""
    with log_context(order_id=order_id), order_lock(order_id):
        order = _fetch(Order, order_id)
        _process(CancelOrder(order_id=order_id, reason=reason, cancelled_by=cancelled_by))

        get_ledger().release(order.stock_lines(), reason=f"Order {order.order_number} cancelled")
        if order.assigned_agent_id:
            _release_agent(str(order.assigned_agent_id), order_id)

        logger.info("order_cancelled", previous_status=order.status, cancelled_by=cancelled_by)
    return _fetch(Order, order_id)


def transition_status(order_id: str, new_status: str, actor: str | None = None, note: str | None = None) -> Order:
    """Advance an order. Cancellation is routed through ``cancel_order``."""
    if new_status == OrderStatus.CANCELLED.value:
        return cancel_order(order_id, reason=note, cancelled_by=actor)

    with log_context(order_id=order_id), order_lock(order_id):
        order = _fetch(Order, order_id)
        _process(TransitionOrderStatus(order_id=order_id, new_status=new_status, actor=actor, note=note))

        if new_status in (OrderStatus.FAILED.value, OrderStatus.RETURNED.value) and order.assigned_agent_id:
            _release_agent(str(order.assigned_agent_id), order_id)

        logger.info("order_status_changed", previous_status=order.status, new_status=new_status, actor=actor)
    return _fetch(Order, order_id)


def mark_feedback_given(order_id: str) -> Order:
    with log_context(order_id=order_id), order_lock(order_id):
        _fetch(Order, order_id)
        _process(MarkFeedbackGiven(order_id=order_id))
    return _fetch(Order, order_id)


def _release_agent(agent_id: str, order_id: str) -> None:
    with agent_locks(agent_id):
        try:
            current_domain.repository_for(DeliveryAgent).get(agent_id)
        except ObjectNotFoundError:
            logger.warning("agent_missing_on_release", agent_id=agent_id)
            return
        _process(ReleaseOrder(agent_id=agent_id, order_id=order_id))


# ---------------------------------------------------------------------------
# Delivery assignment
# ---------------------------------------------------------------------------
def assign_delivery(order_id: str, agent_id: str) -> Order:
    """Assign (or reassign) an order and send the handover code to the customer."""
    with log_context(order_id=order_id, agent_id=agent_id), order_lock(order_id):
        order = _fetch(Order, order_id)
        previous_agent = str(order.assigned_agent_id) if order.assigned_agent_id else None

        with agent_locks(agent_id, previous_agent):
            agent = _fetch(DeliveryAgent, agent_id)
            agent.ensure_can_take(order_id, capacity=setting("AGENT_CAPACITY"))

            _process(AssignDeliveryAgent(order_id=order_id, agent_id=agent_id))
            if previous_agent:
                _process(ReleaseOrder(agent_id=previous_agent, order_id=order_id))
            _process(TakeOrder(agent_id=agent_id, order_id=order_id))

        order = _fetch(Order, order_id)
        logger.info("delivery_assigned", previous_agent_id=previous_agent, status=order.status)

    _send_code(order, order.handover_code.code, purpose="handover")
    return order


def unassign_delivery(order_id: str, actor: str = "admin") -> Order:
    with log_context(order_id=order_id), order_lock(order_id):
        _fetch(Order, order_id)
        agent_id = _process(UnassignDeliveryAgent(order_id=order_id, actor=actor))
        _release_agent(agent_id, order_id)
        logger.info("delivery_unassigned", agent_id=agent_id, actor=actor)
    return _fetch(Order, order_id)


def verify_handover_code(order_id: str, code: str) -> Order:
    with log_context(order_id=order_id), order_lock(order_id):
        _fetch(Order, order_id)
        _process(VerifyHandoverCode(order_id=order_id, code=code))
    return _fetch(Order, order_id)


def accept_delivery(order_id: str, agent_id: str) -> Order:
    with log_context(order_id=order_id, agent_id=agent_id), order_lock(order_id):
        _fetch(Order, order_id)
        accepted = _process(AcceptDelivery(order_id=order_id, agent_id=agent_id))
        if accepted:
            logger.info("delivery_accepted")
    return _fetch(Order, order_id)


def report_delivery_issue(order_id: str, agent_id: str, issue_type: str, description: str | None = None) -> Order:
    with log_context(order_id=order_id, agent_id=agent_id), order_lock(order_id):
        _fetch(Order, order_id)
        _process(
            ReportDeliveryIssue(
                order_id=order_id,
                agent_id=agent_id,
                issue_type=issue_type,
                description=description,
            )
        )
        logger.warning("delivery_issue_reported", issue_type=issue_type)
    return _fetch(Order, order_id)


# ---------------------------------------------------------------------------
# Proof-of-delivery OTP
# ---------------------------------------------------------------------------
def issue_delivery_otp(order_id: str) -> OTPDispatch:
    return _dispatch_otp(order_id, IssueDeliveryOTP(order_id=order_id))


def resend_delivery_otp(order_id: str) -> OTPDispatch:
    return _dispatch_otp(order_id, ResendDeliveryOTP(order_id=order_id))


def _dispatch_otp(order_id: str, command) -> OTPDispatch:
    with log_context(order_id=order_id), order_lock(order_id):
        _fetch(Order, order_id)
        code = _process(command)
        order = _fetch(Order, order_id)

    sent, message_id = _send_code(order, code, purpose="delivery")
    return OTPDispatch(order=order, notification_sent=sent, message_id=message_id)


def delivery_otp_status(order_id: str, now: datetime | None = None) -> otp.OTPStatus:
    return _fetch(Order, order_id).delivery_otp_status(now)


def verify_delivery_otp(order_id: str, code: str) -> Order:
    """Check the customer's OTP; on success the order is delivered and the agent paid once."""
    with log_context(order_id=order_id), order_lock(order_id):
        _fetch(Order, order_id)
        outcome = otp.OTPOutcome(_process(VerifyDeliveryOTP(order_id=order_id, code=code)))
        order = _fetch(Order, order_id)

        if outcome == otp.OTPOutcome.VERIFIED and order.assigned_agent_id:
            agent_id = str(order.assigned_agent_id)
            with agent_locks(agent_id):
                _process(
                    CreditDelivery(
                        agent_id=agent_id,
                        order_id=order_id,
                        amount=order.delivery_fee(setting("DEFAULT_DELIVERY_FEE")),
                    )
                )
        logger.info("delivery_otp_checked", outcome=outcome.value)

    if outcome == otp.OTPOutcome.EXPIRED:
        raise Expired()
    if outcome == otp.OTPOutcome.EXHAUSTED:
        raise AttemptsExceeded()
    if outcome == otp.OTPOutcome.INVALID:
        attempts = order.delivery_otp.attempts if order.delivery_otp else 0
        raise InvalidCode(max(0, otp.MAX_OTP_ATTEMPTS - attempts))
    return order


# ---------------------------------------------------------------------------
# Returns
# ---------------------------------------------------------------------------
def initiate_return(
    order_id: str,
    order_item_id: str,
    reason: str,
    quantity: int,
    description: str | None = None,
) -> ReturnRequest:
    with log_context(order_id=order_id), order_lock(order_id):
        _fetch(Order, order_id)
        return_id = _process(
            InitiateReturn(
                order_id=order_id,
                order_item_id=order_item_id,
                reason=reason,
                quantity=quantity,
                description=description,
            )
        )
        _process(RecordItemReturnStatus(order_id=order_id, order_item_id=order_item_id, return_status="requested"))
        logger.info("return_initiated", return_id=return_id, order_item_id=order_item_id, reason=reason)
    return _fetch(ReturnRequest, return_id)


def _advance_return(return_id: str, command) -> ReturnRequest:
    """Apply one command to a return and mirror its status onto the order item."""
    with return_lock(return_id):
        request = _fetch(ReturnRequest, return_id)
        order_id = str(request.order_id)
        with log_context(order_id=order_id, return_id=return_id), order_lock(order_id):
            _process(command)
            request = _fetch(ReturnRequest, return_id)

            item = _fetch(Order, order_id).item(request.order_item_id)
            if item.return_status != request.item_return_status:
                _process(
                    RecordItemReturnStatus(
                        order_id=order_id,
                        order_item_id=str(request.order_item_id),
                        return_status=request.item_return_status,
                    )
                )
            logger.info("return_updated", status=request.status)
    return request


def approve_return(return_id: str, refund_method: str | None = None, admin: str | None = None) -> ReturnRequest:
    return _advance_return(return_id, ApproveReturn(return_id=return_id, refund_method=refund_method, admin=admin))


def reject_return(return_id: str, reason: str, admin: str | None = None) -> ReturnRequest:
    return _advance_return(return_id, RejectReturn(return_id=return_id, reason=reason, admin=admin))


def cancel_return(return_id: str, reason: str | None = None, cancelled_by: str | None = None) -> ReturnRequest:
    return _advance_return(return_id, CancelReturn(return_id=return_id, reason=reason, cancelled_by=cancelled_by))


def add_return_note(return_id: str, note: str, author: str | None = None) -> ReturnRequest:
    with return_lock(return_id):
        _fetch(ReturnRequest, return_id)
        _process(AddReturnNote(return_id=return_id, note=note, author=author))
    return _fetch(ReturnRequest, return_id)


def schedule_return_pickup(return_id: str, pickup_date: date, pickup_slot: str | None = None) -> ReturnRequest:
    return _advance_return(
        return_id,
        ScheduleReturnPickup(return_id=return_id, pickup_date=pickup_date, pickup_slot=pickup_slot),
    )


def assign_return_pickup_agent(return_id: str, agent_id: str, admin: str | None = None) -> ReturnRequest:
    with return_lock(return_id):
        _fetch(ReturnRequest, return_id)
        _fetch(DeliveryAgent, agent_id)
        _process(AssignReturnPickupAgent(return_id=return_id, agent_id=agent_id, admin=admin))
    return _fetch(ReturnRequest, return_id)


def mark_return_picked_up(return_id: str, notes: str | None = None) -> ReturnRequest:
    return _advance_return(return_id, MarkReturnPickedUp(return_id=return_id, notes=notes))


def mark_return_in_transit(return_id: str, actor: str | None = None) -> ReturnRequest:
    return _advance_return(return_id, MarkReturnInTransit(return_id=return_id, actor=actor))


def mark_return_received(return_id: str, actor: str | None = None) -> ReturnRequest:
    return _advance_return(return_id, MarkReturnReceived(return_id=return_id, actor=actor))


def record_quality_check(
    return_id: str, passed: bool, notes: str | None = None, inspector: str | None = None
) -> ReturnRequest:
    return _advance_return(
        return_id,
        RecordQualityCheck(return_id=return_id, passed=passed, notes=notes, inspector=inspector),
    )


def initiate_refund(return_id: str, transaction_ref: str, admin: str | None = None) -> ReturnRequest:
    """Record the refund, then ask the executor to move the money.

    A failed execution leaves the return in ``refund_initiated``, is
    reported as ``ExternalFailure`` and can be re-run with ``retry_refund``.
    """
    request = _advance_return(
        return_id,
        InitiateRefund(return_id=return_id, transaction_ref=transaction_ref, admin=admin),
    )
    return _execute_refund(request)


def retry_refund(return_id: str) -> ReturnRequest:
    """Run the executor again for an initiated refund that has not moved money yet.

    The original transaction reference is reused so the provider can
    de-duplicate the request.
    """
    with log_context(return_id=return_id), return_lock(return_id):
        request = _fetch(ReturnRequest, return_id)
        request.assert_refund_unsettled()
    return _execute_refund(request)


def _execute_refund(request: ReturnRequest) -> ReturnRequest:
    return_id = str(request.id)
    execution = get_refund_executor().execute(
        amount=request.refund_amount or 0.0,
        method=request.refund_method,
        reference=request.refund_reference,
    )
    if not execution.success:
        logger.warning("refund_execution_failed", return_id=return_id, reason=execution.failure_reason)
        raise ExternalFailure("refund", execution.failure_reason or "Refund execution failed")

    with return_lock(return_id):
        _process(RecordRefundTransaction(return_id=return_id, transaction_id=execution.transaction_id))
    logger.info("refund_executed", return_id=return_id, transaction_id=execution.transaction_id)
    return _fetch(ReturnRequest, return_id)


def complete_refund(return_id: str, admin: str | None = None) -> ReturnRequest:
    return _advance_return(return_id, CompleteRefund(return_id=return_id, admin=admin))


def initiate_exchange(
    return_id: str, exchange_product_id: str, exchange_variant: str | None = None, admin: str | None = None
) -> ReturnRequest:
    return _advance_return(
        return_id,
        InitiateExchange(
            return_id=return_id,
            exchange_product_id=exchange_product_id,
            exchange_variant=exchange_variant,
            admin=admin,
        ),
    )


def mark_exchange_delivered(return_id: str, actor: str | None = None) -> ReturnRequest:
    return _advance_return(return_id, MarkExchangeDelivered(return_id=return_id, actor=actor))
