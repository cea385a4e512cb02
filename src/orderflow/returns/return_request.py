"""ReturnRequest aggregate (CQRS) — return, refund and exchange of one order item.

State Machine:
    PENDING → APPROVED | REJECTED
    APPROVED → PICKUP_SCHEDULED → PICKUP_COMPLETED → IN_TRANSIT_TO_WAREHOUSE
        → RECEIVED_AT_WAREHOUSE → QUALITY_CHECK_PASSED | QUALITY_CHECK_FAILED
    QUALITY_CHECK_PASSED → REFUND_INITIATED → REFUND_COMPLETED
    QUALITY_CHECK_PASSED → EXCHANGE_INITIATED → EXCHANGE_DELIVERED
    {PENDING, APPROVED, PICKUP_SCHEDULED} → CANCELLED

Every transition appends an admin note, and every status is mirrored onto
the order item through ``item_return_status``.
"""

from datetime import UTC, date, datetime, timedelta
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import (
    Date,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from orderflow.domain import orderflow
from orderflow.errors import Conflict, PreconditionFailed
from orderflow.returns.events import (
    ExchangeInitiated,
    RefundInitiated,
    ReturnApproved,
    ReturnCancelled,
    ReturnPickupScheduled,
    ReturnQualityChecked,
    ReturnRejected,
    ReturnRequested,
    ReturnStatusAdvanced,
)

RESTOCKING_FEE_RATE = 0.10
REFUND_ESTIMATE = timedelta(days=7)
PICKUP_HORIZON = timedelta(days=7)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class ReturnStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PICKUP_SCHEDULED = "pickup_scheduled"
    PICKUP_COMPLETED = "pickup_completed"
    IN_TRANSIT_TO_WAREHOUSE = "in_transit_to_warehouse"
    RECEIVED_AT_WAREHOUSE = "received_at_warehouse"
    QUALITY_CHECK_PASSED = "quality_check_passed"
    QUALITY_CHECK_FAILED = "quality_check_failed"
    REFUND_INITIATED = "refund_initiated"
    REFUND_COMPLETED = "refund_completed"
    EXCHANGE_INITIATED = "exchange_initiated"
    EXCHANGE_DELIVERED = "exchange_delivered"
    CANCELLED = "cancelled"


class ReturnReason(Enum):
    DAMAGED = "Product damaged/defective"
    WRONG_ITEM = "Wrong item delivered"
    SIZE_FIT = "Size/fit issues"
    NOT_AS_DESCRIBED = "Product not as described"
    QUALITY = "Quality not satisfactory"
    CHANGED_MIND = "Changed my mind"
    BETTER_PRICE = "Found better price elsewhere"
    EXTRA_ITEM = "Received extra item"
    MISSING_PARTS = "Missing parts/accessories"
    DELIVERY_DELAY = "Delivery delay"
    OTHER = "Other"


class RefundMethod(Enum):
    ORIGINAL_PAYMENT = "original_payment"
    STORE_CREDIT = "store_credit"
    BANK_TRANSFER = "bank_transfer"
    WALLET = "wallet"


_VALID_TRANSITIONS = {
    ReturnStatus.PENDING: {ReturnStatus.APPROVED, ReturnStatus.REJECTED, ReturnStatus.CANCELLED},
    ReturnStatus.APPROVED: {ReturnStatus.PICKUP_SCHEDULED, ReturnStatus.CANCELLED},
    ReturnStatus.PICKUP_SCHEDULED: {ReturnStatus.PICKUP_COMPLETED, ReturnStatus.CANCELLED},
    ReturnStatus.PICKUP_COMPLETED: {ReturnStatus.IN_TRANSIT_TO_WAREHOUSE},
    ReturnStatus.IN_TRANSIT_TO_WAREHOUSE: {ReturnStatus.RECEIVED_AT_WAREHOUSE},
    ReturnStatus.RECEIVED_AT_WAREHOUSE: {ReturnStatus.QUALITY_CHECK_PASSED, ReturnStatus.QUALITY_CHECK_FAILED},
    ReturnStatus.QUALITY_CHECK_PASSED: {ReturnStatus.REFUND_INITIATED, ReturnStatus.EXCHANGE_INITIATED},
    ReturnStatus.REFUND_INITIATED: {ReturnStatus.REFUND_COMPLETED},
    ReturnStatus.EXCHANGE_INITIATED: {ReturnStatus.EXCHANGE_DELIVERED},
    ReturnStatus.REJECTED: set(),  # terminal
    ReturnStatus.QUALITY_CHECK_FAILED: set(),  # terminal
    ReturnStatus.REFUND_COMPLETED: set(),  # terminal
    ReturnStatus.EXCHANGE_DELIVERED: set(),  # terminal
    ReturnStatus.CANCELLED: set(),  # terminal
}

TERMINAL_STATUSES = frozenset(status for status, targets in _VALID_TRANSITIONS.items() if not targets)


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@orderflow.value_object(part_of="ReturnRequest")
class PickupAddress:
    name = String(max_length=100)
    phone = String(max_length=20)
    street = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    pincode = String(required=True, max_length=10)
    landmark = String(max_length=255)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@orderflow.entity(part_of="ReturnRequest")
class AdminNote:
    """Append-only audit entry on a return request."""

    sequence = Integer(required=True, min_value=1)
    note = String(required=True, max_length=1000)
    author = String(max_length=100)
    created_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@orderflow.aggregate
class ReturnRequest:
    order_id = Identifier(required=True)
    order_number = String(max_length=20)
    order_item_id = Identifier(required=True)
    product_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    reason = String(required=True, choices=ReturnReason)
    description = Text()
    status = String(choices=ReturnStatus, default=ReturnStatus.PENDING.value)
    pickup_address = ValueObject(PickupAddress)
    pickup_date = Date()
    pickup_slot = String(max_length=50)
    pickup_agent_id = Identifier()
    refund_amount = Float(min_value=0.0)
    refund_method = String(choices=RefundMethod, default=RefundMethod.ORIGINAL_PAYMENT.value)
    refund_reference = String(max_length=255)
    refund_transaction_id = String(max_length=255)
    estimated_refund_date = DateTime()
    exchange_product_id = Identifier()
    exchange_variant = String(max_length=100)
    quality_check_notes = String(max_length=1000)
    rejection_reason = String(max_length=500)
    cancellation_reason = String(max_length=500)
    admin_notes = HasMany(AdminNote)
    requested_at = DateTime()
    approved_at = DateTime()
    rejected_at = DateTime()
    pickup_scheduled_at = DateTime()
    pickup_completed_at = DateTime()
    in_transit_at = DateTime()
    received_at = DateTime()
    quality_checked_at = DateTime()
    refund_initiated_at = DateTime()
    refund_completed_at = DateTime()
    exchange_initiated_at = DateTime()
    exchange_delivered_at = DateTime()
    cancelled_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def initiate(
        cls,
        order,
        order_item_id: str,
        reason: str,
        quantity: int,
        description: str | None = None,
        window_days: int = 7,
        now: datetime | None = None,
    ):
        """Open a return for one line of a delivered order.

        ``order`` is read, never modified; the caller mirrors the new
        status onto the order item separately.
        """
        now = now or datetime.now(UTC)
        if not order.can_return(now=now, window_days=window_days):
            raise PreconditionFailed(
                "order",
                f"Order is not eligible for return (returns are accepted within {window_days} days of delivery)",
                order.status,
            )

        try:
            ReturnReason(reason)
        except ValueError:
            raise ValidationError({"reason": [f"Unknown return reason: {reason}"]}) from None

        item = order.item(order_item_id)
        if quantity < 1 or quantity > item.quantity:
            raise ValidationError({"quantity": [f"Return quantity must be between 1 and {item.quantity}"]})

        address = order.delivery_address
        request = cls(
            order_id=str(order.id),
            order_number=order.order_number,
            order_item_id=str(item.id),
            product_id=str(item.product_id),
            customer_id=str(order.customer_id),
            quantity=quantity,
            unit_price=item.unit_price,
            reason=reason,
            description=description,
            status=ReturnStatus.PENDING.value,
            pickup_address=PickupAddress(
                name=address.name,
                phone=address.phone,
                street=address.street,
                city=address.city,
                state=address.state,
                pincode=address.pincode,
                landmark=address.landmark,
            )
            if address
            else None,
            requested_at=now,
            updated_at=now,
        )
        request.raise_(
            ReturnRequested(
                return_id=str(request.id),
                order_id=str(order.id),
                order_item_id=str(item.id),
                product_id=str(item.product_id),
                quantity=quantity,
                reason=reason,
                requested_at=now,
            )
        )
        return request

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    @property
    def current_status(self) -> ReturnStatus:
        return ReturnStatus(self.status)

    @property
    def is_active(self) -> bool:
        return self.current_status not in TERMINAL_STATUSES

    @property
    def item_return_status(self) -> str | None:
        """Marker written onto the order item for the current status."""
        if self.current_status == ReturnStatus.PENDING:
            return "requested"
        if self.current_status == ReturnStatus.CANCELLED:
            return None
        return self.status

    def notes(self) -> list:
        return sorted(self.admin_notes or [], key=lambda note: note.sequence)

    def _assert_can_transition(self, target: ReturnStatus, action: str) -> None:
        if target not in _VALID_TRANSITIONS[self.current_status]:
            raise PreconditionFailed("status", f"Cannot {action}", self.status)

    def _note(self, note: str, author: str | None, now: datetime) -> None:
        self.add_admin_notes(
            AdminNote(
                sequence=len(self.admin_notes or []) + 1,
                note=note,
                author=author,
                created_at=now,
            )
        )

    def _advance(self, target: ReturnStatus, note: str, author: str | None, now: datetime) -> None:
        previous = self.status
        self.status = target.value
        self.updated_at = now
        self._note(note, author, now)
        self.raise_(
            ReturnStatusAdvanced(
                return_id=str(self.id),
                order_id=str(self.order_id),
                previous_status=previous,
                new_status=target.value,
                occurred_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Review
    # -------------------------------------------------------------------
    def approve(self, refund_method: str | None = None, author: str | None = None) -> None:
        self._assert_can_transition(ReturnStatus.APPROVED, "approve return")
        if refund_method is not None:
            try:
                RefundMethod(refund_method)
            except ValueError:
                raise ValidationError({"refund_method": [f"Unsupported refund method: {refund_method}"]}) from None
            self.refund_method = refund_method

        now = datetime.now(UTC)
        self.refund_amount = round(self.unit_price * self.quantity * (1 - RESTOCKING_FEE_RATE), 2)
        self.estimated_refund_date = now + REFUND_ESTIMATE
        self.approved_at = now
        self._advance(
            ReturnStatus.APPROVED,
            f"Return approved by admin. Refund amount: {self.refund_amount:.2f}",
            author,
            now,
        )
        self.raise_(
            ReturnApproved(
                return_id=str(self.id),
                order_id=str(self.order_id),
                refund_amount=self.refund_amount,
                refund_method=self.refund_method,
                estimated_refund_date=self.estimated_refund_date,
                approved_at=now,
            )
        )

    def reject(self, reason: str, author: str | None = None) -> None:
        self._assert_can_transition(ReturnStatus.REJECTED, "reject return")
        if not reason or not reason.strip():
            raise ValidationError({"reason": ["A rejection reason is required"]})

        now = datetime.now(UTC)
        self.rejection_reason = reason
        self.rejected_at = now
        self._advance(ReturnStatus.REJECTED, f"Return rejected. Reason: {reason}", author, now)
        self.raise_(
            ReturnRejected(
                return_id=str(self.id),
                order_id=str(self.order_id),
                reason=reason,
                rejected_at=now,
            )
        )

    def cancel(self, reason: str | None = None, author: str | None = None) -> None:
        self._assert_can_transition(ReturnStatus.CANCELLED, "cancel return")
        now = datetime.now(UTC)
        self.cancellation_reason = reason
        self.cancelled_at = now
        self._advance(ReturnStatus.CANCELLED, f"Return cancelled. Reason: {reason or 'Not specified'}", author, now)
        self.raise_(
            ReturnCancelled(
                return_id=str(self.id),
                order_id=str(self.order_id),
                reason=reason or "",
                cancelled_at=now,
            )
        )

    def add_admin_note(self, note: str, author: str | None = None) -> None:
        if not note or not note.strip():
            raise ValidationError({"note": ["Note is required"]})
        now = datetime.now(UTC)
        self.updated_at = now
        self._note(note, author, now)

    # -------------------------------------------------------------------
    # Pickup logistics
    # -------------------------------------------------------------------
    def schedule_pickup(self, pickup_date: date, slot: str | None = None, today: date | None = None) -> None:
        self._assert_can_transition(ReturnStatus.PICKUP_SCHEDULED, "schedule pickup")
        now = datetime.now(UTC)
        today = today or now.date()
        if pickup_date < today or pickup_date > today + PICKUP_HORIZON:
            raise ValidationError({"pickup_date": ["Pickup date must be within the next 7 days"]})

        self.pickup_date = pickup_date
        self.pickup_slot = slot
        self.pickup_scheduled_at = now
        self._advance(
            ReturnStatus.PICKUP_SCHEDULED,
            f"Pickup scheduled for {pickup_date.isoformat()}" + (f" ({slot})" if slot else ""),
            None,
            now,
        )
        self.raise_(
            ReturnPickupScheduled(
                return_id=str(self.id),
                pickup_date=pickup_date,
                pickup_slot=slot or "",
                scheduled_at=now,
            )
        )

    def assign_pickup_agent(self, agent_id: str, author: str | None = None) -> None:
        """Assign or replace the pickup agent while the pickup is scheduled."""
        if self.current_status != ReturnStatus.PICKUP_SCHEDULED:
            raise PreconditionFailed("status", "Cannot assign pickup agent", self.status)
        now = datetime.now(UTC)
        self.pickup_agent_id = agent_id
        self.updated_at = now
        self._note("Pickup agent assigned", author, now)

    def mark_pickup_completed(self, notes: str | None = None) -> None:
        self._assert_can_transition(ReturnStatus.PICKUP_COMPLETED, "mark pickup completed")
        if not self.pickup_agent_id:
            raise PreconditionFailed("pickup_agent_id", "A pickup agent must be assigned first", self.status)
        now = datetime.now(UTC)
        self.pickup_completed_at = now
        note = f"Delivery Agent: {notes}" if notes else "Pickup completed"
        self._advance(ReturnStatus.PICKUP_COMPLETED, note, str(self.pickup_agent_id), now)

    def mark_in_transit(self, author: str | None = None) -> None:
        self._assert_can_transition(ReturnStatus.IN_TRANSIT_TO_WAREHOUSE, "mark return in transit")
        now = datetime.now(UTC)
        self.in_transit_at = now
        self._advance(ReturnStatus.IN_TRANSIT_TO_WAREHOUSE, "In transit to warehouse", author, now)

    def mark_received_at_warehouse(self, author: str | None = None) -> None:
        self._assert_can_transition(ReturnStatus.RECEIVED_AT_WAREHOUSE, "mark return received")
        now = datetime.now(UTC)
        self.received_at = now
        self._advance(ReturnStatus.RECEIVED_AT_WAREHOUSE, "Received at warehouse", author, now)

    # -------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------
    def record_quality_check(self, passed: bool, notes: str | None = None, author: str | None = None) -> None:
        target = ReturnStatus.QUALITY_CHECK_PASSED if passed else ReturnStatus.QUALITY_CHECK_FAILED
        self._assert_can_transition(target, "record quality check")
        now = datetime.now(UTC)
        self.quality_check_notes = notes
        self.quality_checked_at = now
        self._advance(target, f"Quality check: {target.value}. Notes: {notes or ''}", author, now)
        self.raise_(
            ReturnQualityChecked(
                return_id=str(self.id),
                passed=passed,
                notes=notes or "",
                checked_at=now,
            )
        )

    def initiate_refund(self, transaction_ref: str, author: str | None = None) -> None:
        self._assert_can_transition(ReturnStatus.REFUND_INITIATED, "initiate refund")
        if not transaction_ref:
            raise ValidationError({"transaction_ref": ["A transaction reference is required"]})
        now = datetime.now(UTC)
        self.refund_reference = transaction_ref
        self.refund_initiated_at = now
        self._advance(ReturnStatus.REFUND_INITIATED, f"Refund initiated. Transaction ID: {transaction_ref}", author, now)
        self.raise_(
            RefundInitiated(
                return_id=str(self.id),
                order_id=str(self.order_id),
                amount=self.refund_amount or 0.0,
                method=self.refund_method,
                transaction_ref=transaction_ref,
                initiated_at=now,
            )
        )

    def assert_refund_unsettled(self) -> None:
        """Money may be moved only for an initiated refund with no transaction on record."""
        if self.current_status != ReturnStatus.REFUND_INITIATED:
            raise PreconditionFailed("status", "Cannot execute refund", self.status)
        if self.refund_transaction_id:
            raise Conflict("refund_transaction_id", f"Refund already executed: {self.refund_transaction_id}")

    def record_refund_transaction(self, transaction_id: str) -> None:
        """Store the executor's transaction id for an initiated refund."""
        self.assert_refund_unsettled()
        now = datetime.now(UTC)
        self.refund_transaction_id = transaction_id
        self.updated_at = now
        self._note(f"Refund executed. Transaction ID: {transaction_id}", None, now)

    def complete_refund(self, author: str | None = None) -> None:
        self._assert_can_transition(ReturnStatus.REFUND_COMPLETED, "complete refund")
        if not self.refund_transaction_id:
            raise PreconditionFailed(
                "refund_transaction_id", "Cannot complete a refund that has not been executed", self.status
            )
        now = datetime.now(UTC)
        self.refund_completed_at = now
        self._advance(ReturnStatus.REFUND_COMPLETED, "Refund completed", author, now)

    def initiate_exchange(self, product_id: str, variant: str | None = None, author: str | None = None) -> None:
        self._assert_can_transition(ReturnStatus.EXCHANGE_INITIATED, "initiate exchange")
        if not product_id:
            raise ValidationError({"exchange_product_id": ["Exchange product is required"]})
        now = datetime.now(UTC)
        self.exchange_product_id = product_id
        self.exchange_variant = variant
        self.exchange_initiated_at = now
        self._advance(ReturnStatus.EXCHANGE_INITIATED, f"Exchange initiated for product: {product_id}", author, now)
        self.raise_(
            ExchangeInitiated(
                return_id=str(self.id),
                order_id=str(self.order_id),
                exchange_product_id=product_id,
                exchange_variant=variant or "",
                initiated_at=now,
            )
        )

    def mark_exchange_delivered(self, author: str | None = None) -> None:
        self._assert_can_transition(ReturnStatus.EXCHANGE_DELIVERED, "mark exchange delivered")
        now = datetime.now(UTC)
        self.exchange_delivered_at = now
        self._advance(ReturnStatus.EXCHANGE_DELIVERED, "Exchange delivered", author, now)
