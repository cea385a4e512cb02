"""Order aggregate (CQRS) — the core of the fulfilment domain.

The Order owns its item lines, the frozen pricing snapshot, the append-only
status history, the delivery assignment and both one-time codes: the
handover code issued when an agent is assigned, and the delivery OTP that
alone can move the order to DELIVERED.

State Machine:
    PENDING → CONFIRMED → PROCESSING → PACKED → SHIPPED → OUT_FOR_DELIVERY → DELIVERED
    any non-terminal state → FAILED | RETURNED
    {PENDING, CONFIRMED, PROCESSING, PACKED, OUT_FOR_DELIVERY} → CANCELLED
    DELIVERED → RETURNED

SHIPPED is deliberately not cancellable.
"""

import json
from datetime import UTC, datetime, timedelta
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
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
from orderflow.errors import Conflict, InvalidStatus, PreconditionFailed, RateLimited
from orderflow.order import otp
from orderflow.order.events import (
    DeliveryAccepted,
    DeliveryAgentAssigned,
    DeliveryAgentUnassigned,
    DeliveryIssueReported,
    DeliveryOTPIssued,
    DeliveryOTPRejected,
    FeedbackRecorded,
    HandoverCodeVerified,
    ItemReturnStatusChanged,
    OrderCancelled,
    OrderDelivered,
    OrderPlaced,
    OrderStatusChanged,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    PACKED = "packed"
    SHIPPED = "shipped"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"
    FAILED = "failed"


class PaymentMethod(Enum):
    COD = "cod"
    ONLINE = "online"


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


_PIPELINE = [
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.PACKED,
    OrderStatus.SHIPPED,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
]
_RANK = {status: rank for rank, status in enumerate(_PIPELINE)}

_CLOSED_STATUSES = {OrderStatus.CANCELLED, OrderStatus.RETURNED, OrderStatus.FAILED}

_NON_CANCELLABLE_STATUSES = {
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
    OrderStatus.RETURNED,
    OrderStatus.SHIPPED,
}

_ACCEPTABLE_STATUSES = {OrderStatus.PROCESSING, OrderStatus.PACKED, OrderStatus.SHIPPED}

_PRICE_TOLERANCE = 0.01


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@orderflow.value_object(part_of="Order")
class DeliveryAddress:
    name = String(required=True, max_length=100)
    phone = String(required=True, max_length=20)
    street = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    pincode = String(required=True, max_length=10)
    landmark = String(max_length=255)


@orderflow.value_object(part_of="Order")
class OrderPricing:
    """Pricing breakdown frozen at checkout."""

    items_total = Float(required=True, min_value=0.0)
    delivery_charge = Float(default=0.0, min_value=0.0)
    discount = Float(default=0.0, min_value=0.0)
    coupon_discount = Float(default=0.0, min_value=0.0)
    tax = Float(default=0.0, min_value=0.0)
    total_amount = Float(required=True, min_value=0.0)


@orderflow.value_object(part_of="Order")
class DeliveryOTP:
    """Proof-of-delivery code. ``code`` is cleared once expired or exhausted."""

    code = String(max_length=6)
    issued_at = DateTime()
    attempts = Integer(default=0, min_value=0)
    verified = Boolean(default=False)
    verified_at = DateTime()


@orderflow.value_object(part_of="Order")
class HandoverCode:
    """Code issued to the customer when a delivery agent is assigned."""

    code = String(max_length=6)
    issued_at = DateTime()
    verified = Boolean(default=False)
    verified_at = DateTime()


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@orderflow.entity(part_of="Order")
class OrderItem:
    product_id = Identifier(required=True)
    product_name = String(max_length=255)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    subtotal = Float(required=True, min_value=0.0)
    return_status = String(max_length=50)


@orderflow.entity(part_of="Order")
class StatusEntry:
    """One line of the append-only status audit log."""

    sequence = Integer(required=True, min_value=1)
    status = String(required=True, max_length=50)
    note = String(max_length=500)
    actor = String(max_length=100)
    recorded_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@orderflow.aggregate
class Order:
    order_number = String(required=True, max_length=20)
    customer_id = Identifier(required=True)
    items = HasMany(OrderItem)
    delivery_address = ValueObject(DeliveryAddress)
    pricing = ValueObject(OrderPricing)
    payment_method = String(required=True, choices=PaymentMethod)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    payment_reference = String(max_length=255)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    status_history = HasMany(StatusEntry)
    assigned_agent_id = Identifier()
    assigned_at = DateTime()
    handover_code = ValueObject(HandoverCode)
    delivery_otp = ValueObject(DeliveryOTP)
    accepted_at = DateTime()
    delivered_at = DateTime()
    cancellation_reason = String(max_length=500)
    cancelled_at = DateTime()
    cancelled_by = String(max_length=100)
    has_feedback = Boolean(default=False)
    delivery_issues = Text()  # JSON list of {agent_id, issue_type, description, reported_at}
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        order_number: str,
        customer_id: str,
        items_data: list[dict],
        delivery_address: dict,
        pricing: dict,
        payment_method: str,
        payment_confirmed: bool = False,
        payment_reference: str | None = None,
        cod_limit: float | None = None,
    ):
        """Create a confirmed order from a checkout whose stock is already reserved."""
        if not items_data:
            raise ValidationError({"items": ["Order must contain at least one item"]})

        try:
            method = PaymentMethod(payment_method)
        except ValueError:
            raise ValidationError({"payment_method": [f"Unsupported payment method: {payment_method}"]}) from None

        lines = []
        for data in items_data:
            quantity = int(data["quantity"])
            unit_price = float(data["unit_price"])
            lines.append(
                {
                    "product_id": data["product_id"],
                    "product_name": data.get("product_name"),
                    "quantity": quantity,
                    "unit_price": unit_price,
                    "subtotal": round(unit_price * quantity, 2),
                }
            )

        price = OrderPricing(**pricing)
        _validate_pricing(price, lines)

        if method == PaymentMethod.COD:
            if cod_limit is not None and price.total_amount > cod_limit:
                raise ValidationError(
                    {"payment_method": [f"Cash on delivery is not available for orders above {cod_limit}"]}
                )
            payment_status = PaymentStatus.PENDING.value
            confirmation_note = "COD order confirmed"
        else:
            if not payment_confirmed:
                raise PreconditionFailed("payment_status", "Online payment has not been confirmed")
            payment_status = PaymentStatus.PAID.value
            confirmation_note = "Order confirmed"

        now = datetime.now(UTC)
        order = cls(
            order_number=order_number,
            customer_id=customer_id,
            delivery_address=DeliveryAddress(**delivery_address),
            pricing=price,
            payment_method=method.value,
            payment_status=payment_status,
            payment_reference=payment_reference,
            status=OrderStatus.PENDING.value,
            delivery_issues=json.dumps([]),
            created_at=now,
            updated_at=now,
        )
        for line in lines:
            order.add_items(OrderItem(**line))

        order._record_status(OrderStatus.PENDING, now, note="Order placed", actor=customer_id)
        order.status = OrderStatus.CONFIRMED.value
        order._record_status(OrderStatus.CONFIRMED, now, note=confirmation_note)

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order_number,
                customer_id=customer_id,
                items=json.dumps(
                    [
                        {"product_id": ln["product_id"], "quantity": ln["quantity"], "unit_price": ln["unit_price"]}
                        for ln in lines
                    ]
                ),
                payment_method=method.value,
                payment_status=payment_status,
                total_amount=price.total_amount,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def _record_status(
        self, status: OrderStatus, now: datetime, note: str | None = None, actor: str | None = None
    ) -> None:
        self.add_status_history(
            StatusEntry(
                sequence=len(self.status_history or []) + 1,
                status=status.value,
                note=note,
                actor=actor,
                recorded_at=now,
            )
        )
        self.updated_at = now

    def _change_status(
        self, target: OrderStatus, now: datetime, note: str | None = None, actor: str | None = None
    ) -> None:
        previous = self.status
        self.status = target.value
        self._record_status(target, now, note=note, actor=actor)
        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                previous_status=previous,
                new_status=target.value,
                actor=actor,
                note=note,
                changed_at=now,
            )
        )

    @property
    def current_status(self) -> OrderStatus:
        return OrderStatus(self.status)

    def timeline(self) -> list:
        """Status history in insertion order."""
        return sorted(self.status_history or [], key=lambda entry: entry.sequence)

    def item(self, item_id: str):
        found = next((i for i in (self.items or []) if str(i.id) == str(item_id)), None)
        if found is None:
            raise ValidationError({"order_item_id": [f"Item {item_id} not found in order {self.order_number}"]})
        return found

    def stock_lines(self) -> list[tuple[str, int]]:
        return [(str(i.product_id), i.quantity) for i in (self.items or [])]

    def delivery_fee(self, default: float) -> float:
        charge = self.pricing.delivery_charge if self.pricing else None
        return float(charge) if charge else float(default)

    def can_cancel(self) -> bool:
        return self.current_status not in _NON_CANCELLABLE_STATUSES

    def can_return(self, now: datetime | None = None, window_days: int = 7) -> bool:
        if self.current_status != OrderStatus.DELIVERED or self.delivered_at is None:
            return False
        now = now or datetime.now(UTC)
        return now - self.delivered_at <= timedelta(days=window_days)

    def _assert_open(self, action: str) -> None:
        if self.current_status in _CLOSED_STATUSES or self.current_status == OrderStatus.DELIVERED:
            raise PreconditionFailed("status", f"Cannot {action}", self.status)

    # -------------------------------------------------------------------
    # Status transitions
    # -------------------------------------------------------------------
    def transition_status(self, new_status: str, actor: str | None = None, note: str | None = None) -> None:
        """Move the order along its pipeline. DELIVERED and CANCELLED have dedicated paths."""
        try:
            target = OrderStatus(new_status)
        except ValueError:
            raise InvalidStatus(new_status) from None

        current = self.current_status
        if current in _CLOSED_STATUSES:
            raise PreconditionFailed("status", f"Cannot move a closed order to {target.value}", current.value)
        if target == OrderStatus.DELIVERED:
            raise PreconditionFailed(
                "status", "Delivery can only be confirmed through OTP verification", current.value
            )
        if target == OrderStatus.CANCELLED:
            raise PreconditionFailed("status", "Use order cancellation to cancel an order", current.value)

        if current == OrderStatus.DELIVERED:
            if target != OrderStatus.RETURNED:
                raise PreconditionFailed("status", f"Cannot move a delivered order to {target.value}", current.value)
        elif target in _RANK and _RANK[target] <= _RANK[current]:
            raise PreconditionFailed("status", f"Cannot move order back to {target.value}", current.value)

        if target == OrderStatus.OUT_FOR_DELIVERY and not self.assigned_agent_id:
            raise PreconditionFailed(
                "assigned_agent_id", "Order must be assigned before dispatch", current.value
            )

        self._change_status(target, datetime.now(UTC), note=note, actor=actor)

    # -------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------
    def cancel(self, reason: str | None = None, cancelled_by: str | None = None) -> None:
        if not self.can_cancel():
            raise PreconditionFailed("status", "Order cannot be cancelled", self.status)

        now = datetime.now(UTC)
        previous = self.status
        reason = reason or "Cancelled by customer"

        self.status = OrderStatus.CANCELLED.value
        self.cancellation_reason = reason
        self.cancelled_at = now
        self.cancelled_by = cancelled_by
        self.handover_code = None
        self.delivery_otp = None
        self._record_status(OrderStatus.CANCELLED, now, note=reason, actor=cancelled_by)
        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                previous_status=previous,
                reason=reason,
                cancelled_by=cancelled_by,
                items=json.dumps([{"product_id": p, "quantity": q} for p, q in self.stock_lines()]),
                cancelled_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Delivery assignment
    # -------------------------------------------------------------------
    def assign_agent(self, agent_id: str, handover_code: str) -> str | None:
        """Assign (or reassign) a delivery agent. Returns the previous agent, if any."""
        self._assert_open("assign a delivery agent")
        if self.assigned_agent_id and str(self.assigned_agent_id) == str(agent_id):
            raise Conflict("agent_id", f"Order is already assigned to delivery agent {agent_id}")

        now = datetime.now(UTC)
        previous_agent = str(self.assigned_agent_id) if self.assigned_agent_id else None

        self.assigned_agent_id = agent_id
        self.assigned_at = now
        self.accepted_at = None
        self.handover_code = HandoverCode(code=handover_code, issued_at=now, verified=False)
        self.delivery_otp = None

        note = f"Assigned to delivery agent {agent_id}"
        if _RANK.get(self.current_status, 0) < _RANK[OrderStatus.PROCESSING]:
            self._change_status(OrderStatus.PROCESSING, now, note=note)
        else:
            self._record_status(self.current_status, now, note=note)

        self.raise_(
            DeliveryAgentAssigned(
                order_id=str(self.id),
                agent_id=agent_id,
                previous_agent_id=previous_agent,
                status=self.status,
                assigned_at=now,
            )
        )
        return previous_agent

    def unassign_agent(self, actor: str = "admin") -> str:
        """Remove the delivery agent. Returns the agent that was removed."""
        if not self.assigned_agent_id:
            raise PreconditionFailed("assigned_agent_id", "Order is not assigned to a delivery agent", self.status)
        self._assert_open("unassign the delivery agent")

        now = datetime.now(UTC)
        agent_id = str(self.assigned_agent_id)
        self.assigned_agent_id = None
        self.assigned_at = None
        self.accepted_at = None
        self.handover_code = None
        self.delivery_otp = None

        note = f"Unassigned from {agent_id} by {actor}"
        if _RANK[self.current_status] <= _RANK[OrderStatus.PROCESSING]:
            self._change_status(OrderStatus.CONFIRMED, now, note=note, actor=actor)
        else:
            self._record_status(self.current_status, now, note=note, actor=actor)

        self.raise_(
            DeliveryAgentUnassigned(
                order_id=str(self.id),
                agent_id=agent_id,
                status=self.status,
                unassigned_at=now,
            )
        )
        return agent_id

    def _assert_assigned_to(self, agent_id: str) -> None:
        if not self.assigned_agent_id or str(self.assigned_agent_id) != str(agent_id):
            raise PreconditionFailed("agent_id", f"Order is not assigned to delivery agent {agent_id}", self.status)

    def verify_handover_code(self, candidate: str) -> None:
        if not self.assigned_agent_id or self.handover_code is None or not self.handover_code.code:
            raise PreconditionFailed("handover_code", "No handover code has been issued", self.status)
        if self.handover_code.verified:
            raise Conflict("handover_code", "Handover code has already been verified")
        if str(candidate) != self.handover_code.code:
            raise ValidationError({"handover_code": ["Invalid handover code"]})

        now = datetime.now(UTC)
        self.handover_code = HandoverCode(
            code=self.handover_code.code,
            issued_at=self.handover_code.issued_at,
            verified=True,
            verified_at=now,
        )
        self.updated_at = now
        self.raise_(
            HandoverCodeVerified(order_id=str(self.id), agent_id=str(self.assigned_agent_id), verified_at=now)
        )

    def accept_delivery(self, agent_id: str) -> bool:
        """The assigned agent takes the order out for delivery. Returns False when already accepted."""
        self._assert_assigned_to(agent_id)
        if self.accepted_at is not None:
            return False
        if self.current_status not in _ACCEPTABLE_STATUSES and self.current_status != OrderStatus.OUT_FOR_DELIVERY:
            raise PreconditionFailed("status", "Cannot accept order", self.status)

        now = datetime.now(UTC)
        self.accepted_at = now
        if self.current_status == OrderStatus.OUT_FOR_DELIVERY:
            # Reassigned mid-route: the new agent takes over without a status change
            self._record_status(self.current_status, now, note="Accepted by delivery agent", actor=agent_id)
        else:
            self._change_status(OrderStatus.OUT_FOR_DELIVERY, now, note="Accepted by delivery agent", actor=agent_id)
        self.raise_(DeliveryAccepted(order_id=str(self.id), agent_id=agent_id, accepted_at=now))
        return True

    def report_issue(self, agent_id: str, issue_type: str, description: str | None = None) -> None:
        self._assert_assigned_to(agent_id)
        if not issue_type:
            raise ValidationError({"issue_type": ["Issue type is required"]})

        now = datetime.now(UTC)
        issues = json.loads(self.delivery_issues or "[]")
        issues.append(
            {
                "agent_id": agent_id,
                "issue_type": issue_type,
                "description": description or "",
                "reported_at": now.isoformat(),
            }
        )
        self.delivery_issues = json.dumps(issues)
        self.updated_at = now
        self.raise_(
            DeliveryIssueReported(
                order_id=str(self.id),
                agent_id=agent_id,
                issue_type=issue_type,
                description=description or "",
                reported_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Proof-of-delivery OTP
    # -------------------------------------------------------------------
    def _assert_out_for_delivery(self, action: str) -> None:
        if self.current_status != OrderStatus.OUT_FOR_DELIVERY:
            raise PreconditionFailed("status", f"Cannot {action}", self.status)
        if not self.assigned_agent_id:
            raise PreconditionFailed("assigned_agent_id", f"Cannot {action} without a delivery agent", self.status)
        if self.accepted_at is None:
            raise PreconditionFailed(
                "accepted_at", f"Cannot {action} before the delivery agent accepts the order", self.status
            )

    def issue_delivery_otp(self, code: str, now: datetime | None = None, resend: bool = False) -> None:
        """Issue a fresh delivery OTP, replacing any unverified one.

        The cooldown is measured from the previous issue even when that code
        has since been cleared, so exhausting attempts cannot be used to mint
        codes faster.
        """
        self._assert_out_for_delivery("send delivery OTP")
        now = now or datetime.now(UTC)

        previous = self.delivery_otp
        if resend and (previous is None or previous.issued_at is None):
            raise PreconditionFailed("delivery_otp", "No delivery OTP has been issued yet", self.status)
        retry_after = otp.cooldown_remaining(previous.issued_at if previous else None, now)
        if retry_after > 0:
            raise RateLimited(retry_after)

        self.delivery_otp = DeliveryOTP(code=code, issued_at=now, attempts=0, verified=False)
        self._record_status(
            self.current_status, now, note="Delivery OTP resent" if resend else "Delivery OTP sent"
        )
        self.raise_(DeliveryOTPIssued(order_id=str(self.id), issued_at=now, resend=resend))

    def _clear_delivery_otp(self, attempts: int) -> None:
        self.delivery_otp = DeliveryOTP(
            code=None,
            issued_at=self.delivery_otp.issued_at,
            attempts=attempts,
            verified=False,
        )

    def check_delivery_otp(
        self, candidate: str, default_fee: float, now: datetime | None = None
    ) -> otp.OTPOutcome:
        """Check a delivery OTP and record the attempt.

        Returns the outcome instead of raising for wrong, expired or exhausted
        codes, because the attempt counter and the cleared code must be
        persisted even though the caller reports a failure. Verification is
        the only way an order reaches DELIVERED.
        """
        self._assert_out_for_delivery("verify delivery OTP")
        current = self.delivery_otp
        if current is None or not current.code:
            raise PreconditionFailed("delivery_otp", "No active delivery OTP, request a new one", self.status)

        now = now or datetime.now(UTC)
        attempts = current.attempts or 0

        if otp.is_expired(current.issued_at, now):
            self._clear_delivery_otp(attempts)
            return self._reject_otp(otp.OTPOutcome.EXPIRED, attempts, now)

        if attempts >= otp.MAX_OTP_ATTEMPTS:
            self._clear_delivery_otp(attempts)
            return self._reject_otp(otp.OTPOutcome.EXHAUSTED, attempts, now)

        attempts += 1
        if str(candidate) != current.code:
            if attempts >= otp.MAX_OTP_ATTEMPTS:
                self._clear_delivery_otp(attempts)
                return self._reject_otp(otp.OTPOutcome.EXHAUSTED, attempts, now)
            self.delivery_otp = DeliveryOTP(
                code=current.code,
                issued_at=current.issued_at,
                attempts=attempts,
                verified=False,
            )
            return self._reject_otp(otp.OTPOutcome.INVALID, attempts, now)

        self.delivery_otp = DeliveryOTP(
            code=current.code,
            issued_at=current.issued_at,
            attempts=attempts,
            verified=True,
            verified_at=now,
        )
        self.delivered_at = now
        self._change_status(OrderStatus.DELIVERED, now, note="Delivered, OTP verified", actor=self.assigned_agent_id)
        self.raise_(
            OrderDelivered(
                order_id=str(self.id),
                agent_id=self.assigned_agent_id,
                delivery_fee=self.delivery_fee(default_fee),
                delivered_at=now,
            )
        )
        return otp.OTPOutcome.VERIFIED

    def _reject_otp(self, outcome: otp.OTPOutcome, attempts: int, now: datetime) -> otp.OTPOutcome:
        self.updated_at = now
        self.raise_(
            DeliveryOTPRejected(
                order_id=str(self.id),
                outcome=outcome.value,
                attempts=attempts,
                occurred_at=now,
            )
        )
        return outcome

    def delivery_otp_status(self, now: datetime | None = None) -> otp.OTPStatus:
        now = now or datetime.now(UTC)
        current = self.delivery_otp
        issued_at = current.issued_at if current else None
        attempts = (current.attempts or 0) if current else 0
        has_code = bool(current and current.code)
        expired = bool(issued_at and otp.is_expired(issued_at, now))
        expires_in = 0
        if has_code and not expired:
            expires_in = max(0, int((otp.OTP_TTL - (now - issued_at)).total_seconds()))
        retry_after = otp.cooldown_remaining(issued_at, now)

        return otp.OTPStatus(
            has_otp=has_code,
            verified=bool(current and current.verified),
            sent_at=issued_at,
            attempts=attempts,
            attempts_remaining=max(0, otp.MAX_OTP_ATTEMPTS - attempts) if has_code else 0,
            is_expired=expired,
            expires_in=expires_in,
            can_resend=retry_after == 0 and self.current_status == OrderStatus.OUT_FOR_DELIVERY,
            retry_after=retry_after,
        )

    # -------------------------------------------------------------------
    # Return bookkeeping
    # -------------------------------------------------------------------
    def record_item_return_status(self, item_id: str, return_status: str | None) -> None:
        """Mirror a return request's state onto the order item it refers to."""
        item = self.item(item_id)
        now = datetime.now(UTC)
        item.return_status = return_status
        self.updated_at = now
        self.raise_(
            ItemReturnStatusChanged(
                order_id=str(self.id),
                order_item_id=str(item.id),
                return_status=return_status,
                changed_at=now,
            )
        )

    def mark_feedback_given(self) -> None:
        if self.current_status != OrderStatus.DELIVERED:
            raise PreconditionFailed("status", "Feedback can only be left on delivered orders", self.status)
        if self.has_feedback:
            return
        now = datetime.now(UTC)
        self.has_feedback = True
        self.updated_at = now
        self.raise_(FeedbackRecorded(order_id=str(self.id), recorded_at=now))


def _validate_pricing(price: OrderPricing, lines: list[dict]) -> None:
    items_total = round(sum(line["subtotal"] for line in lines), 2)
    if abs(items_total - price.items_total) > _PRICE_TOLERANCE:
        raise ValidationError(
            {"pricing": [f"Items total {price.items_total} does not match item lines ({items_total})"]}
        )

    expected = round(
        price.items_total
        + (price.delivery_charge or 0.0)
        + (price.tax or 0.0)
        - (price.discount or 0.0)
        - (price.coupon_discount or 0.0),
        2,
    )
    if abs(expected - price.total_amount) > _PRICE_TOLERANCE:
        raise ValidationError({"pricing": [f"Total amount {price.total_amount} does not match breakdown ({expected})"]})
