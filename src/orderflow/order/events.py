"""Order domain events — immutable facts about order lifecycle changes.

Events never carry OTP or handover code values; those stay inside the
aggregate and reach the customer only through the notifier.
"""

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String, Text

from orderflow.domain import orderflow


@orderflow.event(part_of="Order")
class OrderPlaced:
    """A customer checked out and stock was reserved for every line."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    customer_id = Identifier(required=True)
    items = Text(required=True)  # JSON list of {product_id, quantity, unit_price}
    payment_method = String(required=True)
    payment_status = String(required=True)
    total_amount = Float(required=True)
    placed_at = DateTime(required=True)


@orderflow.event(part_of="Order")
class OrderStatusChanged:
    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    actor = String()
    note = String()
    changed_at = DateTime(required=True)


@orderflow.event(part_of="Order")
class OrderCancelled:
    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    reason = String(required=True)
    cancelled_by = String()
    items = Text(required=True)  # JSON list of {product_id, quantity}
    cancelled_at = DateTime(required=True)


@orderflow.event(part_of="Order")
class DeliveryAgentAssigned:
    __version__ = 1

    order_id = Identifier(required=True)
    agent_id = Identifier(required=True)
    previous_agent_id = Identifier()
    status = String(required=True)
    assigned_at = DateTime(required=True)


@orderflow.event(part_of="Order")
class DeliveryAgentUnassigned:
    __version__ = 1

    order_id = Identifier(required=True)
    agent_id = Identifier(required=True)
    status = String(required=True)
    unassigned_at = DateTime(required=True)


@orderflow.event(part_of="Order")
class HandoverCodeVerified:
    """The assigned agent confirmed the handover code at pickup."""

    __version__ = 1

    order_id = Identifier(required=True)
    agent_id = Identifier(required=True)
    verified_at = DateTime(required=True)


@orderflow.event(part_of="Order")
class DeliveryAccepted:
    __version__ = 1

    order_id = Identifier(required=True)
    agent_id = Identifier(required=True)
    accepted_at = DateTime(required=True)


@orderflow.event(part_of="Order")
class DeliveryIssueReported:
    __version__ = 1

    order_id = Identifier(required=True)
    agent_id = Identifier(required=True)
    issue_type = String(required=True)
    description = String()
    reported_at = DateTime(required=True)


@orderflow.event(part_of="Order")
class DeliveryOTPIssued:
    __version__ = 1

    order_id = Identifier(required=True)
    issued_at = DateTime(required=True)
    resend = Boolean(default=False)


@orderflow.event(part_of="Order")
class DeliveryOTPRejected:
    """A delivery OTP check failed (wrong, expired or exhausted code)."""

    __version__ = 1

    order_id = Identifier(required=True)
    outcome = String(required=True)
    attempts = Integer(required=True)
    occurred_at = DateTime(required=True)


@orderflow.event(part_of="Order")
class OrderDelivered:
    """Delivery was proven with a verified OTP."""

    __version__ = 1

    order_id = Identifier(required=True)
    agent_id = Identifier()
    delivery_fee = Float(required=True)
    delivered_at = DateTime(required=True)


@orderflow.event(part_of="Order")
class ItemReturnStatusChanged:
    __version__ = 1

    order_id = Identifier(required=True)
    order_item_id = Identifier(required=True)
    return_status = String()
    changed_at = DateTime(required=True)


@orderflow.event(part_of="Order")
class FeedbackRecorded:
    __version__ = 1

    order_id = Identifier(required=True)
    recorded_at = DateTime(required=True)
