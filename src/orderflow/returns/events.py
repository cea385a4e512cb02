"""Domain events for the ReturnRequest aggregate."""

from protean.fields import Boolean, Date, DateTime, Float, Identifier, Integer, String

from orderflow.domain import orderflow


@orderflow.event(part_of="ReturnRequest")
class ReturnRequested:
    __version__ = 1

    return_id = Identifier(required=True)
    order_id = Identifier(required=True)
    order_item_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity = Integer(required=True)
    reason = String(required=True)
    requested_at = DateTime(required=True)


@orderflow.event(part_of="ReturnRequest")
class ReturnApproved:
    __version__ = 1

    return_id = Identifier(required=True)
    order_id = Identifier(required=True)
    refund_amount = Float(required=True)
    refund_method = String(required=True)
    estimated_refund_date = DateTime(required=True)
    approved_at = DateTime(required=True)


@orderflow.event(part_of="ReturnRequest")
class ReturnRejected:
    __version__ = 1

    return_id = Identifier(required=True)
    order_id = Identifier(required=True)
    reason = String(required=True)
    rejected_at = DateTime(required=True)


@orderflow.event(part_of="ReturnRequest")
class ReturnPickupScheduled:
    __version__ = 1

    return_id = Identifier(required=True)
    pickup_date = Date(required=True)
    pickup_slot = String()
    scheduled_at = DateTime(required=True)


@orderflow.event(part_of="ReturnRequest")
class ReturnStatusAdvanced:
    """A logistics or resolution milestone was reached."""

    __version__ = 1

    return_id = Identifier(required=True)
    order_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    occurred_at = DateTime(required=True)


@orderflow.event(part_of="ReturnRequest")
class ReturnQualityChecked:
    __version__ = 1

    return_id = Identifier(required=True)
    passed = Boolean(required=True)
    notes = String()
    checked_at = DateTime(required=True)


@orderflow.event(part_of="ReturnRequest")
class RefundInitiated:
    __version__ = 1

    return_id = Identifier(required=True)
    order_id = Identifier(required=True)
    amount = Float(required=True)
    method = String(required=True)
    transaction_ref = String(required=True)
    initiated_at = DateTime(required=True)


@orderflow.event(part_of="ReturnRequest")
class ExchangeInitiated:
    __version__ = 1

    return_id = Identifier(required=True)
    order_id = Identifier(required=True)
    exchange_product_id = Identifier(required=True)
    exchange_variant = String()
    initiated_at = DateTime(required=True)


@orderflow.event(part_of="ReturnRequest")
class ReturnCancelled:
    __version__ = 1

    return_id = Identifier(required=True)
    order_id = Identifier(required=True)
    reason = String()
    cancelled_at = DateTime(required=True)
