"""Domain events for the DeliveryAgent aggregate."""

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String

from orderflow.domain import orderflow


@orderflow.event(part_of="DeliveryAgent")
class DeliveryAgentRegistered:
    __version__ = 1

    agent_id = Identifier(required=True)
    name = String(required=True)
    phone = String(required=True)
    registered_at = DateTime(required=True)


@orderflow.event(part_of="DeliveryAgent")
class DeliveryAgentApproved:
    __version__ = 1

    agent_id = Identifier(required=True)
    approved_at = DateTime(required=True)


@orderflow.event(part_of="DeliveryAgent")
class DeliveryAgentDeactivated:
    __version__ = 1

    agent_id = Identifier(required=True)
    reason = String()
    deactivated_at = DateTime(required=True)


@orderflow.event(part_of="DeliveryAgent")
class AgentPresenceChanged:
    __version__ = 1

    agent_id = Identifier(required=True)
    is_online = Boolean(required=True)
    is_available = Boolean(required=True)
    changed_at = DateTime(required=True)


@orderflow.event(part_of="DeliveryAgent")
class OrderTaken:
    """An order was added to the agent's active set."""

    __version__ = 1

    agent_id = Identifier(required=True)
    order_id = Identifier(required=True)
    active_order_count = Integer(required=True)
    taken_at = DateTime(required=True)


@orderflow.event(part_of="DeliveryAgent")
class OrderReleased:
    __version__ = 1

    agent_id = Identifier(required=True)
    order_id = Identifier(required=True)
    active_order_count = Integer(required=True)
    released_at = DateTime(required=True)


@orderflow.event(part_of="DeliveryAgent")
class DeliveryCredited:
    """The agent was paid for a completed delivery."""

    __version__ = 1

    agent_id = Identifier(required=True)
    order_id = Identifier(required=True)
    amount = Float(required=True)
    total_earnings = Float(required=True)
    completed_deliveries = Integer(required=True)
    credited_at = DateTime(required=True)


@orderflow.event(part_of="DeliveryAgent")
class DailyEarningsReset:
    __version__ = 1

    agent_id = Identifier(required=True)
    previous_amount = Float(required=True)
    earnings_date = String(required=True)
    reset_at = DateTime(required=True)
