"""DeliveryAgent aggregate — availability, active orders and earnings.

The agent holds only an index of order ids it is working on; it never
points at Order objects. Earnings are credited at most once per order, which
``credited_orders`` enforces.
"""

import json
from datetime import UTC, date, datetime

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Integer, String, Text

from orderflow.agent.events import (
    AgentPresenceChanged,
    DailyEarningsReset,
    DeliveryAgentApproved,
    DeliveryAgentDeactivated,
    DeliveryAgentRegistered,
    DeliveryCredited,
    OrderReleased,
    OrderTaken,
)
from orderflow.domain import orderflow
from orderflow.errors import AgentAtCapacity, AgentUnavailable


@orderflow.aggregate
class DeliveryAgent:
    name = String(required=True, max_length=100)
    phone = String(required=True, max_length=20)
    is_online = Boolean(default=False)
    is_available = Boolean(default=True)
    is_active = Boolean(default=True)
    is_approved = Boolean(default=False)
    active_orders = Text()  # JSON list of order ids
    max_active_orders = Integer(min_value=1)
    completed_deliveries = Integer(default=0, min_value=0)
    total_earnings = Float(default=0.0, min_value=0.0)
    today_earnings = Float(default=0.0, min_value=0.0)
    earnings_date = String(max_length=10)  # YYYY-MM-DD the today_earnings figure belongs to
    credited_orders = Text()  # JSON list of order ids already paid out
    registered_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def active_orders_cannot_exceed_capacity(self):
        if self.max_active_orders and len(self.active_order_ids) > self.max_active_orders:
            raise ValidationError(
                {"active_orders": [f"An agent cannot hold more than {self.max_active_orders} active orders"]}
            )

    @classmethod
    def register(cls, name: str, phone: str, max_active_orders: int | None = None):
        now = datetime.now(UTC)
        agent = cls(
            name=name,
            phone=phone,
            max_active_orders=max_active_orders,
            active_orders=json.dumps([]),
            credited_orders=json.dumps([]),
            earnings_date=now.date().isoformat(),
            registered_at=now,
            updated_at=now,
        )
        agent.raise_(
            DeliveryAgentRegistered(
                agent_id=str(agent.id),
                name=name,
                phone=phone,
                registered_at=now,
            )
        )
        return agent

    @property
    def active_order_ids(self) -> list[str]:
        return json.loads(self.active_orders or "[]")

    @property
    def credited_order_ids(self) -> list[str]:
        return json.loads(self.credited_orders or "[]")

    def holds(self, order_id: str) -> bool:
        return str(order_id) in self.active_order_ids

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def approve(self) -> None:
        if self.is_approved:
            return
        now = datetime.now(UTC)
        self.is_approved = True
        self.updated_at = now
        self.raise_(DeliveryAgentApproved(agent_id=str(self.id), approved_at=now))

    def deactivate(self, reason: str | None = None) -> None:
        if self.active_order_ids:
            raise ValidationError(
                {"active_orders": [f"Agent still holds {len(self.active_order_ids)} active orders"]}
            )
        now = datetime.now(UTC)
        self.is_active = False
        self.is_online = False
        self.is_available = False
        self.updated_at = now
        self.raise_(DeliveryAgentDeactivated(agent_id=str(self.id), reason=reason or "", deactivated_at=now))

    def set_presence(self, is_online: bool, is_available: bool | None = None) -> None:
        if is_online and not self.is_active:
            raise AgentUnavailable(str(self.id), "agent is deactivated")
        now = datetime.now(UTC)
        self.is_online = is_online
        if is_available is not None:
            self.is_available = is_available
        self.updated_at = now
        self.raise_(
            AgentPresenceChanged(
                agent_id=str(self.id),
                is_online=bool(self.is_online),
                is_available=bool(self.is_available),
                changed_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Active orders
    # -------------------------------------------------------------------
    def ensure_can_take(self, order_id: str, capacity: int) -> None:
        """Raise unless the agent may take ``order_id`` on top of its current load."""
        if not self.is_active:
            raise AgentUnavailable(str(self.id), "agent is not active")
        if not self.is_approved:
            raise AgentUnavailable(str(self.id), "agent is not approved")
        limit = self.max_active_orders or capacity
        if not self.holds(order_id) and len(self.active_order_ids) >= limit:
            raise AgentAtCapacity(str(self.id), limit)

    def take_order(self, order_id: str, capacity: int) -> None:
        self.ensure_can_take(order_id, capacity)
        if self.holds(order_id):
            return
        now = datetime.now(UTC)
        orders = self.active_order_ids + [str(order_id)]
        self.active_orders = json.dumps(orders)
        self.updated_at = now
        self.raise_(
            OrderTaken(
                agent_id=str(self.id),
                order_id=str(order_id),
                active_order_count=len(orders),
                taken_at=now,
            )
        )

    def release_order(self, order_id: str) -> bool:
        """Drop an order from the active set. Returns False when it was not held."""
        if not self.holds(order_id):
            return False
        now = datetime.now(UTC)
        orders = [o for o in self.active_order_ids if o != str(order_id)]
        self.active_orders = json.dumps(orders)
        self.updated_at = now
        self.raise_(
            OrderReleased(
                agent_id=str(self.id),
                order_id=str(order_id),
                active_order_count=len(orders),
                released_at=now,
            )
        )
        return True

    # -------------------------------------------------------------------
    # Earnings
    # -------------------------------------------------------------------
    def credit_delivery(self, order_id: str, amount: float, today: date | None = None) -> bool:
        """Pay for a delivered order exactly once. Returns False for a repeat credit."""
        if amount < 0:
            raise ValidationError({"amount": ["Delivery fee cannot be negative"]})
        if str(order_id) in self.credited_order_ids:
            return False

        now = datetime.now(UTC)
        today_key = (today or now.date()).isoformat()
        if self.earnings_date != today_key:
            self.today_earnings = 0.0
            self.earnings_date = today_key

        self.release_order(order_id)
        self.credited_orders = json.dumps(self.credited_order_ids + [str(order_id)])
        self.completed_deliveries = (self.completed_deliveries or 0) + 1
        self.total_earnings = round((self.total_earnings or 0.0) + amount, 2)
        self.today_earnings = round((self.today_earnings or 0.0) + amount, 2)
        self.updated_at = now
        self.raise_(
            DeliveryCredited(
                agent_id=str(self.id),
                order_id=str(order_id),
                amount=amount,
                total_earnings=self.total_earnings,
                completed_deliveries=self.completed_deliveries,
                credited_at=now,
            )
        )
        return True

    def reset_daily_earnings(self, day: date) -> None:
        now = datetime.now(UTC)
        previous = self.today_earnings or 0.0
        self.today_earnings = 0.0
        self.earnings_date = day.isoformat()
        self.updated_at = now
        self.raise_(
            DailyEarningsReset(
                agent_id=str(self.id),
                previous_amount=previous,
                earnings_date=day.isoformat(),
                reset_at=now,
            )
        )
