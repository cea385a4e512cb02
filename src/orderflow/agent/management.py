"""Delivery agent lifecycle — registration, approval, presence and earnings reset."""

from datetime import date

from protean import handle
from protean.fields import Boolean, Identifier, Integer, String
from protean.utils.globals import current_domain

from orderflow.agent.agent import DeliveryAgent
from orderflow.domain import orderflow


@orderflow.command(part_of="DeliveryAgent")
class RegisterDeliveryAgent:
    name = String(required=True, max_length=100)
    phone = String(required=True, max_length=20)
    max_active_orders = Integer(min_value=1)


@orderflow.command(part_of="DeliveryAgent")
class ApproveDeliveryAgent:
    agent_id = Identifier(required=True)


@orderflow.command(part_of="DeliveryAgent")
class DeactivateDeliveryAgent:
    agent_id = Identifier(required=True)
    reason = String(max_length=255)


@orderflow.command(part_of="DeliveryAgent")
class SetAgentPresence:
    agent_id = Identifier(required=True)
    is_online = Boolean(required=True)
    is_available = Boolean()


@orderflow.command(part_of="DeliveryAgent")
class ResetDailyEarnings:
    agent_id = Identifier(required=True)
    day = String(required=True, max_length=10)  # YYYY-MM-DD


@orderflow.command_handler(part_of=DeliveryAgent)
class AgentManagementHandler:
    @handle(RegisterDeliveryAgent)
    def register(self, command):
        agent = DeliveryAgent.register(
            name=command.name,
            phone=command.phone,
            max_active_orders=command.max_active_orders,
        )
        current_domain.repository_for(DeliveryAgent).add(agent)
        return str(agent.id)

    @handle(ApproveDeliveryAgent)
    def approve(self, command):
        repo = current_domain.repository_for(DeliveryAgent)
        agent = repo.get(command.agent_id)
        agent.approve()
        repo.add(agent)

    @handle(DeactivateDeliveryAgent)
    def deactivate(self, command):
        repo = current_domain.repository_for(DeliveryAgent)
        agent = repo.get(command.agent_id)
        agent.deactivate(command.reason)
        repo.add(agent)

    @handle(SetAgentPresence)
    def set_presence(self, command):
        repo = current_domain.repository_for(DeliveryAgent)
        agent = repo.get(command.agent_id)
        agent.set_presence(command.is_online, command.is_available)
        repo.add(agent)

    @handle(ResetDailyEarnings)
    def reset_daily_earnings(self, command):
        repo = current_domain.repository_for(DeliveryAgent)
        agent = repo.get(command.agent_id)
        agent.reset_daily_earnings(date.fromisoformat(command.day))
        repo.add(agent)
