"""Agent workload — taking and releasing orders, crediting deliveries."""

from protean import handle
from protean.fields import Float, Identifier
from protean.utils.globals import current_domain

from orderflow.agent.agent import DeliveryAgent
from orderflow.domain import orderflow
from orderflow.settings import setting


@orderflow.command(part_of="DeliveryAgent")
class TakeOrder:
    agent_id = Identifier(required=True)
    order_id = Identifier(required=True)


@orderflow.command(part_of="DeliveryAgent")
class ReleaseOrder:
    agent_id = Identifier(required=True)
    order_id = Identifier(required=True)


@orderflow.command(part_of="DeliveryAgent")
class CreditDelivery:
    agent_id = Identifier(required=True)
    order_id = Identifier(required=True)
    amount = Float(required=True, min_value=0.0)


@orderflow.command_handler(part_of=DeliveryAgent)
class WorkloadHandler:
    @handle(TakeOrder)
    def take_order(self, command):
        repo = current_domain.repository_for(DeliveryAgent)
        agent = repo.get(command.agent_id)
        agent.take_order(command.order_id, capacity=setting("AGENT_CAPACITY"))
        repo.add(agent)

    @handle(ReleaseOrder)
    def release_order(self, command):
        repo = current_domain.repository_for(DeliveryAgent)
        agent = repo.get(command.agent_id)
        released = agent.release_order(command.order_id)
        if released:
            repo.add(agent)
        return released

    @handle(CreditDelivery)
    def credit_delivery(self, command):
        repo = current_domain.repository_for(DeliveryAgent)
        agent = repo.get(command.agent_id)
        credited = agent.credit_delivery(command.order_id, command.amount)
        if credited:
            repo.add(agent)
        return credited
