"""Delivery assignment on the order side — commands and handler.

The agent's own bookkeeping (active orders, capacity) lives on the
DeliveryAgent aggregate; the orchestrator runs both halves under the order
and agent locks.
"""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from orderflow.domain import orderflow
from orderflow.order import otp
from orderflow.order.order import Order


@orderflow.command(part_of="Order")
class AssignDeliveryAgent:
    order_id = Identifier(required=True)
    agent_id = Identifier(required=True)


@orderflow.command(part_of="Order")
class UnassignDeliveryAgent:
    order_id = Identifier(required=True)
    actor = String(max_length=100, default="admin")


@orderflow.command(part_of="Order")
class VerifyHandoverCode:
    order_id = Identifier(required=True)
    code = String(required=True, max_length=6)


@orderflow.command(part_of="Order")
class AcceptDelivery:
    """The assigned agent takes the order out for delivery."""

    order_id = Identifier(required=True)
    agent_id = Identifier(required=True)


@orderflow.command(part_of="Order")
class ReportDeliveryIssue:
    order_id = Identifier(required=True)
    agent_id = Identifier(required=True)
    issue_type = String(required=True, max_length=100)
    description = String(max_length=1000)


@orderflow.command_handler(part_of=Order)
class AssignmentHandler:
    @handle(AssignDeliveryAgent)
    def assign_agent(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        previous_agent = order.assign_agent(
            command.agent_id,
            handover_code=otp.generate_code(otp.HANDOVER_CODE_DIGITS),
        )
        repo.add(order)
        return previous_agent

    @handle(UnassignDeliveryAgent)
    def unassign_agent(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        agent_id = order.unassign_agent(actor=command.actor or "admin")
        repo.add(order)
        return agent_id

    @handle(VerifyHandoverCode)
    def verify_handover_code(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.verify_handover_code(command.code)
        repo.add(order)

    @handle(AcceptDelivery)
    def accept_delivery(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        changed = order.accept_delivery(command.agent_id)
        if changed:
            repo.add(order)
        return changed

    @handle(ReportDeliveryIssue)
    def report_issue(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.report_issue(command.agent_id, command.issue_type, command.description)
        repo.add(order)
