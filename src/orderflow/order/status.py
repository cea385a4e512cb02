"""Administrative status transitions and feedback bookkeeping."""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from orderflow.domain import orderflow
from orderflow.order.order import Order


@orderflow.command(part_of="Order")
class TransitionOrderStatus:
    order_id = Identifier(required=True)
    new_status = String(required=True, max_length=50)
    actor = String(max_length=100)
    note = String(max_length=500)


@orderflow.command(part_of="Order")
class RecordItemReturnStatus:
    """Mirror a return request's status onto the order item it concerns."""

    order_id = Identifier(required=True)
    order_item_id = Identifier(required=True)
    return_status = String(max_length=50)


@orderflow.command(part_of="Order")
class MarkFeedbackGiven:
    order_id = Identifier(required=True)


@orderflow.command_handler(part_of=Order)
class OrderStatusHandler:
    @handle(TransitionOrderStatus)
    def transition_status(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.transition_status(command.new_status, actor=command.actor, note=command.note)
        repo.add(order)

    @handle(RecordItemReturnStatus)
    def record_item_return_status(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.record_item_return_status(command.order_item_id, command.return_status)
        repo.add(order)

    @handle(MarkFeedbackGiven)
    def mark_feedback_given(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.mark_feedback_given()
        repo.add(order)
