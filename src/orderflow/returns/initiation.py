"""InitiateReturn — open a return request against a delivered order item.

Only one active (non-terminal) request may exist per order item; the check
is a repository query, so the orchestrator runs it under the order lock.
"""

from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from orderflow.domain import orderflow
from orderflow.errors import Conflict, NotFound
from orderflow.order.order import Order
from orderflow.returns.return_request import ReturnRequest
from orderflow.settings import setting


@orderflow.command(part_of="ReturnRequest")
class InitiateReturn:
    order_id = Identifier(required=True)
    order_item_id = Identifier(required=True)
    reason = String(required=True, max_length=100)
    quantity = Integer(required=True, min_value=1)
    description = Text()


@orderflow.command_handler(part_of=ReturnRequest)
class InitiateReturnHandler:
    @handle(InitiateReturn)
    def initiate_return(self, command):
        try:
            order = current_domain.repository_for(Order).get(command.order_id)
        except ObjectNotFoundError as exc:
            raise NotFound("Order", command.order_id) from exc

        repo = current_domain.repository_for(ReturnRequest)
        existing = repo.active_for_item(command.order_id, command.order_item_id)
        if existing is not None:
            raise Conflict(
                "order_item_id",
                f"A return request is already active for this item (status: {existing.status})",
            )

        request = ReturnRequest.initiate(
            order=order,
            order_item_id=command.order_item_id,
            reason=command.reason,
            quantity=command.quantity,
            description=command.description,
            window_days=setting("RETURN_WINDOW_DAYS"),
        )
        repo.add(request)
        return str(request.id)
