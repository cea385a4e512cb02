"""Repository for the ReturnRequest aggregate."""

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from orderflow.domain import orderflow
from orderflow.errors import NotFound
from orderflow.returns.return_request import ReturnRequest


@orderflow.repository(part_of=ReturnRequest)
class ReturnRequestRepository:
    def for_order(self, order_id: str) -> list[ReturnRequest]:
        return self._dao.query.filter(order_id=str(order_id)).all().items

    def active_for_item(self, order_id: str, order_item_id: str) -> ReturnRequest | None:
        """The non-terminal return request open against one order item, if any."""
        requests = self._dao.query.filter(
            order_id=str(order_id),
            order_item_id=str(order_item_id),
        ).all().items
        return next((request for request in requests if request.is_active), None)


def load_return(return_id: str):
    """Fetch a return request, translating a miss into ``NotFound``."""
    repo = current_domain.repository_for(ReturnRequest)
    try:
        return repo, repo.get(return_id)
    except ObjectNotFoundError as exc:
        raise NotFound("ReturnRequest", return_id) from exc
