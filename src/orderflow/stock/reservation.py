"""Stock reservation — commands and handler for single-product decrements.

Each command touches exactly one ProductStock. Multi-line, all-or-nothing
reservations are composed by ``InventoryLedger`` under per-product locks.
"""

from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from orderflow.domain import orderflow
from orderflow.errors import NotFound
from orderflow.stock.stock import ProductStock


@orderflow.command(part_of="ProductStock")
class ReserveStock:
    product_id = Identifier(identifier=True, required=True)
    quantity = Integer(required=True, min_value=1)
    reservation_id = Identifier(required=True)


@orderflow.command(part_of="ProductStock")
class ReleaseStock:
    product_id = Identifier(identifier=True, required=True)
    quantity = Integer(required=True, min_value=1)
    reservation_id = Identifier()
    reason = String(max_length=255, default="Released")


def _load(product_id):
    repo = current_domain.repository_for(ProductStock)
    try:
        return repo, repo.get(product_id)
    except ObjectNotFoundError as exc:
        raise NotFound("ProductStock", product_id) from exc


@orderflow.command_handler(part_of=ProductStock)
class ReservationHandler:
    @handle(ReserveStock)
    def reserve_stock(self, command):
        repo, stock = _load(command.product_id)
        stock.reserve(quantity=command.quantity, reservation_id=command.reservation_id)
        repo.add(stock)
        return stock.available_quantity

    @handle(ReleaseStock)
    def release_stock(self, command):
        repo, stock = _load(command.product_id)
        stock.release(
            quantity=command.quantity,
            reason=command.reason,
            reservation_id=command.reservation_id,
        )
        repo.add(stock)
        return stock.available_quantity
