"""Stock management — registering products in the ledger and restocking them."""

from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from orderflow.domain import logger, orderflow
from orderflow.errors import Conflict, NotFound
from orderflow.stock.stock import ProductStock


@orderflow.command(part_of="ProductStock")
class RegisterProductStock:
    product_id = Identifier(identifier=True, required=True)
    sku = String(max_length=100)
    quantity = Integer(required=True, min_value=0)


@orderflow.command(part_of="ProductStock")
class RestockProduct:
    """Add received units to a product's available quantity."""

    product_id = Identifier(identifier=True, required=True)
    quantity = Integer(required=True, min_value=1)


@orderflow.command_handler(part_of=ProductStock)
class StockManagementHandler:
    @handle(RegisterProductStock)
    def register_product_stock(self, command):
        repo = current_domain.repository_for(ProductStock)
        try:
            repo.get(command.product_id)
        except ObjectNotFoundError:
            pass
        else:
            raise Conflict("product_id", f"Stock record for {command.product_id} already exists")

        stock = ProductStock.register(
            product_id=command.product_id,
            quantity=command.quantity,
            sku=command.sku,
        )
        repo.add(stock)
        logger.info("product_stock_registered", product_id=command.product_id, quantity=command.quantity)
        return str(stock.product_id)

    @handle(RestockProduct)
    def restock_product(self, command):
        repo = current_domain.repository_for(ProductStock)
        try:
            stock = repo.get(command.product_id)
        except ObjectNotFoundError as exc:
            raise NotFound("ProductStock", command.product_id) from exc
        stock.replenish(command.quantity)
        repo.add(stock)
        return stock.available_quantity
