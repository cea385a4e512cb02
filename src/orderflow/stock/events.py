"""Domain events for the ProductStock aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from orderflow.domain import orderflow


@orderflow.event(part_of="ProductStock")
class ProductStockRegistered:
    """A product was added to the inventory ledger."""

    __version__ = 1

    product_id = Identifier(required=True)
    sku = String()
    quantity = Integer(required=True)
    registered_at = DateTime(required=True)


@orderflow.event(part_of="ProductStock")
class StockReserved:
    """Available stock was decremented for an order line."""

    __version__ = 1

    product_id = Identifier(required=True)
    reservation_id = Identifier(required=True)
    quantity = Integer(required=True)
    previous_available = Integer(required=True)
    new_available = Integer(required=True)
    reserved_at = DateTime(required=True)


@orderflow.event(part_of="ProductStock")
class StockReleased:
    """Previously reserved stock was returned to the available pool."""

    __version__ = 1

    product_id = Identifier(required=True)
    reservation_id = Identifier()
    quantity = Integer(required=True)
    previous_available = Integer(required=True)
    new_available = Integer(required=True)
    reason = String()
    released_at = DateTime(required=True)


@orderflow.event(part_of="ProductStock")
class StockReplenished:
    __version__ = 1

    product_id = Identifier(required=True)
    quantity = Integer(required=True)
    new_available = Integer(required=True)
    replenished_at = DateTime(required=True)


@orderflow.event(part_of="ProductStock")
class ProductWentOutOfStock:
    """The last available unit of a product was reserved."""

    __version__ = 1

    product_id = Identifier(required=True)
    occurred_at = DateTime(required=True)
