"""Order placement — command and handler.

The handler assumes stock is already reserved and payment (for online
orders) already confirmed; the orchestrator arranges both before it issues
PlaceOrder and undoes the reservation if placement fails.
"""

import json

from protean import handle
from protean.fields import Boolean, Float, Identifier, String, Text
from protean.utils.globals import current_domain

from orderflow.domain import orderflow
from orderflow.order.order import Order
from orderflow.settings import setting


@orderflow.command(part_of="Order")
class PlaceOrder:
    order_number = String(required=True, max_length=20)
    customer_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of {product_id, product_name, quantity, unit_price}
    delivery_address = Text(required=True)  # JSON: address dict
    items_total = Float(required=True)
    delivery_charge = Float(default=0.0)
    discount = Float(default=0.0)
    coupon_discount = Float(default=0.0)
    tax = Float(default=0.0)
    total_amount = Float(required=True)
    payment_method = String(required=True, max_length=10)
    payment_confirmed = Boolean(default=False)
    payment_reference = String(max_length=255)


@orderflow.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        items_data = json.loads(command.items) if isinstance(command.items, str) else command.items
        delivery_address = (
            json.loads(command.delivery_address)
            if isinstance(command.delivery_address, str)
            else command.delivery_address
        )

        order = Order.place(
            order_number=command.order_number,
            customer_id=command.customer_id,
            items_data=items_data,
            delivery_address=delivery_address,
            pricing={
                "items_total": command.items_total,
                "delivery_charge": command.delivery_charge or 0.0,
                "discount": command.discount or 0.0,
                "coupon_discount": command.coupon_discount or 0.0,
                "tax": command.tax or 0.0,
                "total_amount": command.total_amount,
            },
            payment_method=command.payment_method,
            payment_confirmed=bool(command.payment_confirmed),
            payment_reference=command.payment_reference,
            cod_limit=setting("COD_LIMIT"),
        )
        current_domain.repository_for(Order).add(order)
        return str(order.id)
