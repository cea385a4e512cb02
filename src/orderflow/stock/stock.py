"""ProductStock aggregate — the per-product record behind the inventory ledger.

``available_quantity`` is the only stored count; ``in_stock`` is derived from
it and rewritten inside the same atomic change on every mutation, so the two
can never disagree once a change is committed.
"""

from datetime import UTC, datetime

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Identifier, Integer, String

from orderflow.domain import orderflow
from orderflow.errors import InsufficientStock
from orderflow.stock.events import (
    ProductStockRegistered,
    ProductWentOutOfStock,
    StockReleased,
    StockReplenished,
    StockReserved,
)


@orderflow.aggregate
class ProductStock:
    product_id = Identifier(identifier=True, required=True)
    sku = String(max_length=100)
    available_quantity = Integer(required=True, min_value=0, default=0)
    in_stock = Boolean(default=False)
    updated_at = DateTime()

    @invariant.post
    def available_quantity_cannot_be_negative(self):
        if self.available_quantity is not None and self.available_quantity < 0:
            raise ValidationError({"available_quantity": ["Available quantity cannot be negative"]})

    @invariant.post
    def in_stock_matches_available_quantity(self):
        if bool(self.in_stock) != ((self.available_quantity or 0) > 0):
            raise ValidationError({"in_stock": ["in_stock must reflect available quantity"]})

    @classmethod
    def register(cls, product_id: str, quantity: int, sku: str | None = None):
        if quantity < 0:
            raise ValidationError({"quantity": ["Initial quantity cannot be negative"]})

        now = datetime.now(UTC)
        stock = cls(
            product_id=product_id,
            sku=sku,
            available_quantity=quantity,
            in_stock=quantity > 0,
            updated_at=now,
        )
        stock.raise_(
            ProductStockRegistered(
                product_id=product_id,
                sku=sku or "",
                quantity=quantity,
                registered_at=now,
            )
        )
        return stock

    def is_available(self, quantity: int) -> bool:
        return self.available_quantity >= quantity

    def _set_available(self, quantity: int, now: datetime) -> None:
        with atomic_change(self):
            self.available_quantity = quantity
            self.in_stock = quantity > 0
            self.updated_at = now

    def reserve(self, quantity: int, reservation_id: str) -> None:
        """Conditionally decrement available stock; refuses when it would go negative."""
        if quantity <= 0:
            raise ValidationError({"quantity": ["Quantity must be positive"]})

        available = self.available_quantity
        if available < quantity:
            raise InsufficientStock(str(self.product_id), available, quantity)

        now = datetime.now(UTC)
        self._set_available(available - quantity, now)
        self.raise_(
            StockReserved(
                product_id=str(self.product_id),
                reservation_id=reservation_id,
                quantity=quantity,
                previous_available=available,
                new_available=self.available_quantity,
                reserved_at=now,
            )
        )
        if not self.in_stock:
            self.raise_(ProductWentOutOfStock(product_id=str(self.product_id), occurred_at=now))

    def release(self, quantity: int, reason: str, reservation_id: str | None = None) -> None:
        if quantity <= 0:
            raise ValidationError({"quantity": ["Quantity must be positive"]})

        available = self.available_quantity
        now = datetime.now(UTC)
        self._set_available(available + quantity, now)
        self.raise_(
            StockReleased(
                product_id=str(self.product_id),
                reservation_id=reservation_id,
                quantity=quantity,
                previous_available=available,
                new_available=self.available_quantity,
                reason=reason,
                released_at=now,
            )
        )

    def replenish(self, quantity: int) -> None:
        """Add newly received units to the available pool."""
        if quantity <= 0:
            raise ValidationError({"quantity": ["Quantity must be positive"]})

        now = datetime.now(UTC)
        self._set_available(self.available_quantity + quantity, now)
        self.raise_(
            StockReplenished(
                product_id=str(self.product_id),
                quantity=quantity,
                new_available=self.available_quantity,
                replenished_at=now,
            )
        )
