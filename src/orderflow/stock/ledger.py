"""Inventory ledger — atomic, all-or-nothing reserve/release across order lines.

The ledger holds the lock of every product in the request (acquired in sorted
order) while it issues one ReserveStock command per line. If a line fails,
the lines already decremented in the same call are released again before the
error reaches the caller, and no concurrent reservation can observe the
intermediate state because the product locks are still held.
"""

from collections import OrderedDict
from collections.abc import Iterable
from dataclasses import dataclass, field
from uuid import uuid4

from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from orderflow.domain import logger
from orderflow.errors import NotFound
from orderflow.locking import product_locks
from orderflow.stock.reservation import ReleaseStock, ReserveStock
from orderflow.stock.stock import ProductStock


@dataclass(frozen=True)
class ReservationToken:
    """Proof of a successful reservation, needed to release it later."""

    reservation_id: str
    lines: tuple[tuple[str, int], ...] = field(default_factory=tuple)


def _merge_lines(items: Iterable[tuple[str, int]]) -> "OrderedDict[str, int]":
    merged: OrderedDict[str, int] = OrderedDict()
    for product_id, quantity in items:
        if not product_id:
            raise ValidationError({"product_id": ["Product id is required"]})
        try:
            quantity = int(quantity)
        except (TypeError, ValueError):
            raise ValidationError({"quantity": [f"Quantity for {product_id} must be a whole number"]}) from None
        if quantity < 1:
            raise ValidationError({"quantity": [f"Quantity for {product_id} must be at least 1"]})
        merged[str(product_id)] = merged.get(str(product_id), 0) + quantity
    if not merged:
        raise ValidationError({"items": ["At least one line is required"]})
    return merged


class InventoryLedger:
    def reserve(self, items: Iterable[tuple[str, int]]) -> ReservationToken:
        lines = _merge_lines(items)
        reservation_id = str(uuid4())

        with product_locks(lines.keys()):
            reserved: list[tuple[str, int]] = []
            try:
                for product_id, quantity in lines.items():
                    current_domain.process(
                        ReserveStock(
                            product_id=product_id,
                            quantity=quantity,
                            reservation_id=reservation_id,
                        ),
                        asynchronous=False,
                    )
                    reserved.append((product_id, quantity))
            except (ValidationError, ObjectNotFoundError) as exc:
                logger.info(
                    "reservation_rolled_back",
                    reservation_id=reservation_id,
                    rolled_back_lines=len(reserved),
                    reason=str(exc),
                )
                self._release_lines(reserved, reservation_id, reason="Reservation rolled back")
                raise

        logger.info("stock_reserved", reservation_id=reservation_id, lines=len(reserved))
        return ReservationToken(reservation_id=reservation_id, lines=tuple(reserved))

    def release(self, items: Iterable[tuple[str, int]], reason: str = "Order cancelled") -> None:
        lines = _merge_lines(items)
        with product_locks(lines.keys()):
            self._release_lines(list(lines.items()), reservation_id=None, reason=reason)
        logger.info("stock_released", lines=len(lines), reason=reason)

    def availability(self, product_id: str) -> ProductStock:
        try:
            return current_domain.repository_for(ProductStock).get(product_id)
        except ObjectNotFoundError as exc:
            raise NotFound("ProductStock", product_id) from exc

    def _release_lines(self, lines, reservation_id: str | None, reason: str) -> None:
        for product_id, quantity in lines:
            current_domain.process(
                ReleaseStock(
                    product_id=product_id,
                    quantity=quantity,
                    reservation_id=reservation_id,
                    reason=reason,
                ),
                asynchronous=False,
            )


_ledger = InventoryLedger()


def get_ledger() -> InventoryLedger:
    return _ledger
