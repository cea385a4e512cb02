"""Tests for the ProductStock aggregate — quantity and in_stock coherence."""

import pytest
from protean.exceptions import ValidationError

from orderflow.errors import InsufficientStock
from orderflow.stock.events import ProductWentOutOfStock, StockReleased, StockReserved
from orderflow.stock.stock import ProductStock


def _stock(quantity=5):
    return ProductStock.register(product_id="prod-1", quantity=quantity, sku="SKU-1")


class TestRegistration:
    def test_registered_with_quantity_is_in_stock(self):
        stock = _stock(5)
        assert stock.available_quantity == 5
        assert stock.in_stock is True

    def test_registered_empty_is_out_of_stock(self):
        stock = _stock(0)
        assert stock.in_stock is False

    def test_negative_initial_quantity_rejected(self):
        with pytest.raises(ValidationError):
            _stock(-1)

    def test_is_available(self):
        stock = _stock(3)
        assert stock.is_available(3)
        assert not stock.is_available(4)


class TestReserve:
    def test_reserve_decrements(self):
        stock = _stock(5)
        stock.reserve(2, reservation_id="res-1")
        assert stock.available_quantity == 3
        assert stock.in_stock is True

    def test_reserve_last_units_flips_in_stock(self):
        stock = _stock(2)
        stock.reserve(2, reservation_id="res-1")
        assert stock.available_quantity == 0
        assert stock.in_stock is False

    def test_reserve_raises_events(self):
        stock = _stock(1)
        stock.reserve(1, reservation_id="res-1")
        event_types = [type(e) for e in stock._events]
        assert StockReserved in event_types
        assert ProductWentOutOfStock in event_types

    def test_reserve_more_than_available(self):
        stock = _stock(1)
        with pytest.raises(InsufficientStock) as exc:
            stock.reserve(2, reservation_id="res-1")
        assert exc.value.available == 1
        assert exc.value.requested == 2
        assert stock.available_quantity == 1


class TestReleaseAndReplenish:
    def test_release_restores_quantity(self):
        stock = _stock(1)
        stock.reserve(1, reservation_id="res-1")
        stock.release(1, reason="Order cancelled", reservation_id="res-1")
        assert stock.available_quantity == 1
        assert stock.in_stock is True
        assert any(isinstance(e, StockReleased) for e in stock._events)

    def test_replenish(self):
        stock = _stock(0)
        stock.replenish(10)
        assert stock.available_quantity == 10
        assert stock.in_stock is True
