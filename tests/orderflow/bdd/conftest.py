"""Shared BDD fixtures and step definitions for order fulfilment."""

import pytest
from protean import current_domain
from pytest_bdd import given, parsers, then

from orderflow import orchestrator
from orderflow.agent.agent import DeliveryAgent
from orderflow.order.order import Order
from orderflow.stock.stock import ProductStock


@pytest.fixture()
def error():
    """Container for captured business errors."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('product "{product_id}" has {quantity:d} units in stock'))
def stocked_product(product_id, quantity):
    orchestrator.register_product(product_id, quantity=quantity)


@given(parsers.cfparse('an approved delivery agent "{name}"'), target_fixture="agent")
def delivery_agent(approved_agent, name):
    return approved_agent(name=name)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order is "{status}"'))
def order_has_status(order, status):
    assert current_domain.repository_for(Order).get(str(order.id)).status == status


@then(parsers.cfparse('product "{product_id}" has {quantity:d} units available'))
def product_has_available(product_id, quantity):
    assert current_domain.repository_for(ProductStock).get(product_id).available_quantity == quantity


@then(parsers.cfparse("the agent has {count:d} completed delivery"))
def agent_completed(agent, count):
    assert current_domain.repository_for(DeliveryAgent).get(str(agent.id)).completed_deliveries == count


@then("the agent holds no active orders")
def agent_idle(agent):
    assert current_domain.repository_for(DeliveryAgent).get(str(agent.id)).active_order_ids == []
