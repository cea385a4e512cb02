"""Shared fixtures for the orderflow test suite."""

import pytest
from protean.integrations.pytest import DomainFixture

from orderflow import orchestrator
from orderflow.gateway import (
    get_otp_notifier,
    get_payment_gateway,
    get_refund_executor,
    reset_gateways,
)
from orderflow.locking import get_locks

DELIVERY_OTP = "4821"
HANDOVER_CODE = "736194"

ADDRESS = {
    "name": "Asha Rao",
    "phone": "+919800000001",
    "street": "12 MG Road",
    "city": "Bengaluru",
    "state": "Karnataka",
    "pincode": "560001",
}


@pytest.fixture(scope="session")
def orderflow_bed():
    from orderflow.domain import orderflow

    bed = DomainFixture(orderflow)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(orderflow_bed):
    with orderflow_bed.domain_context():
        yield


@pytest.fixture(autouse=True)
def _reset_collaborators():
    reset_gateways()
    get_locks().reset()
    yield
    reset_gateways()


@pytest.fixture()
def fixed_codes(monkeypatch):
    """Make generated codes predictable: 4-digit OTPs and 6-digit handover codes."""
    monkeypatch.setattr(
        "orderflow.order.otp.generate_code",
        lambda digits: DELIVERY_OTP if digits == 4 else HANDOVER_CODE,
    )
    return {"delivery": DELIVERY_OTP, "handover": HANDOVER_CODE}


@pytest.fixture()
def notifier():
    return get_otp_notifier()


@pytest.fixture()
def payment_gateway():
    return get_payment_gateway()


@pytest.fixture()
def refund_executor():
    return get_refund_executor()


@pytest.fixture()
def address():
    return dict(ADDRESS)


def line(product_id: str, quantity: int, unit_price: float, name: str | None = None) -> dict:
    return {
        "product_id": product_id,
        "product_name": name or product_id,
        "quantity": quantity,
        "unit_price": unit_price,
    }


def pricing_for(items: list[dict], delivery_charge: float = 0.0, discount: float = 0.0, tax: float = 0.0) -> dict:
    items_total = round(sum(i["quantity"] * i["unit_price"] for i in items), 2)
    return {
        "items_total": items_total,
        "delivery_charge": delivery_charge,
        "discount": discount,
        "tax": tax,
        "total_amount": round(items_total + delivery_charge + tax - discount, 2),
    }


@pytest.fixture()
def place_order(address):
    """Factory: stock the products if needed, then check out through the orchestrator."""

    def _place(items: list[dict], payment_method: str = "cod", **pricing_overrides):
        pricing = pricing_for(items, **pricing_overrides)
        return orchestrator.create_order(
            customer_id="cust-001",
            items=items,
            delivery_address=address,
            pricing=pricing,
            payment_method=payment_method,
        )

    return _place


@pytest.fixture()
def approved_agent():
    """Factory: a registered, approved, online delivery agent."""

    def _agent(name: str = "Ravi", phone: str = "+919811111111", max_active_orders: int | None = None):
        agent = orchestrator.register_agent(name, phone, max_active_orders=max_active_orders)
        orchestrator.approve_agent(str(agent.id))
        return orchestrator.set_agent_presence(str(agent.id), is_online=True, is_available=True)

    return _agent


@pytest.fixture()
def out_for_delivery(place_order, approved_agent, fixed_codes):
    """Factory: an order assigned to an agent who has accepted it."""

    def _dispatch(items: list[dict] | None = None, **pricing_overrides):
        items = items or [line("prod-1", 1, 200.0)]
        for item in items:
            orchestrator.register_product(item["product_id"], quantity=10)
        order = place_order(items, **pricing_overrides)
        agent = approved_agent()
        orchestrator.assign_delivery(str(order.id), str(agent.id))
        order = orchestrator.accept_delivery(str(order.id), str(agent.id))
        return order, agent

    return _dispatch
