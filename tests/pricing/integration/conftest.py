import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from protean.integrations.fastapi import register_exception_handlers

from pricing.api import cart_router, checkout_router, discount_router, shipping_router, tax_router


@pytest.fixture()
def client(pricing_bed):
    app = FastAPI()
    register_exception_handlers(app)

    @app.middleware("http")
    async def domain_context_middleware(request: Request, call_next):
        with pricing_bed.domain.domain_context():
            return await call_next(request)

    for router in (cart_router, discount_router, tax_router, shipping_router, checkout_router):
        app.include_router(router)
    return TestClient(app)


@pytest.fixture()
def shipping_method_id(client):
    """A domestic zone with a $5.99 standard method, free over $75."""
    zone = client.post("/shipping/zones", json={"code": "domestic", "name": "Domestic", "countries": ["US"]})
    method = client.post(
        "/shipping/methods",
        json={
            "code": "standard",
            "name": "Standard",
            "flat_rate": "5.99",
            "free_shipping_threshold": "75.00",
            "estimated_days_min": 3,
            "estimated_days_max": 5,
        },
    )
    rate = client.post("/shipping/rates", json={"zone_id": zone.json()["id"], "method_id": method.json()["id"]})
    assert rate.status_code == 201
    return method.json()["id"]


@pytest.fixture()
def california_tax(client):
    """A 10% California rate on the default category, shipping included."""
    zone = client.post("/tax/zones", json={"code": "us-ca", "name": "California", "states": ["US-CA"]})
    category = client.post("/tax/categories", json={"code": "standard", "name": "Standard", "is_default": True})
    rate = client.post(
        "/tax/rates",
        json={
            "zone_id": zone.json()["id"],
            "category_id": category.json()["id"],
            "name": "CA Sales Tax",
            "rate": "10",
            "tax_shipping": True,
            "jurisdiction_type": "State",
            "jurisdiction_name": "California",
        },
    )
    assert rate.status_code == 201
    return zone.json()["id"]
