"""
Rate Engine tests.

Covers the price breakdown, rounding, the insurance floor, the standard
fallback for unknown classes and the public quoting endpoints.
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from backend.app.domain.pricing import rate_engine
from backend.app.models.enums import ServiceClass


def test_standard_quote_breakdown():
    quote = rate_engine.quote(1.2, "standard", 150)
    
    assert quote.service_class == ServiceClass.STANDARD
    assert quote.base_rate == Decimal("15.00")
    assert quote.weight_charge == Decimal("3.60")
    assert quote.insurance == Decimal("2.00")
    assert quote.tax == Decimal("1.65")
    assert quote.total == Decimal("22.25")
    assert quote.estimated_days == 3
    assert quote.currency == "USD"


def test_express_quote_breakdown():
    quote = rate_engine.quote(2.5, ServiceClass.EXPRESS, 500)
    
    assert quote.base_rate == Decimal("25.00")
    assert quote.weight_charge == Decimal("12.50")
    assert quote.insurance == Decimal("5.00")
    assert quote.tax == Decimal("3.40")
    assert quote.total == Decimal("45.90")
    assert quote.estimated_days == 1


def test_freight_and_international_quotes():
    freight = rate_engine.quote(10, "freight", 1000)
    assert freight.total == Decimal("151.20")
    assert freight.estimated_days == 5
    
    international = rate_engine.quote(3.3, "international", 0)
    assert international.weight_charge == Decimal("39.60")
    assert international.tax == Decimal("9.33")
    assert international.total == Decimal("125.93")
    assert international.estimated_days == 10


@pytest.mark.parametrize("service_class", list(ServiceClass))
@pytest.mark.parametrize("weight", [0.1, 1.2, 3.333, 27.5])
@pytest.mark.parametrize("declared_value", [0, 149.99, 1234.56])
def test_total_is_sum_of_rounded_components(service_class, weight, declared_value):
    quote = rate_engine.quote(weight, service_class, declared_value)
    
    assert quote.total == quote.base_rate + quote.weight_charge + quote.insurance + quote.tax
    for component in (quote.base_rate, quote.weight_charge, quote.insurance, quote.tax, quote.total):
        assert component == component.quantize(Decimal("0.01"))


@pytest.mark.parametrize("declared_value,expected", [
    (0, Decimal("2.00")),
    (-100, Decimal("2.00")),
    (None, Decimal("2.00")),
    (199.99, Decimal("2.00")),
    (200, Decimal("2.00")),
    (250, Decimal("2.50")),
    (1000, Decimal("10.00")),
])
def test_insurance_floor(declared_value, expected):
    assert rate_engine.quote(1, "standard", declared_value).insurance == expected


def test_tax_is_computed_on_unrounded_subtotal():
    # subtotal 15 + 3.003 + 2 = 20.003, tax 1.60024 -> 1.60
    quote = rate_engine.quote(1.001, "standard", 0)
    assert quote.weight_charge == Decimal("3.00")
    assert quote.tax == Decimal("1.60")


@pytest.mark.parametrize("unknown", ["teleport", "", None, "same-day"])
def test_unknown_service_class_is_priced_as_standard(unknown):
    fallback = rate_engine.quote(2, unknown, 100)
    standard = rate_engine.quote(2, ServiceClass.STANDARD, 100)
    
    assert fallback == standard
    assert fallback.service_class == rate_engine.DEFAULT_SERVICE_CLASS


def test_service_class_strings_are_case_insensitive():
    assert rate_engine.quote(1, " EXPRESS ", 0).service_class == ServiceClass.EXPRESS


def test_quote_is_deterministic():
    assert rate_engine.quote(4.75, "freight", 333.33) == rate_engine.quote(4.75, "freight", 333.33)


def test_quote_carries_requested_currency():
    assert rate_engine.quote(1, "standard", 0, currency="EUR").currency == "EUR"


@pytest.mark.parametrize("service_class,window", [
    ("express", (1, 1)),
    ("standard", (2, 4)),
    ("freight", (4, 7)),
    ("international", (7, 14)),
    ("unknown", (2, 4)),
])
def test_transit_window(service_class, window):
    now = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
    result = rate_engine.transit_window(service_class, now)
    
    assert (result.min_days, result.max_days) == window
    assert result.estimated_delivery == now + timedelta(days=window[1])


def test_service_catalogue_lists_every_class():
    services = rate_engine.list_services()
    
    assert [s["service_class"] for s in services] == ["express", "standard", "freight", "international"]
    assert [s["estimated_days"] for s in services] == [1, 3, 5, 10]
    assert all(s["features"] for s in services)


@pytest.mark.asyncio
async def test_calculate_endpoint(client):
    response = await client.post(
        "/v1/rates/calculate",
        json={"weight_kg": 1.2, "service_class": "standard", "declared_value": 150},
    )
    
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 22.25
    assert data["tax"] == 1.65
    assert data["service_class"] == "standard"
    assert data["estimated_days"] == 3


@pytest.mark.asyncio
async def test_calculate_endpoint_falls_back_for_unknown_class(client):
    response = await client.post(
        "/v1/rates/calculate",
        json={"weight_kg": 2, "service_class": "hovercraft", "declared_value": 100},
    )
    
    assert response.status_code == 200
    assert response.json()["service_class"] == "standard"


@pytest.mark.asyncio
async def test_calculate_endpoint_rejects_non_positive_weight(client):
    response = await client.post(
        "/v1/rates/calculate",
        json={"weight_kg": 0, "service_class": "standard"},
    )
    
    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [
    '{"weight_kg": 1.0, "service_class": "standard", "declared_value": NaN}',
    '{"weight_kg": Infinity, "service_class": "standard"}',
    '{"weight_kg": 1.0, "service_class": "standard", "declared_value": -Infinity}',
])
async def test_calculate_endpoint_rejects_non_finite_numbers(client, body):
    response = await client.post(
        "/v1/rates/calculate",
        content=body,
        headers={"Content-Type": "application/json"},
    )
    
    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"
    assert response.json()["details"]["errors"][0]["type"] == "finite_number"


@pytest.mark.asyncio
async def test_services_and_transit_time_endpoints(client):
    services = await client.get("/v1/rates/services")
    assert services.status_code == 200
    assert len(services.json()) == 4
    
    transit = await client.post("/v1/rates/transit-time", json={"service_class": "freight"})
    assert transit.status_code == 200
    assert transit.json()["estimated_min_days"] == 4
    assert transit.json()["estimated_max_days"] == 7
