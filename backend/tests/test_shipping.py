import pytest
from schema import ShippingConfig
from services.errors import ValidationError
from services.shipping import (
    ShippingConfigService, ShippingSettings, compute_shipping, compute_tax, parse_config_fields, EXPRESS,
)

CONFIG = ShippingSettings(
    standard_shipping_cost=4000,
    free_shipping_threshold=50000,
    express_shipping_cost=8000,
    tax_rate=0.18,
    free_shipping_enabled=True,
    express_shipping_enabled=False,
)


@pytest.mark.parametrize("items_price, expected", [
    (45000, 4000),
    (50000, 4000),   # at the threshold shipping is still charged
    (50001, 0),
    (60000, 0),
    (0, 4000),
])
def test_compute_shipping_free_above_threshold(items_price, expected):
    assert compute_shipping(items_price, CONFIG) == expected


def test_compute_shipping_charges_when_free_shipping_disabled():
    config = ShippingSettings(free_shipping_enabled=False)
    assert compute_shipping(100000, config) == config.standard_shipping_cost


def test_express_shipping_requires_toggle():
    with pytest.raises(ValidationError):
        compute_shipping(10000, CONFIG, EXPRESS)


def test_express_shipping_is_never_waived():
    config = ShippingSettings(express_shipping_enabled=True)
    assert compute_shipping(100000, config, EXPRESS) == 8000


def test_unknown_shipping_method_rejected():
    with pytest.raises(ValidationError):
        compute_shipping(10000, CONFIG, "drone")


def test_compute_tax_on_items_price():
    assert compute_tax(45000, CONFIG) == 8100
    assert compute_tax(60000, CONFIG) == 10800
    assert compute_tax(0, CONFIG) == 0


def test_compute_tax_rounds_to_nearest_paisa():
    assert compute_tax(333, ShippingSettings(tax_rate=0.18)) == 60  # 59.94


def test_get_config_creates_defaults_once(db_session):
    service = ShippingConfigService(db_session)
    first = service.get_config()
    second = service.get_config()
    assert first == second == ShippingSettings()
    assert db_session.query(ShippingConfig).count() == 1


def test_update_config_leaves_other_fields(db_session):
    service = ShippingConfigService(db_session)
    updated = service.update_config({"free_shipping_threshold": 100000})
    assert updated.free_shipping_threshold == 100000
    assert updated.standard_shipping_cost == 4000
    assert service.get_config() == updated
    assert db_session.query(ShippingConfig).count() == 1


def test_parse_config_fields_converts_and_validates():
    fields = parse_config_fields({"standardShippingCost": 49.5, "taxRate": 0.05, "freeShippingEnabled": False, "junk": 1})
    assert fields == {"standard_shipping_cost": 4950, "tax_rate": 0.05, "free_shipping_enabled": False}


@pytest.mark.parametrize("body", [
    {"taxRate": 1.5},
    {"taxRate": "lots"},
    {"standardShippingCost": -1},
    {"freeShippingEnabled": "yes"},
    {"expressShippingCost": None},
])
def test_parse_config_fields_rejects_bad_values(body):
    with pytest.raises(ValidationError):
        parse_config_fields(body)


def test_get_shipping_config_endpoint_returns_defaults(client):
    r = client.get("/api/v1/shipping/config")
    assert r.status_code == 200
    assert r.get_json() == {
        "standardShippingCost": 40,
        "freeShippingThreshold": 500,
        "expressShippingCost": 80,
        "taxRate": 0.18,
        "freeShippingEnabled": True,
        "expressShippingEnabled": False,
    }


def test_update_shipping_config_endpoint(client, admin_headers):
    r = client.put("/api/v1/shipping/config", json={"freeShippingThreshold": 999, "expressShippingEnabled": True},
                   headers=admin_headers)
    assert r.status_code == 200
    data = r.get_json()
    assert data["freeShippingThreshold"] == 999
    assert data["expressShippingEnabled"] is True
    assert data["standardShippingCost"] == 40

    r = client.get("/api/v1/shipping/config")
    assert r.get_json()["freeShippingThreshold"] == 999


def test_update_shipping_config_rejects_invalid(client, admin_headers):
    r = client.put("/api/v1/shipping/config", json={"taxRate": 2}, headers=admin_headers)
    assert r.status_code == 400
    assert "taxRate" in r.get_json()["message"]


def test_update_shipping_config_requires_admin(client, shopper_headers):
    r = client.put("/api/v1/shipping/config", json={"taxRate": 0.1})
    assert r.status_code == 401
    r = client.put("/api/v1/shipping/config", json={"taxRate": 0.1}, headers=shopper_headers)
    assert r.status_code == 403


def test_update_shipping_config_rejects_oversized_cost(client, admin_headers):
    r = client.put("/api/v1/shipping/config", json={"standardShippingCost": "1e30"}, headers=admin_headers)
    assert r.status_code == 400
    assert "standardShippingCost" in r.get_json()["message"]
