"""
Tests for checkout session creation and order bump listing.
"""

from decimal import Decimal

import pytest

from gateflow.database import db
from gateflow.models import Coupon
from gateflow.routes.checkout import to_minor_units


class TestMinorUnits:

    @pytest.mark.parametrize("amount,expected", [
        (Decimal("49.00"), 4900),
        (Decimal("0.10"), 10),
        (Decimal("19.995"), 2000),
        ("12.34", 1234),
    ])
    def test_conversion(self, amount, expected):
        assert to_minor_units(amount) == expected


class TestCreateCheckoutSession:

    def test_basic_session(self, client, product, stripe_gateway):
        response = client.post("/api/checkout/create-session", json={
            "product_id": product.id, "email": "Buyer@Example.com", "first_name": " Ada "})

        assert response.status_code == 200
        body = response.get_json()
        assert body["session_id"] == "cs_test_1"
        assert body["url"].endswith("cs_test_1")

        params = stripe_gateway.sessions[0]
        assert params["mode"] == "payment"
        assert params["customer_email"] == "buyer@example.com"
        assert params["line_items"] == [{
            "price_data": {"currency": "usd", "product_data": {"name": "Course"}, "unit_amount": 4900},
            "quantity": 1,
        }]
        assert params["metadata"]["product_id"] == product.id
        assert params["metadata"]["has_bump"] == "false"
        assert params["metadata"]["first_name"] == "Ada"
        assert params["payment_intent_data"]["metadata"] == params["metadata"]
        assert params["success_url"] == "https://shop.example.com/checkout/success?session_id={CHECKOUT_SESSION_ID}"
        assert params["cancel_url"] == "https://shop.example.com/checkout/course"

    def test_logged_in_customer(self, client, product, user, user_headers, stripe_gateway):
        client.post("/api/checkout/create-session", headers=user_headers, json={"product_id": product.id})

        params = stripe_gateway.sessions[0]
        assert params["metadata"]["user_id"] == user.id
        assert params["customer_email"] == user.email

    def test_with_order_bump(self, client, product, order_bump, stripe_gateway):
        response = client.post("/api/checkout/create-session", json={
            "product_id": product.id, "bump_product_id": order_bump.bump_product_id})

        assert response.status_code == 200
        params = stripe_gateway.sessions[0]
        assert [item["price_data"]["unit_amount"] for item in params["line_items"]] == [4900, 900]
        assert params["line_items"][1]["price_data"]["product_data"]["name"] == "Add the workbook"
        assert params["metadata"]["has_bump"] == "true"
        assert params["metadata"]["bump_product_id"] == order_bump.bump_product_id

    def test_bump_not_offered(self, client, product, limited_product):
        response = client.post("/api/checkout/create-session", json={
            "product_id": product.id, "bump_product_id": limited_product.id})

        assert response.status_code == 400
        assert response.get_json()["error"] == "invalid_bump"

    def test_coupon_discounts_main_item_only(self, client, product, order_bump, stripe_gateway):
        coupon = Coupon(code="HALF", discount_type="percentage", discount_value=Decimal("50"))
        db.session.add(coupon)
        db.session.commit()

        client.post("/api/checkout/create-session", json={
            "product_id": product.id,
            "bump_product_id": order_bump.bump_product_id,
            "coupon_code": "half",
            "email": "buyer@example.com",
        })

        params = stripe_gateway.sessions[0]
        assert [item["price_data"]["unit_amount"] for item in params["line_items"]] == [2450, 900]
        assert params["metadata"]["has_coupon"] == "true"
        assert params["metadata"]["coupon_id"] == coupon.id
        assert params["metadata"]["discount_amount"] == "24.50"

    def test_invalid_coupon(self, client, product, stripe_gateway):
        response = client.post("/api/checkout/create-session", json={
            "product_id": product.id, "coupon_code": "MISSING"})

        assert response.status_code == 404
        assert response.get_json()["error"] == "coupon_not_found"
        assert stripe_gateway.sessions == []

    def test_inactive_product(self, client, product):
        product.is_active = False
        db.session.commit()

        response = client.post("/api/checkout/create-session", json={"product_id": product.id})

        assert response.status_code == 404
        assert response.get_json()["error"] == "product_not_found"

    def test_invalid_email(self, client, product):
        response = client.post("/api/checkout/create-session", json={
            "product_id": product.id, "email": "nope"})

        assert response.status_code == 400
        assert response.get_json()["field"] == "email"

    def test_stripe_failure(self, client, product, stripe_gateway):
        stripe_gateway.fail()

        response = client.post("/api/checkout/create-session", json={"product_id": product.id})

        assert response.status_code == 502
        assert response.get_json()["error"] == "downstream_failure"


class TestOrderBumpRoutes:

    def test_list_active_bumps(self, client, product, order_bump):
        response = client.get(f"/api/products/{product.id}/order-bumps")

        assert response.status_code == 200
        bumps = response.get_json()["order_bumps"]
        assert len(bumps) == 1
        assert bumps[0]["effective_price"] == "9.00"
        assert bumps[0]["access_duration_days"] == 7

    def test_unknown_product(self, client):
        assert client.get("/api/products/missing/order-bumps").status_code == 404

    def test_admin_creates_bump(self, client, admin_headers, product, limited_product):
        response = client.post("/api/v1/order-bumps", headers=admin_headers, json={
            "main_product_id": product.id,
            "bump_product_id": limited_product.id,
            "bump_title": "Add a membership",
        })

        assert response.status_code == 201
        body = response.get_json()
        assert body["effective_price"] == "19.00"
        assert body["bump_price"] is None
