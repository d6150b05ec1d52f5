"""
HTTP-level tests through the Flask test client.

Routes run in their own app context (and session), so rows are re-read
with reload() after a request.
"""
from datetime import timedelta

import pytest

from beautypos.models import Category, Discount, Product, StockMovement
from beautypos.time_utils import business_date

from conftest import reload


def _checkout(client, items, **body):
    payload = {"payment_method": "cash", "amount_paid": 1000, "items": items}
    payload.update(body)
    return client.post("/api/transactions", json=payload)


class TestCheckoutRoutes:
    def test_checkout_returns_committed_transaction(self, client, product_a):
        response = _checkout(
            client,
            [{"product_id": product_a.id, "quantity": 2, "unit_price": "100.00"}],
            amount_paid=250,
            customer_name="Ana",
            customer_email="ana@example.com",
        )

        assert response.status_code == 201
        txn = response.get_json()["transaction"]
        assert txn["subtotal"] == "200.00"
        assert txn["tax_amount"] == "16.00"
        assert txn["total_amount"] == "216.00"
        assert txn["change_amount"] == "34.00"
        assert txn["transaction_number"] == f"TXN-{business_date():%Y%m%d}-0001"
        assert txn["items"][0]["product_name"] == "Hydrating Face Serum"
        assert txn["items"][0]["product_sku"] == "SKN-001"
        assert txn["items"][0]["total_price"] == "200.00"

        assert reload(Product, product_a.id).stock_quantity == 8

    def test_discount_scenario(self, client, product_a, discount_10pct):
        response = _checkout(
            client,
            [{"product_id": product_a.id, "quantity": 2, "unit_price": 100}],
            discount_id=discount_10pct.id,
            amount_paid=200,
        )

        assert response.status_code == 201
        txn = response.get_json()["transaction"]
        assert txn["discount_amount"] == "20.00"
        assert txn["tax_amount"] == "14.40"
        assert txn["total_amount"] == "194.40"
        assert txn["discount"]["name"] == "Welcome 10%"

    def test_discount_not_applicable(self, client, product_a, discount_10pct):
        response = _checkout(
            client,
            [{"product_id": product_a.id, "quantity": 1, "unit_price": 50}],
            discount_id=discount_10pct.id,
        )

        assert response.status_code == 422
        assert response.get_json()["code"] == "discount_not_applicable"
        assert reload(Product, product_a.id).stock_quantity == 10

    def test_insufficient_stock(self, client, product_b):
        response = _checkout(client, [{"product_id": product_b.id, "quantity": 5, "unit_price": 25}])

        assert response.status_code == 409
        body = response.get_json()
        assert body["code"] == "insufficient_stock"
        assert body["details"] == {
            "product_id": product_b.id,
            "product_name": "Matte Liquid Lipstick",
            "available": 3,
            "requested": 5,
        }

    def test_insufficient_payment(self, client, product_a):
        response = _checkout(client, [{"product_id": product_a.id, "quantity": 1, "unit_price": 100}], amount_paid=10)
        assert response.status_code == 422
        assert response.get_json()["code"] == "insufficient_payment"

    @pytest.mark.parametrize("body, code", [
        ({"items": []}, "empty_cart"),
        ({"items": [{"product_id": 1, "quantity": 0, "unit_price": 1}]}, "invalid_line_item"),
        ({"payment_method": "barter", "items": [{"product_id": 1, "quantity": 1, "unit_price": 1}]}, "invalid_payment"),
    ])
    def test_request_errors(self, client, db_session, body, code):
        payload = {"payment_method": "cash", "amount_paid": 10}
        payload.update(body)
        response = client.post("/api/transactions", json=payload)
        assert response.status_code == 400
        assert response.get_json()["code"] == code

    def test_bad_email_is_a_validation_error(self, client, product_a):
        response = _checkout(
            client,
            [{"product_id": product_a.id, "quantity": 1, "unit_price": 100}],
            customer_email="nope",
        )
        assert response.status_code == 400

    def test_list_search_and_show(self, client, product_a):
        _checkout(client, [{"product_id": product_a.id, "quantity": 1, "unit_price": 100}], customer_name="Bea")
        _checkout(client, [{"product_id": product_a.id, "quantity": 1, "unit_price": 100}], customer_name="Cleo")

        listing = client.get("/api/transactions?search=cleo").get_json()
        assert listing["pagination"]["total"] == 1
        txn_id = listing["items"][0]["id"]

        shown = client.get(f"/api/transactions/{txn_id}")
        assert shown.status_code == 200
        assert shown.get_json()["transaction"]["customer_name"] == "Cleo"

        assert client.get("/api/transactions/9999").status_code == 404

    def test_list_date_filter(self, client, product_a):
        _checkout(client, [{"product_id": product_a.id, "quantity": 1, "unit_price": 100}])
        tomorrow = (business_date() + timedelta(days=1)).isoformat()

        assert client.get(f"/api/transactions?date_from={tomorrow}").get_json()["pagination"]["total"] == 0
        assert client.get("/api/transactions?date_from=garbage").status_code == 400

    def test_daily_and_monthly_reports(self, client, product_a):
        _checkout(client, [{"product_id": product_a.id, "quantity": 2, "unit_price": 100}], amount_paid=300)
        _checkout(client, [{"product_id": product_a.id, "quantity": 1, "unit_price": 100}])

        daily = client.get("/api/transactions/reports/daily").get_json()
        assert daily["sales"]["total_transactions"] == 2
        assert daily["sales"]["total_subtotal"]["amount"] == "300.00"
        assert daily["sales"]["total_sales"]["cents"] == 21600 + 10800

        today = business_date()
        monthly = client.get(f"/api/transactions/reports/monthly?year={today.year}&month={today.month}").get_json()
        assert monthly["daily_sales"] == [
            {"date": today.isoformat(), "transactions": 2, "total_sales": {"cents": 32400, "amount": "324.00"}}
        ]
        assert client.get("/api/transactions/reports/monthly?month=13").status_code == 400


class TestDiscountRoutes:
    def _body(self, **overrides):
        today = business_date()
        body = {
            "name": "Spring",
            "type": "percentage",
            "value": 1500,
            "minimum_amount_cents": 5000,
            "valid_from": today.isoformat(),
            "valid_until": (today + timedelta(days=10)).isoformat(),
        }
        body.update(overrides)
        return body

    def test_create_and_list_active(self, client, db_session):
        created = client.post("/api/discounts", json=self._body())
        assert created.status_code == 201
        assert created.get_json()["discount"]["minimum_amount"] == "50.00"

        active = client.get("/api/discounts/active").get_json()["discounts"]
        assert [d["name"] for d in active] == ["Spring"]

    def test_percentage_over_100_rejected(self, client, db_session):
        response = client.post("/api/discounts", json=self._body(value=10001))
        assert response.status_code == 422

    def test_window_must_be_ordered(self, client, db_session):
        today = business_date()
        response = client.post("/api/discounts", json=self._body(
            valid_from=today.isoformat(),
            valid_until=(today - timedelta(days=1)).isoformat(),
        ))
        assert response.status_code == 400

    def test_unknown_type_rejected(self, client, db_session):
        assert client.post("/api/discounts", json=self._body(type="bogo")).status_code == 400

    def test_update(self, client, discount_10pct):
        response = client.put(f"/api/discounts/{discount_10pct.id}", json={"is_active": False})
        assert response.status_code == 200
        assert reload(Discount, discount_10pct.id).is_active is False

    def test_update_checks_merged_type(self, client, discount_10pct):
        response = client.patch(f"/api/discounts/{discount_10pct.id}", json={"value": 20000})
        assert response.status_code == 422

    def test_delete_used_discount_refused(self, client, product_a, discount_10pct):
        _checkout(
            client,
            [{"product_id": product_a.id, "quantity": 2, "unit_price": 100}],
            discount_id=discount_10pct.id,
            amount_paid=200,
        )
        response = client.delete(f"/api/discounts/{discount_10pct.id}")
        assert response.status_code == 422

    def test_delete_unused_discount(self, client, discount_10pct):
        assert client.delete(f"/api/discounts/{discount_10pct.id}").status_code == 200
        assert client.get(f"/api/discounts/{discount_10pct.id}").status_code == 404


class TestProductRoutes:
    def test_create_and_duplicate(self, client, category):
        body = {"sku": "FRG-001", "name": "Rose Eau de Parfum", "price_cents": 6500, "category_id": category.id}
        assert client.post("/api/products", json=body).status_code == 201
        assert client.post("/api/products", json=body).status_code == 409

    def test_create_rejects_negative_price(self, client, db_session):
        response = client.post("/api/products", json={"sku": "X-1", "name": "X", "price_cents": -1})
        assert response.status_code == 400

    def test_create_rejects_unknown_field(self, client, db_session):
        response = client.post("/api/products", json={"sku": "X-1", "name": "X", "price_cents": 1, "colour": "red"})
        assert response.status_code == 400

    def test_adjust_stock(self, client, product_b):
        response = client.post(
            f"/api/products/{product_b.id}/adjust-stock",
            json={"type": "in", "quantity": 7, "reason": "Delivery"},
        )
        assert response.status_code == 200
        assert response.get_json()["product"]["stock_quantity"] == 10

    def test_adjust_stock_unknown_product(self, client, db_session):
        response = client.post("/api/products/9999/adjust-stock", json={"type": "in", "quantity": 1, "reason": "x"})
        assert response.status_code == 404

    def test_low_stock_and_deactivate(self, client, product_a, product_b):
        low = client.get("/api/products/low-stock").get_json()["products"]
        assert [p["sku"] for p in low] == ["MKP-001"]

        assert client.delete(f"/api/products/{product_b.id}").status_code == 200
        assert client.get("/api/products/low-stock").get_json()["products"] == []
        assert client.get(f"/api/products/{product_b.id}").get_json()["product"]["is_active"] is False

    def test_lookup(self, client, product_a):
        assert client.get("/api/products/lookup/4006381333931").get_json()["product"]["sku"] == "SKN-001"
        assert client.get("/api/products/lookup/000").status_code == 404

    def test_categories(self, client, db_session):
        assert client.post("/api/categories", json={"name": "Haircare"}).status_code == 201
        assert client.post("/api/categories", json={"name": "Haircare"}).status_code == 409
        names = [c["name"] for c in client.get("/api/categories").get_json()["categories"]]
        assert names == ["Haircare"]


class TestProductStockHistory:
    def test_create_then_edit_stock_leaves_two_movements(self, client, db_session, category):
        created = client.post("/api/products", json={
            "sku": "FRG-001", "name": "Rose Eau de Parfum", "price_cents": 6500,
            "category_id": category.id, "stock_quantity": 12,
        })
        assert created.status_code == 201
        product_id = created.get_json()["product"]["id"]
        assert created.get_json()["product"]["stock_quantity"] == 12

        updated = client.put(f"/api/products/{product_id}", json={"stock_quantity": 3})
        assert updated.status_code == 200
        assert updated.get_json()["product"]["stock_quantity"] == 3

        reload(Product, product_id)
        movements = db_session.query(StockMovement).filter_by(product_id=product_id).order_by(StockMovement.id).all()
        assert [(m.type, m.previous_stock, m.new_stock) for m in movements] == [
            ("in", 0, 12),
            ("adjustment", 12, 3),
        ]
        assert movements[0].reference_number == "INIT-FRG-001"

    def test_edit_after_a_sale_starts_from_the_sold_down_level(self, client, db_session, product_a):
        _checkout(client, [{"product_id": product_a.id, "quantity": 4, "unit_price": 100}])

        response = client.put(f"/api/products/{product_a.id}", json={"stock_quantity": 5})
        assert response.status_code == 200

        reload(Product, product_a.id)
        adjustment = db_session.query(StockMovement).filter_by(product_id=product_a.id, type="adjustment").one()
        assert (adjustment.previous_stock, adjustment.new_stock) == (6, 5)

    def test_edit_unknown_product(self, client, db_session):
        assert client.put("/api/products/9999", json={"stock_quantity": 1}).status_code == 404

    def test_negative_stock_rejected(self, client, product_a):
        assert client.put(f"/api/products/{product_a.id}", json={"stock_quantity": -1}).status_code == 400
        assert reload(Product, product_a.id).stock_quantity == 10


class TestCategoryRoutes:
    def test_show_includes_products(self, client, product_a):
        response = client.get(f"/api/categories/{product_a.category_id}")
        assert response.status_code == 200
        category = response.get_json()["category"]
        assert category["name"] == "Skincare"
        assert [p["sku"] for p in category["products"]] == ["SKN-001"]

        assert client.get("/api/categories/9999").status_code == 404

    def test_update(self, client, category):
        response = client.put(f"/api/categories/{category.id}", json={"name": "Skin", "description": "Face and body"})
        assert response.status_code == 200
        assert response.get_json()["category"]["name"] == "Skin"
        assert reload(Category, category.id).description == "Face and body"

    def test_update_duplicate_name(self, client, category):
        client.post("/api/categories", json={"name": "Makeup"})
        response = client.put(f"/api/categories/{category.id}", json={"name": "Makeup"})
        assert response.status_code == 409

    def test_update_unknown_field(self, client, category):
        assert client.put(f"/api/categories/{category.id}", json={"colour": "pink"}).status_code == 400

    def test_delete_refused_while_products_remain(self, client, product_a):
        response = client.delete(f"/api/categories/{product_a.category_id}")
        assert response.status_code == 422
        assert reload(Category, product_a.category_id) is not None

    def test_delete_empty_category(self, client, category):
        assert client.delete(f"/api/categories/{category.id}").status_code == 200
        assert client.get(f"/api/categories/{category.id}").status_code == 404
        assert client.delete(f"/api/categories/{category.id}").status_code == 404


class TestFeedbackRoutes:
    def test_submit_and_summary(self, client, product_a):
        txn = _checkout(client, [{"product_id": product_a.id, "quantity": 1, "unit_price": 100}]).get_json()["transaction"]

        response = client.post("/api/feedback", json={
            "transaction_id": txn["id"],
            "customer_name": "Ana",
            "customer_email": "ana@example.com",
            "rating": 4,
        })
        assert response.status_code == 201

        summary = client.get("/api/feedback/analytics/summary").get_json()["data"]
        assert summary["total_feedback"] == 1
        assert summary["average_rating"] == 4.0

        listing = client.get("/api/feedback?rating=4").get_json()
        assert listing["pagination"]["total"] == 1

    def test_invalid_rating(self, client, product_a):
        txn = _checkout(client, [{"product_id": product_a.id, "quantity": 1, "unit_price": 100}]).get_json()["transaction"]
        response = client.post("/api/feedback", json={
            "transaction_id": txn["id"],
            "customer_name": "Ana",
            "customer_email": "ana@example.com",
            "rating": 9,
        })
        assert response.status_code == 422

    def test_unknown_transaction(self, client, db_session):
        response = client.post("/api/feedback", json={
            "transaction_id": 4242,
            "customer_name": "Ana",
            "customer_email": "ana@example.com",
            "rating": 4,
        })
        assert response.status_code == 404


def test_health(client, db_session):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.get_json()["database"]["status"] == "healthy"
