"""HTTP surface: JSON shapes and error kind to status mapping."""

import pytest

from pharmapos.models import Order

from conftest import item


def test_health(client, db_session):
    res = client.get("/api/health")
    assert res.status_code == 200
    assert res.get_json()["database"]["status"] == "healthy"


class TestProductRoutes:
    def test_create_and_fetch(self, client, db_session):
        res = client.post("/api/products", json={
            "sku": "VITC-1000", "name": "Vitamin C 1000mg", "price_cents": 899, "stock_quantity": 24,
        })
        assert res.status_code == 201
        product_id = res.get_json()["id"]

        res = client.get(f"/api/products/{product_id}")
        assert res.get_json()["stock_quantity"] == 24

    def test_validation_error_is_400(self, client, db_session):
        res = client.post("/api/products", json={"sku": "X"})
        assert res.status_code == 400
        assert res.get_json()["kind"] == "validation"

    def test_unknown_product_is_404(self, client, db_session):
        res = client.get("/api/products/999")
        assert res.status_code == 404
        assert res.get_json()["kind"] == "not_found"

    def test_duplicate_sku_is_409(self, client, db_session, make_product):
        make_product(sku="DUP")
        res = client.post("/api/products", json={"sku": "DUP", "name": "Again", "price_cents": 1})
        assert res.status_code == 409
        assert res.get_json()["kind"] == "conflict"

    def test_list_with_search(self, client, db_session, make_product):
        make_product(name="Loratadine")
        make_product(name="Omeprazole")
        res = client.get("/api/products?q=lora")
        assert res.get_json()["count"] == 1


class TestOrderRoutes:
    def test_place_order(self, client, db_session, make_product):
        p = make_product(stock=5, price_cents=300)

        res = client.post("/api/orders", json={"items": [item(p, 2)]})

        assert res.status_code == 201
        order = res.get_json()["order"]
        assert order["total_amount_cents"] == 600
        assert order["items"][0]["sku"] == p.sku

    def test_insufficient_stock_is_409_with_details(self, client, db_session, make_product):
        p = make_product(stock=1)

        res = client.post("/api/orders", json={"items": [item(p, 3)]})

        assert res.status_code == 409
        body = res.get_json()
        assert body["kind"] == "insufficient_stock"
        assert body["details"]["items"][0]["on_hand"] == 1

    def test_idempotency_header(self, client, db_session, make_product):
        p = make_product(stock=10)
        headers = {"Idempotency-Key": "till-2-0042"}

        first = client.post("/api/orders", json={"items": [item(p, 1)]}, headers=headers)
        second = client.post("/api/orders", json={"items": [item(p, 1)]}, headers=headers)

        assert first.get_json()["order"]["id"] == second.get_json()["order"]["id"]

    def test_quote_clamps_to_stock_without_writing(self, client, db_session, make_product):
        p = make_product(stock=2, price_cents=1000)

        res = client.post("/api/orders/quote", json={
            "items": [{"product_id": p.id, "quantity": 5}],
            "tax_rate": "0.1",
        })

        body = res.get_json()
        assert res.status_code == 200
        assert body["cart"]["items"][0]["quantity"] == 2
        assert body["totals"]["total_cents"] == 2200
        db_session.expire_all()
        assert p.stock_quantity == 2

    def test_checkout(self, client, db_session, make_product, customer):
        p = make_product(stock=4, price_cents=500)

        res = client.post("/api/orders/checkout", json={
            "items": [{"product_id": p.id, "quantity": 2, "discount_cents": 100}],
            "customer_id": customer.id,
            "tax_rate": "0",
        })

        assert res.status_code == 201
        order = res.get_json()["order"]
        assert order["total_amount_cents"] == 900
        assert order["customer_name"] == "Amina Yusuf"

    def test_checkout_short_stock_is_409_not_a_smaller_sale(self, client, db_session, make_product):
        p = make_product(stock=2, price_cents=1000)

        res = client.post("/api/orders/checkout", json={"items": [{"product_id": p.id, "quantity": 5}]})

        assert res.status_code == 409
        body = res.get_json()
        assert body["kind"] == "insufficient_stock"
        assert body["details"]["items"] == [{"product_id": p.id, "requested_quantity": 5, "on_hand": 2}]
        db_session.expire_all()
        assert p.stock_quantity == 2

    def test_checkout_out_of_stock_is_409(self, client, db_session, make_product):
        p = make_product(stock=0)

        res = client.post("/api/orders/checkout", json={"items": [{"product_id": p.id, "quantity": 1}]})

        assert res.status_code == 409
        assert res.get_json()["kind"] == "insufficient_stock"

    @pytest.mark.parametrize("body", [
        {"items": [{"product_id": "<p>", "quantity": 1, "discount_cents": "abc"}]},
        {"items": [{"product_id": "<p>", "quantity": 1, "discount_cents": -5}]},
        {"items": [{"product_id": "<p>", "quantity": True}]},
        {"items": [{"product_id": True, "quantity": 1}]},
        {"items": [{"product_id": "<p>", "quantity": 1}], "discount_amount_cents": "10"},
        {"items": [{"product_id": "<p>", "quantity": 1}], "discount_amount_cents": 2.5},
    ])
    @pytest.mark.parametrize("path", ["/api/orders/quote", "/api/orders/checkout"])
    def test_malformed_cart_lines_are_400(self, client, db_session, make_product, path, body):
        p = make_product(stock=5)
        lines = [
            {**line, "product_id": p.id if line["product_id"] == "<p>" else line["product_id"]}
            for line in body["items"]
        ]

        res = client.post(path, json={**body, "items": lines})

        assert res.status_code == 400
        assert res.get_json()["kind"] == "validation"
        assert db_session.query(Order).count() == 0

    def test_patch_notes_and_payment_method(self, client, db_session, make_product):
        p = make_product(stock=5)
        order_id = client.post("/api/orders", json={"items": [item(p, 1)]}).get_json()["order"]["id"]

        res = client.patch(f"/api/orders/{order_id}", json={"notes": "collect Friday", "payment_method": "card"})

        assert res.status_code == 200
        order = res.get_json()["order"]
        assert order["notes"] == "collect Friday"
        assert order["payment_method"] == "card"

    @pytest.mark.parametrize("payload", [
        {"status": "completed"},
        {"total_amount_cents": 1},
        {"payment_method": ""},
    ])
    def test_patch_rejects_fixed_fields(self, client, db_session, make_product, payload):
        p = make_product(stock=5)
        order_id = client.post("/api/orders", json={"items": [item(p, 1)]}).get_json()["order"]["id"]

        res = client.patch(f"/api/orders/{order_id}", json=payload)

        assert res.status_code == 400
        assert client.get(f"/api/orders/{order_id}").get_json()["order"]["status"] == "pending"

    def test_double_cancel_is_409(self, client, db_session, make_product):
        p = make_product(stock=5)
        order_id = client.post("/api/orders", json={"items": [item(p, 1)]}).get_json()["order"]["id"]

        first = client.patch(f"/api/orders/{order_id}/status", json={"status": "cancelled"})
        second = client.patch(f"/api/orders/{order_id}/status", json={"status": "cancelled"})

        assert first.status_code == 200
        assert second.status_code == 409
        assert second.get_json()["kind"] == "invalid_transition"

    def test_missing_status_is_400(self, client, db_session, make_product):
        p = make_product(stock=5)
        order_id = client.post("/api/orders", json={"items": [item(p, 1)]}).get_json()["order"]["id"]
        assert client.patch(f"/api/orders/{order_id}/status", json={}).status_code == 400

    def test_refund_then_restock(self, client, db_session, make_product):
        p = make_product(stock=5)
        order_id = client.post("/api/orders", json={"items": [item(p, 2)]}).get_json()["order"]["id"]

        client.patch(f"/api/orders/{order_id}/payment-status", json={"payment_status": "paid"})
        client.patch(f"/api/orders/{order_id}/payment-status", json={"payment_status": "refunded"})
        res = client.post(f"/api/orders/{order_id}/restock", json={})

        assert res.status_code == 200
        assert res.get_json()["order"]["restocked_at"] is not None
        db_session.expire_all()
        assert p.stock_quantity == 5

    def test_list_orders(self, client, db_session, make_product):
        p = make_product(stock=5)
        client.post("/api/orders", json={"items": [item(p, 1)]})
        body = client.get("/api/orders?status=pending").get_json()
        assert body["count"] == 1
        assert "items" not in body["items"][0]


class TestInventoryRoutes:
    def test_adjust_and_history(self, client, db_session, make_product):
        p = make_product(stock=3)

        res = client.post(f"/api/inventory/{p.id}/adjust", json={"direction": "in", "quantity": 7, "notes": "delivery"})
        assert res.status_code == 201

        history = client.get(f"/api/inventory/{p.id}/history?limit=1").get_json()
        assert history["count"] == 1
        assert history["total"] == 2
        assert history["items"][0]["notes"] == "delivery"

    def test_adjust_bad_direction_is_400(self, client, db_session, make_product):
        p = make_product(stock=3)
        res = client.post(f"/api/inventory/{p.id}/adjust", json={"direction": "up", "quantity": 1})
        assert res.status_code == 400

    def test_low_stock_and_reconcile(self, client, db_session, make_product):
        p = make_product(stock=2, reorder_level=5)

        assert client.get("/api/inventory/low-stock").get_json()["count"] == 1
        assert client.get(f"/api/inventory/{p.id}/reconcile").get_json()["balanced"] is True


def test_dashboard(client, db_session, make_product):
    p = make_product(stock=5, price_cents=1000)
    order_id = client.post("/api/orders", json={"items": [item(p, 1)]}).get_json()["order"]["id"]
    client.patch(f"/api/orders/{order_id}/status", json={"status": "processing"})
    client.patch(f"/api/orders/{order_id}/status", json={"status": "completed"})

    body = client.get("/api/dashboard?days=3").get_json()

    assert body["total_orders"] == 1
    assert body["total_revenue_cents"] == 1000
    assert len(body["sales_trend"]) == 3
    assert body["sales_trend"][-1]["total_cents"] == 1000

    profit = client.get("/api/dashboard/profit").get_json()
    assert body["gross_profit_cents"] == 500
    assert profit["products"][0]["cost_cents"] == 500
    assert profit["margin_percent"] == "100.00"


def test_customer_routes(client, db_session):
    res = client.post("/api/customers", json={"name": "Lena Park", "phone": "555-0303"})
    assert res.status_code == 201
    customer_id = res.get_json()["id"]

    assert client.get("/api/customers?q=lena").get_json()["count"] == 1
    assert client.delete(f"/api/customers/{customer_id}").status_code == 204
    assert client.get(f"/api/customers/{customer_id}").status_code == 404


def test_supplier_routes(client, db_session):
    res = client.post("/api/suppliers", json={"name": "MedSupply Co", "phone": "555-0404"})
    assert res.status_code == 201
    supplier_id = res.get_json()["id"]

    product = client.post("/api/products", json={
        "sku": "CET-10", "name": "Cetirizine 10mg", "price_cents": 899,
        "category": "Allergy", "supplier_id": supplier_id,
    }).get_json()
    assert product["supplier_name"] == "MedSupply Co"
    assert client.get(f"/api/suppliers/{supplier_id}").get_json()["product_count"] == 1
    assert client.get("/api/products?category=Allergy").get_json()["count"] == 1
    assert client.get("/api/products/categories").get_json()["items"] == ["Allergy"]

    busy = client.delete(f"/api/suppliers/{supplier_id}")
    assert busy.status_code == 409

    client.patch(f"/api/products/{product['id']}", json={"supplier_id": None})
    assert client.patch(f"/api/suppliers/{supplier_id}", json={"email": "sales@medsupply.test"}).status_code == 200
    assert client.delete(f"/api/suppliers/{supplier_id}").status_code == 204
    assert client.get("/api/suppliers").get_json()["count"] == 0


def test_unknown_supplier_on_product_is_404(client, db_session):
    res = client.post("/api/products", json={"sku": "X-1", "name": "X", "price_cents": 1, "supplier_id": 77})
    assert res.status_code == 404
    assert res.get_json()["details"] == {"supplier_id": 77}
