"""
HTTP route tests.

Verifies request parsing, JSON payloads and the error -> status mapping.
"""

import pytest

from stockledger.time_utils import utcnow


class TestProductRoutes:

    def test_get_product(self, client, product_a):
        resp = client.get(f"/api/products/{product_a.id}")
        assert resp.status_code == 200
        assert resp.json["product"]["name"] == "Product A"
        assert resp.json["product"]["stock_quantity"] == "50.000"

    def test_unknown_product(self, client, db_session):
        resp = client.get("/api/products/999999")
        assert resp.status_code == 404
        assert resp.json["code"] == "not_found"

    def test_adjust_stock(self, client, product_a):
        resp = client.post(
            f"/api/products/{product_a.id}/stock",
            json={"quantity_delta": 50, "adjustment_type": "add", "new_cost_cents": 2000},
        )
        assert resp.status_code == 201
        assert resp.json["product"]["stock_quantity"] == "100.000"
        assert resp.json["product"]["cost_price_cents"] == 1500
        assert resp.json["adjustment"]["adjustment_type"] == "add"

    def test_adjust_stock_missing_fields(self, client, product_a):
        resp = client.post(f"/api/products/{product_a.id}/stock", json={"quantity_delta": 5})
        assert resp.status_code == 400

    def test_adjust_stock_insufficient(self, client, product_a):
        resp = client.post(
            f"/api/products/{product_a.id}/stock",
            json={"quantity_delta": -51, "adjustment_type": "remove"},
        )
        assert resp.status_code == 409
        assert resp.json["code"] == "insufficient_stock"

    def test_price_update_and_history(self, client, product_a):
        resp = client.post(f"/api/products/{product_a.id}/price", json={"selling_price_cents": 2500})
        assert resp.status_code == 200

        history = client.get(f"/api/products/{product_a.id}/price-history").json["price_history"]
        assert len(history) == 1
        assert history[0]["change_type"] == "selling_price"

    def test_delete_and_restore(self, client, product_a):
        resp = client.delete(f"/api/products/{product_a.id}")
        assert resp.json["product"]["is_deleted"] is True

        resp = client.post(
            "/api/sales",
            json={"lines": [{"product_id": product_a.id, "quantity": 1}], "payment": {"amount_paid_cents": 2000}},
        )
        assert resp.status_code == 409
        assert resp.json["code"] == "product_unavailable"

        resp = client.post(f"/api/products/{product_a.id}/restore")
        assert resp.json["product"]["is_deleted"] is False

    def test_low_stock(self, client, make_product):
        make_product(name="Nearly out", stock_quantity=1, min_stock_threshold=3)
        make_product(name="Plenty", stock_quantity=30)

        resp = client.get("/api/products/low-stock")
        assert [p["name"] for p in resp.json["products"]] == ["Nearly out"]

    def test_adjustments_listed(self, client, product_a):
        client.post(f"/api/products/{product_a.id}/stock", json={"quantity_delta": -1, "adjustment_type": "remove"})

        resp = client.get(f"/api/products/{product_a.id}/adjustments")
        assert resp.status_code == 200
        assert len(resp.json["adjustments"]) == 1


class TestSaleRoutes:

    def _sell(self, client, product, quantity=3, **payload):
        body = {
            "lines": [{"product_id": product.id, "quantity": quantity}],
            "payment_method": "cash",
            "payment": {"amount_paid_cents": 6000},
        }
        body.update(payload)
        return client.post("/api/sales", json=body)

    def test_finalize_sale(self, client, product_a):
        resp = self._sell(client, product_a, discount={"type": "percentage", "value": 10})

        assert resp.status_code == 201
        sale = resp.json["sale"]
        assert sale["total_cents"] == 5400
        assert sale["change_cents"] == 600
        assert len(sale["items"]) == 1
        assert resp.json["receipt"]["receipt_number"] == sale["receipt_number"]

    def test_tax_from_config(self, app, client, product_a, monkeypatch):
        monkeypatch.setitem(app.config, "ENABLE_TAX", True)
        monkeypatch.setitem(app.config, "TAX_RATE_PERCENT", "5")

        resp = self._sell(client, product_a, quantity=1, payment={"amount_paid_cents": 2100})

        assert resp.status_code == 201
        assert resp.json["sale"]["tax_cents"] == 100

    def test_missing_lines(self, client, db_session):
        resp = client.post("/api/sales", json={})
        assert resp.status_code == 400

    def test_insufficient_payment(self, client, product_a):
        resp = self._sell(client, product_a, payment={"amount_paid_cents": 100})
        assert resp.status_code == 400
        assert resp.json["code"] == "insufficient_payment"
        assert resp.json["details"]["required_cents"] == 6000

    def test_get_list_and_receipt(self, client, product_a):
        sale_id = self._sell(client, product_a).json["sale"]["id"]

        assert client.get(f"/api/sales/{sale_id}").json["sale"]["items"][0]["returned_quantity"] == "0"
        assert len(client.get("/api/sales").json["sales"]) == 1
        assert client.get(f"/api/sales/{sale_id}/receipt").json["receipt"]["total_cents"] == 6000

    @pytest.mark.parametrize("product_id", ["abc", 1.7])
    def test_malformed_product_id(self, client, product_a, product_id):
        resp = client.post(
            "/api/sales",
            json={"lines": [{"product_id": product_id, "quantity": 1}], "payment": {"amount_paid_cents": 2000}},
        )

        assert resp.status_code == 400
        assert resp.json["code"] == "validation_error"
        assert resp.json["details"]["field"] == "product_id"

    def test_malformed_sale_item_id(self, client, product_a):
        sale = self._sell(client, product_a).json["sale"]

        resp = client.post(
            f"/api/sales/{sale['id']}/returns",
            json={"lines": [{"sale_item_id": "abc", "return_quantity": 1}]},
        )

        assert resp.status_code == 400
        assert resp.json["code"] == "validation_error"

    def test_bad_date_filter(self, client, db_session):
        resp = client.get("/api/sales?start=yesterday")
        assert resp.status_code == 400

    def test_return_and_cancel(self, client, product_a):
        sale = self._sell(client, product_a).json["sale"]
        item_id = sale["items"][0]["id"]

        resp = client.post(
            f"/api/sales/{sale['id']}/returns",
            json={"lines": [{"sale_item_id": item_id, "return_quantity": 1}]},
        )
        assert resp.status_code == 201
        assert resp.json["return"]["refund_cents"] == 2000

        resp = client.post(
            f"/api/sales/{sale['id']}/returns",
            json={"lines": [{"sale_item_id": item_id, "return_quantity": 5}]},
        )
        assert resp.status_code == 409
        assert resp.json["code"] == "excessive_return"

        resp = client.post(f"/api/sales/{sale['id']}/cancel")
        assert resp.status_code == 201
        assert resp.json["sale"]["is_returned"] is True

        resp = client.post(f"/api/sales/{sale['id']}/cancel")
        assert resp.status_code == 409
        assert resp.json["code"] == "sale_already_returned"

        assert len(client.get(f"/api/sales/{sale['id']}/returns").json["returns"]) == 2


class TestReportAndSystemRoutes:

    def test_inventory_report(self, client, product_a):
        resp = client.get("/api/reports/inventory")
        assert resp.json["inventory_value_cents"] == 50000

    def test_profit_report(self, client, product_a):
        client.post(
            "/api/sales",
            json={"lines": [{"product_id": product_a.id, "quantity": 1}], "payment": {"amount_paid_cents": 2000}},
        )

        resp = client.get("/api/reports/profit?start=2000-01-01T00:00:00Z")
        assert resp.status_code == 200
        assert resp.json["profit_cents"] == 1000
        assert resp.json["start"] == "2000-01-01T00:00:00Z"

    @pytest.mark.parametrize("query", ["start=nope", "end=2025-13-01"])
    def test_profit_report_bad_dates(self, client, db_session, query):
        assert client.get(f"/api/reports/profit?{query}").status_code == 400

    def test_health(self, client, db_session):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "healthy"

    def test_sales_ledger_reports(self, client, product_a):
        client.post(
            "/api/sales",
            json={"lines": [{"product_id": product_a.id, "quantity": 2}], "payment_method": "card"},
        )

        today = client.get("/api/reports/today").json
        assert today["total_cents"] == 4000
        assert today["sale_count"] == 1

        methods = client.get("/api/reports/payment-methods").json["methods"]
        assert methods == [{"method": "card", "revenue_cents": 4000, "card_amount_cents": 4000, "sale_count": 1}]

        products = client.get("/api/reports/top-products?sort_by=profit&limit=3").json["products"]
        assert [p["product_id"] for p in products] == [product_a.id]
        assert products[0]["profit_cents"] == 2000

    def test_top_products_bad_sort(self, client, db_session):
        resp = client.get("/api/reports/top-products?sort_by=margin")
        assert resp.status_code == 400
        assert resp.json["code"] == "validation_error"

    def test_profit_report_bare_date_end_includes_the_day(self, client, product_a):
        client.post(
            "/api/sales",
            json={"lines": [{"product_id": product_a.id, "quantity": 1}], "payment": {"amount_paid_cents": 2000}},
        )
        today = utcnow().date().isoformat()

        resp = client.get(f"/api/reports/profit?start={today}&end={today}")

        assert resp.status_code == 200
        assert resp.json["sale_count"] == 1

    def test_reversed_period_rejected(self, client, db_session):
        assert client.get("/api/reports/profit?start=2025-04-13&end=2025-04-12").status_code == 400
        assert client.get("/api/sales?start=2025-04-13&end=2025-04-12").status_code == 400
