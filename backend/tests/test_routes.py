"""
HTTP API tests through the Flask test client.

Services are covered in their own modules; these check request parsing,
identity handling, status codes and response shapes.
"""

import json

from tillbook.services import shift_feed

from conftest import CASHIER, actor_headers


def _start(client, float_cents=1000, actor=CASHIER):
    return client.post("/api/shifts", json={"float_cents": float_cents}, headers=actor_headers(actor))


class TestIdentity:
    def test_missing_actor_header(self, client, db_session):
        response = client.post("/api/shifts", json={"float_cents": 0})
        assert response.status_code == 401

    def test_overlong_actor_header(self, client, db_session):
        response = _start(client, actor="x" * 65)
        assert response.status_code == 400


class TestShiftRoutes:
    def test_start_and_duplicate(self, client, db_session):
        response = _start(client)
        assert response.status_code == 201
        body = response.get_json()
        assert body["shift"]["status"] == "active"
        assert body["balance"]["balance"]["real_time_balance_cents"] == 1000

        assert _start(client).status_code == 409

    def test_invalid_float(self, client, db_session):
        assert _start(client, float_cents=-5).status_code == 400
        assert _start(client, float_cents=10.5).status_code == 400

    def test_active_shift(self, client, db_session):
        assert client.get("/api/shifts/active", headers=actor_headers()).get_json()["shift"] is None
        shift_id = _start(client).get_json()["shift"]["id"]
        assert client.get("/api/shifts/active", headers=actor_headers()).get_json()["shift"]["id"] == shift_id

    def test_cash_movements_and_reconcile(self, client, db_session):
        shift_id = _start(client).get_json()["shift"]["id"]
        headers = actor_headers()

        cash_in = client.post(f"/api/shifts/{shift_id}/cash-in", json={"amount_cents": 500}, headers=headers)
        assert cash_in.status_code == 201
        assert cash_in.get_json()["balance"]["balance"]["real_time_balance_cents"] == 1500

        cash_out = client.post(
            f"/api/shifts/{shift_id}/cash-out",
            json={"amount_cents": 200, "description": "Cash drop"},
            headers=headers,
        )
        assert cash_out.get_json()["transaction"]["description"] == "Cash drop"

        recon = client.post(f"/api/shifts/{shift_id}/reconcile", json={"declared_cents": 1250}, headers=headers)
        assert recon.status_code == 201
        body = recon.get_json()
        assert body["status"] == "short"
        assert body["difference_cents"] == -50
        assert body["balance"]["real_time_balance_cents"] == 1250

        history = client.get(f"/api/shifts/{shift_id}/reconciliations", headers=headers).get_json()
        assert len(history["reconciliations"]) == 1

        ledger = client.get(f"/api/shifts/{shift_id}/transactions", headers=headers).get_json()
        assert [t["type"] for t in ledger["transactions"]] == [
            "float", "cash_in", "cash_out", "reconciliation_adjustment",
        ]

    def test_zero_cash_in_rejected(self, client, db_session):
        shift_id = _start(client).get_json()["shift"]["id"]
        response = client.post(f"/api/shifts/{shift_id}/cash-in", json={"amount_cents": 0}, headers=actor_headers())
        assert response.status_code == 400

    def test_end_shift_with_count(self, client, db_session):
        shift_id = _start(client).get_json()["shift"]["id"]

        response = client.post(f"/api/shifts/{shift_id}/end", json={"counted_cash_cents": 1100}, headers=actor_headers())

        assert response.status_code == 200
        body = response.get_json()
        assert body["shift"]["status"] == "ended"
        assert body["closing_reconciliation"]["difference_cents"] == 100
        assert body["balance"]["balance"]["real_time_balance_cents"] == 1100

        again = client.post(f"/api/shifts/{shift_id}/end", headers=actor_headers())
        assert again.status_code == 409

    def test_unknown_shift_is_404(self, client, db_session):
        headers = actor_headers()
        assert client.get("/api/shifts/4040", headers=headers).status_code == 404
        assert client.get("/api/shifts/4040/balance", headers=headers).status_code == 404
        assert client.post("/api/shifts/4040/cash-in", json={"amount_cents": 1}, headers=headers).status_code == 404

    def test_events_stream_starts_with_current_balance(self, client, db_session):
        shift_id = _start(client).get_json()["shift"]["id"]

        response = client.get(f"/api/shifts/{shift_id}/events?max_events=1", headers=actor_headers())

        assert response.status_code == 200
        assert response.mimetype == "text/event-stream"
        text = response.get_data(as_text=True)
        assert text.startswith("id: ")
        assert "event: balance" in text
        data_line = next(line for line in text.splitlines() if line.startswith("data: "))
        payload = json.loads(data_line[len("data: "):])
        assert payload["shift_id"] == shift_id
        assert payload["balance"]["real_time_balance_cents"] == 1000
        assert shift_feed.feed.subscriber_count(shift_id) == 0


class TestCheckoutRoutes:
    def _product(self, client, price_cents=350, stock_quantity=5):
        response = client.post(
            "/api/products",
            json={"sku": "SUGAR-1", "name": "Sugar 1kg", "price_cents": price_cents,
                  "cost_cents": 200, "stock_quantity": stock_quantity},
            headers=actor_headers(),
        )
        assert response.status_code == 201
        return response.get_json()["product"]

    def test_cash_checkout(self, client, db_session):
        _start(client)
        product = self._product(client)

        response = client.post(
            "/api/checkout",
            json={
                "payment_method": "cash",
                "items": [{"product_id": product["id"], "quantity": 1, "unit_price_cents": 350}],
                "cash_received_cents": 400,
                "total_cents": 350,
            },
            headers=actor_headers(),
        )

        assert response.status_code == 201
        body = response.get_json()
        assert body["change_cents"] == 50
        assert body["warnings"] == []
        assert body["balance"]["balance"]["real_time_balance_cents"] == 1300

        sale = client.get(f"/api/sales/{body['sale']['id']}", headers=actor_headers()).get_json()["sale"]
        assert [p["payment_type"] for p in sale["payments"]] == ["cash"]
        assert sale["line_items"][0]["stock_status"] == "decremented"

        journal = client.post(f"/api/journals/sales/{body['sale']['id']}", headers=actor_headers())
        assert journal.status_code == 200
        assert journal.get_json()["status"] == "already_posted"

    def test_cash_checkout_without_shift_is_conflict(self, client, db_session):
        product = self._product(client)
        response = client.post(
            "/api/checkout",
            json={"payment_method": "cash", "items": [{"product_id": product["id"], "quantity": 1, "unit_price_cents": 350}]},
            headers=actor_headers(),
        )
        assert response.status_code == 409

    def test_empty_cart_is_bad_request(self, client, db_session):
        _start(client)
        response = client.post("/api/checkout", json={"payment_method": "cash", "items": []}, headers=actor_headers())
        assert response.status_code == 400

    def test_huge_quantity_is_bad_request(self, client, db_session):
        product = self._product(client)
        response = client.post(
            "/api/checkout",
            json={"payment_method": "card",
                  "items": [{"product_id": product["id"], "quantity": 10**13, "unit_price_cents": 350}]},
            headers=actor_headers(),
        )
        assert response.status_code == 400
        assert "cannot exceed" in response.get_json()["error"]

    def test_split_checkout(self, client, db_session):
        _start(client)
        product = self._product(client, price_cents=1000)
        response = client.post(
            "/api/checkout",
            json={
                "payment_method": "split",
                "items": [{"product_id": product["id"], "quantity": 1, "unit_price_cents": 1000}],
                "split": {"cash_cents": 400, "mpesa_cents": 600},
            },
            headers=actor_headers(),
        )
        assert response.status_code == 201
        assert sorted(p["payment_type"] for p in response.get_json()["payments"]) == ["cash", "mpesa"]

    def test_stock_route(self, client, db_session):
        product = self._product(client, stock_quantity=1)
        url = f"/api/products/{product['id']}/stock"

        assert client.post(url, json={"quantity_change": -2}, headers=actor_headers()).status_code == 409
        ok = client.post(url, json={"quantity_change": 4}, headers=actor_headers())
        assert ok.status_code == 200
        assert ok.get_json()["current_stock"] == 5
        missing = client.post("/api/products/999/stock", json={"quantity_change": 1}, headers=actor_headers())
        assert missing.status_code == 404


class TestBackOfficeRoutes:
    def test_expense_create_and_list(self, client, db_session):
        response = client.post(
            "/api/expenses",
            json={"title": "Water", "category": "utilities", "amount_cents": 1500, "payment_method": "mpesa",
                  "expense_date": "2024-05-03"},
            headers=actor_headers(),
        )
        assert response.status_code == 201
        assert response.get_json()["expense"]["recorded_by"] == CASHIER

        listed = client.get("/api/expenses?start=2024-05-01&end=2024-05-31", headers=actor_headers()).get_json()
        assert [e["title"] for e in listed["expenses"]] == ["Water"]

    def test_expense_unknown_field(self, client, db_session):
        response = client.post(
            "/api/expenses",
            json={"title": "Water", "category": "utilities", "amount_cents": 1500, "recorded_by": "someone-else"},
            headers=actor_headers(),
        )
        assert response.status_code == 400

    def test_invoice_payment_flow(self, client, db_session):
        created = client.post(
            "/api/invoices", json={"supplier_name": "Acme", "total_cents": 1000}, headers=actor_headers()
        )
        assert created.status_code == 201
        invoice_id = created.get_json()["invoice"]["id"]

        paid = client.post(
            f"/api/invoices/{invoice_id}/payments",
            json={"amount_cents": 1000, "payment_method": "bank"},
            headers=actor_headers(),
        )
        assert paid.status_code == 201
        assert paid.get_json()["invoice"]["status"] == "paid"

        refused = client.post(
            f"/api/invoices/{invoice_id}/payments",
            json={"amount_cents": 1, "payment_method": "bank"},
            headers=actor_headers(),
        )
        assert refused.status_code == 400
        assert refused.get_json()["success"] is False

    def test_journal_listing_and_reversal(self, client, db_session):
        shift_id = _start(client).get_json()["shift"]["id"]
        client.post(f"/api/shifts/{shift_id}/reconcile", json={"declared_cents": 900}, headers=actor_headers())

        journals = client.get("/api/journals?source=RECON", headers=actor_headers()).get_json()["journals"]
        assert len(journals) == 1

        reversed_ = client.post(
            f"/api/journals/{journals[0]['id']}/reverse", json={"reason": "Miscount"}, headers=actor_headers()
        )
        assert reversed_.status_code == 201
        assert reversed_.get_json()["journal"]["source"] == "ADJUST"

        no_reason = client.post(f"/api/journals/{journals[0]['id']}/reverse", json={}, headers=actor_headers())
        assert no_reason.status_code == 400

        trial = client.get("/api/journals/trial-balance", headers=actor_headers())
        assert trial.status_code == 200
        assert trial.get_json()["balanced"] is True
        assert trial.get_json()["total_debit_cents"] == 200

        bad_date = client.get("/api/journals/trial-balance?as_of=2024-13-45", headers=actor_headers())
        assert bad_date.status_code == 400


class TestSystemRoutes:
    def test_health(self, client, db_session):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["details"]["accounts"] > 0

    def test_version(self, client, db_session):
        assert client.get("/version").get_json()["api_version"] == "1.0.0"
