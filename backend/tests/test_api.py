"""
HTTP surface tests: role checks, order/QR flow, balance validation, catalog
endpoints and health.
"""

from barpos.models.auth import ROLE_INVENTORY
from barpos.services import balance_service


def _order_payload(event, register, lines, method="CASH", **extra):
    return {
        "event_id": event.id,
        "register_id": register.id,
        "payment_method": method,
        "lines": lines,
        **extra,
    }


class TestRoleChecks:

    def test_bartender_cannot_create_orders(self, client, event, register, bartender_headers, stocked_bar, beer):
        resp = client.post(
            "/api/orders",
            json=_order_payload(event, register, [{"product_id": beer.id, "quantity": 1}]),
            headers=bartender_headers,
        )

        assert resp.status_code == 403
        assert resp.json["required_roles"] == ["CASHIER", "ADMIN"]

    def test_cashier_cannot_deliver(self, client, cashier_headers, stocked_bar):
        resp = client.post("/api/deliveries", json={}, headers=cashier_headers)
        assert resp.status_code == 403

    def test_cashier_cannot_approve_payments(self, client, cashier_headers):
        resp = client.post("/api/payments/1/approve", json={"approved": True}, headers=cashier_headers)
        assert resp.status_code == 403

    def test_supervisor_cannot_issue_balance_cards(self, client, event, supervisor_headers):
        resp = client.post(
            "/api/balances",
            json={"event_id": event.id, "initial_amount_cents": 1000},
            headers=supervisor_headers,
        )
        assert resp.status_code == 403


class TestOrderFlow:

    def test_create_scan_deliver(
        self, client, event, register, stocked_bar, beer, cuba_libre, cashier_headers, bartender_headers,
    ):
        resp = client.post(
            "/api/orders",
            json=_order_payload(event, register, [
                {"product_id": beer.id, "quantity": 1},
                {"product_id": cuba_libre.id, "quantity": 1, "selected_options": {"Mixer": "COLA"}},
            ]),
            headers=cashier_headers,
        )
        assert resp.status_code == 201
        order = resp.json["order"]
        assert order["payment_status"] == "PAID"
        assert order["total_cents"] == 6500
        assert order["url"] == f"http://testserver/qr/{order['access_token']}"

        public = client.get(f"/api/qr/{order['access_token']}")
        assert public.status_code == 200
        assert "access_token" not in public.json["order"]
        lines = public.json["order"]["lines"]

        resp = client.post(
            "/api/deliveries",
            json={
                "order_token": order["access_token"],
                "location_id": stocked_bar.id,
                "items": [{"line_id": line["id"], "quantity": line["quantity"]} for line in lines],
            },
            headers=bartender_headers,
        )
        assert resp.status_code == 201
        assert resp.json["order"]["fulfillment_status"] == "DELIVERED"

        again = client.post(
            "/api/deliveries",
            json={
                "order_token": order["access_token"],
                "location_id": stocked_bar.id,
                "items": [{"line_id": lines[0]["id"], "quantity": 1}],
            },
            headers=bartender_headers,
        )
        assert again.status_code == 409

    def test_missing_option_is_400(self, client, event, register, stocked_bar, cuba_libre, cashier_headers):
        resp = client.post(
            "/api/orders",
            json=_order_payload(event, register, [{"product_id": cuba_libre.id, "quantity": 1}]),
            headers=cashier_headers,
        )

        assert resp.status_code == 400
        assert "Mixer" in resp.json["error"]

    def test_shortage_is_422(self, client, event, register, stocked_bar, beer, cashier_headers):
        resp = client.post(
            "/api/orders",
            json=_order_payload(event, register, [{"product_id": beer.id, "quantity": 50}]),
            headers=cashier_headers,
        )

        assert resp.status_code == 422
        assert resp.json["details"]["available"] == 10

    def test_unknown_qr_is_404(self, client, db_session):
        assert client.get("/api/qr/not-a-token").status_code == 404

    def test_cashier_sees_only_own_orders(
        self, client, event, register, stocked_bar, beer, cashier, admin_headers, login_headers,
    ):
        from barpos.services.auth_service import create_user

        other = create_user("cashier2", "cashier2@barpos.test", "Password123!", "CASHIER")
        other_headers = login_headers(other)
        resp = client.post(
            "/api/orders",
            json=_order_payload(event, register, [{"product_id": beer.id, "quantity": 1}]),
            headers=admin_headers,
        )
        order_id = resp.json["order"]["id"]

        listed = client.get("/api/orders", headers=other_headers)
        assert listed.json["total"] == 0
        assert client.get(f"/api/orders/{order_id}", headers=other_headers).status_code == 404
        assert client.get(f"/api/orders/{order_id}", headers=admin_headers).status_code == 200

    def test_transfer_approval(self, client, event, register, stocked_bar, beer, cashier_headers, supervisor_headers):
        resp = client.post(
            "/api/orders",
            json=_order_payload(event, register, [{"product_id": beer.id, "quantity": 1}], method="TRANSFER"),
            headers=cashier_headers,
        )
        order_id = resp.json["order"]["id"]

        pending = client.get("/api/payments/pending", headers=supervisor_headers)
        assert [o["id"] for o in pending.json["orders"]] == [order_id]

        approved = client.post(
            f"/api/payments/{order_id}/approve", json={"approved": True}, headers=supervisor_headers,
        )
        assert approved.status_code == 200
        assert approved.json["order"]["payment_status"] == "PAID"

        again = client.post(
            f"/api/payments/{order_id}/approve", json={"approved": False}, headers=supervisor_headers,
        )
        assert again.status_code == 409


class TestBalanceEndpoints:

    def test_issue_and_validate(self, client, event, admin_headers, cashier_headers):
        resp = client.post(
            "/api/balances",
            json={"event_id": event.id, "initial_amount_cents": 3000, "holder_name": "Ana"},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        token = resp.json["account"]["access_token"]
        assert len(resp.json["account"]["transactions"]) == 1

        ok = client.post(
            "/api/balances/validate", json={"token": token, "required_amount_cents": 3000}, headers=cashier_headers,
        )
        assert ok.status_code == 200
        assert ok.json["valid"] is True
        assert ok.json["account"]["balance_cents"] == 3000

        short = client.post(
            "/api/balances/validate", json={"token": token, "required_amount_cents": 3001}, headers=cashier_headers,
        )
        assert short.status_code == 422
        assert short.json["valid"] is False

    def test_validate_blocked(self, client, event, admin, admin_headers, cashier_headers):
        account = balance_service.create_account(event_id=event.id, initial_amount_cents=1000, user_id=admin.id)

        blocked = client.post(f"/api/balances/{account.access_token}/block", json={}, headers=admin_headers)
        assert blocked.json["account"]["status"] == "BLOCKED"

        resp = client.post("/api/balances/validate", json={"token": account.access_token}, headers=cashier_headers)
        assert resp.status_code == 409
        assert resp.json["valid"] is False
        assert resp.json["details"]["status"] == "BLOCKED"

    def test_load_rejects_non_integer_amount(self, client, event, admin, admin_headers):
        account = balance_service.create_account(event_id=event.id, initial_amount_cents=1000, user_id=admin.id)

        resp = client.post(
            f"/api/balances/{account.access_token}/load", json={"amount_cents": 10.5}, headers=admin_headers,
        )

        assert resp.status_code == 400


class TestCatalogEndpoints:

    def test_create_combo_and_read_recipe(self, client, rum, cola, sprite, login_headers):
        from barpos.services.auth_service import create_user

        stock_keeper = create_user("stock", "stock@barpos.test", "Password123!", ROLE_INVENTORY)
        headers = login_headers(stock_keeper)

        resp = client.post(
            "/api/combos",
            json={
                "code": "FERNET",
                "name": "Fernet con Coca",
                "price_cents": 5000,
                "mandatory": [{"component_code": "RON", "quantity": 1}],
                "optional_groups": {"Mixer": [{"component_code": "COLA"}, {"component_code": "SPRITE"}]},
            },
            headers=headers,
        )
        assert resp.status_code == 201
        combo = resp.json["combo"]
        assert combo["kind"] == "COMPOSITE"
        assert set(combo["recipe"]["optional_groups"]) == {"Mixer"}

        recipe = client.get(f"/api/products/{combo['id']}/recipe", headers=headers)
        assert recipe.json["recipe"]["mandatory"][0]["code"] == "RON"

        combos = client.get("/api/combos", headers=headers)
        assert [c["code"] for c in combos.json["combos"]] == ["FERNET"]

    def test_negative_price_rejected(self, client, admin_headers):
        resp = client.post(
            "/api/products", json={"code": "BAD", "name": "Bad", "price_cents": -1}, headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_unknown_field_rejected(self, client, admin_headers):
        resp = client.post(
            "/api/products", json={"code": "X", "name": "X", "stock": 5}, headers=admin_headers,
        )
        assert resp.status_code == 400


class TestHealth:

    def test_degraded_without_events(self, client, db_session):
        resp = client.get("/health")

        assert resp.status_code == 200
        assert resp.json["status"] == "degraded"

    def test_healthy_with_event(self, client, event):
        resp = client.get("/health")

        assert resp.json["status"] == "healthy"
        assert resp.json["checks"]["event_setup"]["details"]["active_events"] == 1
