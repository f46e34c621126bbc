"""
Authentication adapter tests: passwords, sessions and role checks.
"""

import pytest

from barpos.errors import ConflictError, ValidationError
from barpos.services import auth_service, session_service
from barpos.services.auth_service import PasswordValidationError


class TestPasswords:

    @pytest.mark.parametrize("weak", ["short1!", "alllowercase1!", "ALLUPPERCASE1!", "NoDigits!!", "NoSpecial123"])
    def test_weak_passwords_rejected(self, weak):
        with pytest.raises(PasswordValidationError):
            auth_service.validate_password_strength(weak)

    def test_hash_roundtrip(self, app, password):
        hashed = auth_service.hash_password(password)

        assert auth_service.verify_password(password, hashed)
        assert not auth_service.verify_password("Wrong123!", hashed)

    def test_malformed_hash(self, password):
        assert auth_service.verify_password(password, "not-a-hash") is False


class TestUsers:

    def test_duplicate_username(self, cashier, password):
        with pytest.raises(ConflictError):
            auth_service.create_user("cashier", "other@barpos.test", password, "CASHIER")

    def test_unknown_role(self, db_session, password):
        with pytest.raises(ValidationError):
            auth_service.create_user("x", "x@barpos.test", password, "DJ")

    def test_authenticate_by_email(self, cashier, password):
        assert auth_service.authenticate("cashier@barpos.test", password).id == cashier.id
        assert auth_service.authenticate("cashier", "Wrong123!") is None


class TestSessions:

    def test_validate_and_revoke(self, cashier):
        _, token = session_service.create_session(cashier.id)

        assert session_service.validate_session(token).id == cashier.id
        assert session_service.revoke_session(token) is True
        assert session_service.validate_session(token) is None

    def test_deactivated_user(self, db_session, cashier):
        _, token = session_service.create_session(cashier.id)
        cashier.is_active = False
        db_session.commit()

        assert session_service.validate_session(token) is None


class TestAuthRoutes:

    def test_login_me_logout(self, client, cashier, password, bearer):
        resp = client.post("/api/auth/login", json={"username": "cashier", "password": password})
        assert resp.status_code == 200
        headers = bearer(resp.json["token"])

        me = client.get("/api/auth/me", headers=headers)
        assert me.status_code == 200
        assert me.json["user"]["role"] == "CASHIER"

        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401

    def test_bad_credentials(self, client, cashier):
        resp = client.post("/api/auth/login", json={"username": "cashier", "password": "Nope1234!"})
        assert resp.status_code == 401

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/orders"),
            ("POST", "/api/orders"),
            ("POST", "/api/deliveries"),
            ("GET", "/api/payments/pending"),
            ("GET", "/api/balances"),
            ("GET", "/api/products"),
            ("GET", "/api/inventory/stock"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_invalid_token(self, client, db_session, bearer):
        resp = client.get("/api/orders", headers=bearer("bogus"))
        assert resp.status_code == 401
        assert resp.json["error"] == "Invalid or expired token"
