"""Tests for session auth: register, login, logout, current user."""

from helpers import PASSWORD, login
from invoicely.models.user import User


class TestRegister:

    def test_register_logs_in_without_tenant(self, client):
        resp = client.post("/api/auth/register", json={
            "email": "New@Startup.test", "password": PASSWORD, "full_name": "New",
        })
        assert resp.status_code == 201
        assert resp.get_json()["user"]["email"] == "new@startup.test"

        me = client.get("/api/auth/me").get_json()
        assert me["user"]["tenant_id"] is None
        assert "tenant" not in me

    def test_duplicate_email(self, client, seed_data):
        resp = client.post("/api/auth/register", json={
            "email": "owner@acme.test", "password": PASSWORD,
        })
        assert resp.status_code == 409
        assert User.query.filter_by(email="owner@acme.test").count() == 1

    def test_short_password(self, client):
        resp = client.post("/api/auth/register", json={"email": "a@b.test", "password": "short"})
        assert resp.status_code == 400
        assert "8 characters" in resp.get_json()["error"]


class TestLogin:

    def test_login_me_logout(self, client, seed_data):
        login(client)
        me = client.get("/api/auth/me")
        assert me.status_code == 200
        body = me.get_json()
        assert body["user"]["email"] == "owner@acme.test"
        assert body["tenant"]["slug"] == "acme-ltd"

        assert client.post("/api/auth/logout").status_code == 200
        assert client.get("/api/auth/me").status_code == 401

    def test_wrong_password(self, client, seed_data):
        resp = client.post("/api/auth/login", json={
            "email": "owner@acme.test", "password": "not-the-password",
        })
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Invalid email or password."

    def test_unknown_email(self, client, seed_data):
        resp = client.post("/api/auth/login", json={"email": "ghost@x.test", "password": PASSWORD})
        assert resp.status_code == 401
