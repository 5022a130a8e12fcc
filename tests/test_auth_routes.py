"""
tests/test_auth_routes.py -- Integration tests for the account lifecycle routes.

These tests exercise the full stack: FastAPI routing -> request validation ->
AuthService -> AccountStore -> envelope serialization and error handlers.

Coverage:
  - POST /auth/sign-up: 200 envelope, 409 duplicate, 422 bad role / weak password
  - POST /auth/login: otpReference on success, 401 on bad credentials
  - POST /auth/verifyOtp: "Verification successful" once, 401 on reuse
  - GET  /auth/me: 200 with token, 401 without
  - DELETE /auth/me: deactivates once, old token then 401, email reusable
  - POST /forgot-password (same answer for unknown emails) + /reset-password,
    including the confirPassword key
  - Error envelope shape and Cache-Control on secret-bearing responses

Fixtures used (from conftest.py):
  - api_client: (client, token, admin_id)
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from conftest import ADMIN_EMAIL, ADMIN_PASSWORD, signup_and_login

PASSWORD = "Passw0rd!"


def _signup(client: TestClient, email: str, role: str = "customer", password: str = PASSWORD):
    return client.post("/auth/sign-up", json={"name": "Test", "email": email, "password": password, "role": role})


def _login(client: TestClient, email: str, password: str = PASSWORD) -> dict:
    resp = client.post("/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"
    return resp.json()


class TestSignupRoute:
    def test_signup_returns_created_envelope(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        resp = _signup(client, "new-admin@example.com", role="admin")
        assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"
        body = resp.json()
        assert body["statusCode"] == 200
        assert body["message"] == "User created successfully."
        assert body["data"]["account"]["email"] == "new-admin@example.com"
        assert body["data"]["account"]["role"] == "admin"
        assert body["data"]["credential"]["ownerId"] == body["data"]["account"]["id"]
        assert "passwordHash" not in body["data"]["credential"], "Credential summary must not expose the hash"

    def test_duplicate_signup_is_conflict(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        assert _signup(client, "dup@example.com").status_code == 200
        resp = _signup(client, "dup@example.com")
        assert resp.status_code == 409, f"Expected 409, got {resp.status_code}: {resp.text}"
        assert resp.json() == {"statusCode": 409, "message": "User already exists."}

    def test_customer_signup_with_admin_email_is_conflict(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        resp = _signup(client, ADMIN_EMAIL, role="customer")
        assert resp.status_code == 409, f"Expected 409, got {resp.status_code}: {resp.text}"

    def test_unknown_role_is_422(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        resp = _signup(client, "role@example.com", role="superuser")
        assert resp.status_code == 422
        body = resp.json()
        assert body["statusCode"] == 422
        assert body["message"] == "Request validation failed."
        assert "detail" in body

    def test_weak_password_is_422(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        assert _signup(client, "weak@example.com", password="short").status_code == 422
        assert _signup(client, "space@example.com", password=" Passw0rd!").status_code == 422

    def test_invalid_email_is_422(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        assert _signup(client, "not-an-email").status_code == 422


class TestLoginRoutes:
    def test_login_returns_reference_without_caching(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        resp = client.post("/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
        assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"
        body = resp.json()
        assert body["otpReference"]
        assert isinstance(body["otp"], int)
        assert "expiresAt" in body
        assert resp.headers["cache-control"] == "no-store"

    def test_login_bad_password_is_401(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        resp = client.post("/auth/login", json={"email": ADMIN_EMAIL, "password": "WrongPass1"})
        assert resp.status_code == 401
        assert resp.json() == {"statusCode": 401, "message": "Invalid email or password."}

    def test_login_unknown_email_is_401(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        resp = client.post("/auth/login", json={"email": "ghost@example.com", "password": PASSWORD})
        assert resp.status_code == 401

    def test_verify_otp_succeeds_once(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        issued = _login(client, ADMIN_EMAIL, ADMIN_PASSWORD)
        body = {"otp": issued["otp"], "otpReference": issued["otpReference"]}

        resp = client.post("/auth/verifyOtp", json=body)
        assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"
        data = resp.json()
        assert data["statusCode"] == 200
        assert data["message"] == "Verification successful"
        assert data["result"]["accessToken"]
        assert data["result"]["tokenType"] == "bearer"
        assert data["result"]["account"]["email"] == ADMIN_EMAIL

        again = client.post("/auth/verifyOtp", json=body)
        assert again.status_code == 401, "A consumed OTP challenge must not verify twice"

    def test_verify_otp_unknown_reference_is_401(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        resp = client.post("/auth/verifyOtp", json={"otp": 123456, "otpReference": "unknown-reference"})
        assert resp.status_code == 401

    def test_verify_otp_missing_fields_is_422(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        resp = client.post("/auth/verifyOtp", json={"otp": 123456})
        assert resp.status_code == 422

    def test_end_to_end_customer_flow(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        token = signup_and_login(client, "A", "a@x.com", "Passw0rd!", "customer")
        resp = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200
        assert resp.json()["email"] == "a@x.com"
        assert resp.json()["role"] == "customer"
        assert resp.json()["lastLogin"] is not None


class TestMeRoute:
    def test_me_with_token(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, uid = api_client
        resp = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"
        assert resp.json()["id"] == uid
        assert resp.json()["role"] == "admin"

    def test_me_without_token_is_401(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        resp = client.get("/auth/me")
        assert resp.status_code == 401
        assert resp.json() == {"statusCode": 401, "message": "Authentication required."}

    def test_me_with_garbage_token_is_401(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        resp = client.get("/auth/me", headers={"Authorization": "Bearer not.a.jwt"})
        assert resp.status_code == 401

    def test_deactivate_me(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        token = signup_and_login(client, "Leaving", "leaving@example.com", PASSWORD, "customer")
        headers = {"Authorization": f"Bearer {token}"}

        resp = client.delete("/auth/me", headers=headers)
        assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"
        assert resp.json()["statusCode"] == 200
        assert resp.json()["message"] == "Account deactivated."

        # The old token no longer resolves, and the email is free again.
        assert client.get("/auth/me", headers=headers).status_code == 401
        assert client.delete("/auth/me", headers=headers).status_code == 401
        assert _signup(client, "leaving@example.com").status_code == 200

    def test_deactivate_me_without_token_is_401(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        assert client.delete("/auth/me").status_code == 401


class TestPasswordResetRoutes:
    def test_forgot_password_unknown_email_matches_known(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        assert _signup(client, "known@example.com").status_code == 200
        known = client.post("/forgot-password", json={"email": "known@example.com"})

        resp = client.post("/forgot-password", json={"email": "ghost@example.com"})

        assert resp.status_code == known.status_code == 200
        assert resp.json()["message"] == known.json()["message"]
        assert resp.headers["cache-control"] == "no-store"
        assert "expiresAt" in resp.json()["data"]
        assert "token" not in resp.json()["data"]

    def test_reset_with_confir_password_key(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        assert _signup(client, "reset@example.com").status_code == 200

        resp = client.post("/forgot-password", json={"email": "reset@example.com"})
        assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"
        assert resp.headers["cache-control"] == "no-store"
        token = resp.json()["data"]["token"]

        resp = client.post(
            "/reset-password",
            json={"token": token, "password": "NewPassw0rd", "confirPassword": "NewPassw0rd"},
        )
        assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"
        assert resp.json()["message"] == "Password reset successful."
        assert resp.json()["data"]["email"] == "reset@example.com"

        _login(client, "reset@example.com", "NewPassw0rd")
        old = client.post("/auth/login", json={"email": "reset@example.com", "password": PASSWORD})
        assert old.status_code == 401

    def test_reset_mismatch_is_422_and_password_unchanged(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        assert _signup(client, "mismatch@example.com").status_code == 200
        token = client.post("/forgot-password", json={"email": "mismatch@example.com"}).json()["data"]["token"]

        resp = client.post(
            "/reset-password",
            json={"token": token, "password": "NewPassw0rd", "confirmPassword": "Different1"},
        )
        assert resp.status_code == 422
        assert resp.json()["message"] == "Passwords do not match."
        _login(client, "mismatch@example.com", PASSWORD)

    def test_reset_with_bad_token_is_401(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        resp = client.post(
            "/reset-password",
            json={"token": "bogus", "password": "NewPassw0rd", "confirPassword": "NewPassw0rd"},
        )
        assert resp.status_code == 401
