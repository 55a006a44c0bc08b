"""Tests for registration, login, password reset and profiles."""
from datetime import timedelta

from database import utc_now


def _register(client, email="ada@example.com", password="long-enough-1", **extra):
    body = {"name": "Ada Lovelace", "email": email, "password": password}
    body.update(extra)
    return client.post("/api/auth/register", json=body)


class TestRegister:
    def test_register_returns_token_without_password(self, client, services, mailer):
        response = _register(client, email="Ada@Example.com")
        assert response.status_code == 201
        data = response.json()["data"]
        assert data["token"]
        assert data["user"]["email"] == "ada@example.com"
        assert data["user"]["role"] == "user"
        assert data["user"]["email_verified"] is False
        assert "password" not in data["user"]
        assert "email_verification_token" not in data["user"]

        assert mailer.sent[0]["template"] == "email_verification"
        assert mailer.sent[0]["to"] == "ada@example.com"

    def test_duplicate_email_conflicts(self, client):
        assert _register(client).status_code == 201
        response = _register(client, email="ADA@example.com")
        assert response.status_code == 409
        assert response.json()["success"] is False

    def test_mismatched_confirmation(self, client):
        response = _register(client, password_confirm="something-else")
        assert response.status_code == 400
        assert response.json()["message"] == "Validation failed"

    def test_short_password(self, client):
        assert _register(client, password="short").status_code == 400

    def test_invalid_email(self, client):
        assert _register(client, email="not-an-email").status_code == 400

    def test_mail_failure_removes_user(self, client, services, mailer):
        mailer.fail = True
        response = _register(client)
        assert response.status_code == 500
        assert services.users.find_by_email("ada@example.com", include_deleted=True) is None

    def test_token_from_register_works(self, client):
        token = _register(client).json()["data"]["token"]
        response = client.get("/api/users/profile", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 200
        assert response.json()["data"]["name"] == "Ada Lovelace"


class TestLogin:
    def test_login(self, client, user, password):
        response = client.post("/api/auth/login", json={"email": user["email"], "password": password})
        assert response.status_code == 200
        assert response.json()["data"]["user"]["id"] == str(user["_id"])

    def test_wrong_password(self, client, user):
        response = client.post("/api/auth/login", json={"email": user["email"], "password": "nope-nope"})
        assert response.status_code == 401
        assert response.json()["message"] == "Incorrect e-mail or password"

    def test_unknown_email(self, client, password):
        response = client.post("/api/auth/login", json={"email": "ghost@example.com", "password": password})
        assert response.status_code == 401

    def test_inactive_account(self, client, make_user, password):
        inactive = make_user(is_active=False)
        response = client.post("/api/auth/login", json={"email": inactive["email"], "password": password})
        assert response.status_code == 401

    def test_logout(self, client):
        assert client.get("/api/auth/logout").json() == {"success": True, "message": "Logged out", "data": None}


class TestTokens:
    def test_missing_token(self, client):
        response = client.get("/api/users/profile")
        assert response.status_code == 401
        assert response.json()["success"] is False

    def test_garbage_token(self, client):
        response = client.get("/api/users/profile", headers={"Authorization": "Bearer not.a.jwt"})
        assert response.status_code == 401

    def test_deactivated_user_token_rejected(self, client, services, user, user_headers):
        services.users.update(user["_id"], {"is_active": False})
        assert client.get("/api/users/profile", headers=user_headers).status_code == 401

    def test_deleted_user_token_rejected(self, client, services, user, user_headers):
        services.users.soft_delete_by_id(user["_id"])
        assert client.get("/api/users/profile", headers=user_headers).status_code == 401

    def test_demoted_admin_loses_access(self, client, services, admin, admin_headers):
        services.users.update(admin["_id"], {"role": "user"})
        assert client.get("/api/admin/dashboard", headers=admin_headers).status_code == 403


class TestPasswordReset:
    def test_full_reset_flow(self, client, services, mailer, user):
        assert client.post("/api/auth/forgot-password", json={"email": user["email"]}).status_code == 200
        token = mailer.last_token()
        assert mailer.sent[-1]["template"] == "password_reset"

        assert client.get(f"/api/auth/reset-password/{token}").status_code == 200
        response = client.patch(
            f"/api/auth/reset-password/{token}",
            json={"password": "brand-new-pass", "password_confirm": "brand-new-pass"},
        )
        assert response.status_code == 200
        assert response.json()["data"]["token"]

        login = client.post("/api/auth/login", json={"email": user["email"], "password": "brand-new-pass"})
        assert login.status_code == 200
        again = client.patch(
            f"/api/auth/reset-password/{token}",
            json={"password": "another-pass-1", "password_confirm": "another-pass-1"},
        )
        assert again.status_code == 400

    def test_token_is_stored_hashed(self, client, services, mailer, user):
        client.post("/api/auth/forgot-password", json={"email": user["email"]})
        stored = services.users.find_by_id(user["_id"])["password_reset_token"]
        assert stored and stored != mailer.last_token()

    def test_expired_token(self, client, services, mailer, user):
        client.post("/api/auth/forgot-password", json={"email": user["email"]})
        services.users.update(user["_id"], {"password_reset_expires": utc_now() - timedelta(minutes=1)})
        assert client.get(f"/api/auth/reset-password/{mailer.last_token()}").status_code == 400

    def test_passwords_must_match(self, client, mailer, user):
        client.post("/api/auth/forgot-password", json={"email": user["email"]})
        response = client.patch(
            f"/api/auth/reset-password/{mailer.last_token()}",
            json={"password": "brand-new-pass", "password_confirm": "other-new-pass"},
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Passwords do not match"

    def test_unknown_email(self, client):
        assert client.post("/api/auth/forgot-password", json={"email": "ghost@example.com"}).status_code == 404

    def test_mail_failure_clears_token(self, client, services, mailer, user):
        mailer.fail = True
        assert client.post("/api/auth/forgot-password", json={"email": user["email"]}).status_code == 500
        assert services.users.find_by_id(user["_id"])["password_reset_token"] is None


class TestEmailVerification:
    def test_verify(self, client, services, mailer):
        user_id = _register(client).json()["data"]["user"]["id"]
        response = client.get(f"/api/auth/verify-email/{mailer.last_token()}")
        assert response.status_code == 200
        assert services.users.find_by_id(user_id)["email_verified"] is True

    def test_bad_token(self, client):
        assert client.get("/api/auth/verify-email/deadbeef").status_code == 400

    def test_resend(self, client, mailer):
        _register(client)
        first = mailer.last_token()
        assert client.post("/api/auth/resend-verification", json={"email": "ada@example.com"}).status_code == 200
        assert mailer.last_token() != first
        assert client.get(f"/api/auth/verify-email/{first}").status_code == 400
        assert client.get(f"/api/auth/verify-email/{mailer.last_token()}").status_code == 200

    def test_resend_when_verified(self, client, user):
        response = client.post("/api/auth/resend-verification", json={"email": user["email"]})
        assert response.status_code == 400


class TestProfile:
    def test_update_profile(self, client, user_headers):
        response = client.put(
            "/api/users/profile",
            json={"name": "New Name", "phone": "555-0100", "gender": "other", "address": {"city": "Lisbon"}},
            headers=user_headers,
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["name"] == "New Name"
        assert data["gender"] == "other"
        assert data["address"]["city"] == "Lisbon"

    def test_profile_cannot_change_role(self, client, user_headers):
        response = client.put("/api/users/profile", json={"role": "admin"}, headers=user_headers)
        assert response.status_code == 200
        assert response.json()["data"]["role"] == "user"

    def test_avatar_upload(self, client, media, user_headers):
        response = client.post(
            "/api/users/profile/avatar",
            files={"file": ("me.png", b"\x89PNG....", "image/png")},
            headers=user_headers,
        )
        assert response.status_code == 200
        assert response.json()["data"]["avatar"] == "https://media.test/avatars/me.png"
        assert media.uploads == [("avatars", "me.png", 8)]

    def test_avatar_rejects_other_types(self, client, user_headers):
        response = client.post(
            "/api/users/profile/avatar",
            files={"file": ("me.txt", b"hello", "text/plain")},
            headers=user_headers,
        )
        assert response.status_code == 400

    def test_user_listing_is_admin_only(self, client, user_headers, admin_headers):
        assert client.get("/api/users", headers=user_headers).status_code == 403
        page = client.get("/api/users", headers=admin_headers).json()["data"]
        assert page["pagination"]["total"] == 2
