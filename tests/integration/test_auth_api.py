"""Integration tests for magic-link sign-in, sessions and the profile."""

import re

import pytest

TOKEN_PATTERN = re.compile(r"token=([\w.-]+)")


def link_token(mailer, index=-1):
    """Token of the sign-in link in an email from the outbox."""
    message = mailer.outbox[index]
    text = message.get_body(preferencelist=("plain",)).get_content()
    return TOKEN_PATTERN.search(text).group(1)


def sign_in(client, mailer, email="dana@example.com"):
    assert client.post("/api/auth/login", json={"email": email}).status_code == 202
    response = client.post("/api/auth/verify", json={"token": link_token(mailer)})
    assert response.status_code == 200, response.text
    return response.json()


@pytest.mark.integration
class TestMagicLinkLogin:
    """Test requesting a sign-in link."""

    def test_login_sends_link(self, client, mailer):
        response = client.post("/api/auth/login", json={"email": "Dana@Example.com"})

        assert response.status_code == 202
        assert response.json()["message"] == "Lien de connexion envoyé"
        assert "expires_at" in response.json()

        assert len(mailer.outbox) == 1
        message = mailer.outbox[0]
        assert message["To"] == "dana@example.com"
        assert message["Subject"] == "Votre lien de connexion GroupSplit"
        text = message.get_body(preferencelist=("plain",)).get_content()
        assert "http://localhost:5173/auth/verify?token=" in text

    @pytest.mark.parametrize("email", ["", "   "])
    def test_missing_email(self, client, mailer, email):
        response = client.post("/api/auth/login", json={"email": email})

        assert response.status_code == 422
        assert response.json()["detail"] == "Adresse email requise"
        assert len(mailer.outbox) == 0

    @pytest.mark.parametrize("body", [{}, {"email": None}])
    def test_absent_email(self, client, mailer, body):
        response = client.post("/api/auth/login", json=body)

        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"
        assert response.json()["detail"] == "Adresse email requise"
        assert len(mailer.outbox) == 0

    @pytest.mark.parametrize("email", ["dana","dana@", "@example.com", "da na@example.com"])
    def test_malformed_email(self, client, email):
        response = client.post("/api/auth/login", json={"email": email})

        assert response.status_code == 422
        body = response.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert body["detail"] == "Adresse email invalide"

    def test_rate_limited(self, client):
        for _ in range(10):
            assert client.post("/api/auth/login", json={"email": "dana@example.com"}).status_code == 202

        response = client.post("/api/auth/login", json={"email": "dana@example.com"})

        assert response.status_code == 429
        assert response.json()["code"] == "RATE_LIMITED"
        assert "retry-after" in response.headers

    def test_rotating_forwarded_for_is_still_limited(self, client):
        statuses = [
            client.post(
                "/api/auth/login",
                json={"email": "dana@example.com"},
                headers={"X-Forwarded-For": f"10.0.0.{i}"},
            ).status_code
            for i in range(11)
        ]

        assert statuses[:10] == [202] * 10
        assert statuses[10] == 429


@pytest.mark.integration
class TestVerify:
    """Test exchanging a link for a session."""

    def test_first_sign_in_creates_account(self, client, mailer):
        body = sign_in(client, mailer)

        assert body["user"]["email"] == "dana@example.com"
        assert body["user"]["name"] is None
        assert body["user"]["email_verified"] is True
        assert len(body["session_token"]) == 43

    def test_session_cookie_is_set(self, client, mailer):
        client.post("/api/auth/login", json={"email": "dana@example.com"})
        response = client.post("/api/auth/verify", json={"token": link_token(mailer)})

        cookie = response.headers["set-cookie"]
        assert "groupsplit_session=" in cookie
        assert "HttpOnly" in cookie

    def test_link_works_once(self, client, mailer):
        client.post("/api/auth/login", json={"email": "dana@example.com"})
        token = link_token(mailer)
        assert client.post("/api/auth/verify", json={"token": token}).status_code == 200

        response = client.post("/api/auth/verify", json={"token": token})

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_TOKEN"

    def test_garbage_token(self, client):
        response = client.post("/api/auth/verify", json={"token": "not-a-token"})

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_TOKEN"
        assert response.json()["detail"] == "Ce lien n'est pas valide"

    def test_second_sign_in_reuses_account(self, client, mailer):
        first = sign_in(client, mailer)
        second = sign_in(client, mailer)

        assert first["user"]["id"] == second["user"]["id"]
        assert first["session_token"] != second["session_token"]


@pytest.mark.integration
class TestSession:
    """Test session lookup, logout and the profile."""

    def test_anonymous_session(self, client):
        response = client.get("/api/auth/session")

        assert response.status_code == 200
        assert response.json() == {"authenticated": False, "user": None}

    def test_bearer_session(self, client, alice):
        body = client.get("/api/auth/session", headers=alice.headers).json()

        assert body["authenticated"] is True
        assert body["user"]["email"] == "alice@example.com"
        assert body["user"]["name"] == "Alice"

    def test_logout_ends_session(self, client, alice):
        assert client.post("/api/auth/logout", headers=alice.headers).status_code == 204

        assert client.get("/api/auth/session", headers=alice.headers).json()["authenticated"] is False
        assert client.get("/api/groups", headers=alice.headers).status_code == 401

    def test_logout_without_session(self, client):
        assert client.post("/api/auth/logout").status_code == 204

    def test_protected_route_requires_session(self, client):
        response = client.get("/api/groups")

        assert response.status_code == 401
        assert response.json()["code"] == "UNAUTHORIZED"
        assert response.headers["www-authenticate"] == "Bearer"

    def test_unknown_session_token(self, client):
        headers = {"Authorization": "Bearer " + "A" * 43}
        assert client.get("/api/groups", headers=headers).status_code == 401

    def test_update_profile(self, client, alice):
        response = client.patch("/api/user/profile", json={"name": "Alice B."}, headers=alice.headers)

        assert response.status_code == 200
        assert response.json()["name"] == "Alice B."

    def test_profile_name_required(self, client, alice):
        response = client.patch("/api/user/profile", json={"name": ""}, headers=alice.headers)
        assert response.status_code == 422
