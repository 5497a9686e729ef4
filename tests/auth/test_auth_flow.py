"""Sign-up, sign-in, refresh and sign-out over HTTP."""

import json

import pytest
from httpx import AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError

from tests.conftest import TEST_PASSWORD, register


class TestRegistration:
    async def test_register_returns_tokens_and_profile(self, client: AsyncClient):
        response = await client.post("/api/v1/auth/register", json={
            "email": "Carol@Example.com",
            "password": TEST_PASSWORD,
        })
        assert response.status_code == 201
        data = response.json()
        assert data["token_type"] == "bearer"
        assert data["user"]["email"] == "carol@example.com"
        assert data["user"]["username"] == "carol"

    async def test_explicit_username(self, client: AsyncClient):
        response = await client.post("/api/v1/auth/register", json={
            "email": "dave@example.com",
            "password": TEST_PASSWORD,
            "username": "DaveTheBrave",
        })
        assert response.status_code == 201
        assert response.json()["user"]["username"] == "davethebrave"

    async def test_duplicate_email_conflicts(self, client: AsyncClient, alice: dict):
        response = await client.post("/api/v1/auth/register", json={
            "email": alice["email"],
            "password": TEST_PASSWORD,
            "username": "someone_else",
        })
        assert response.status_code == 409
        assert response.json()["code"] == "email_taken"

    async def test_explicit_username_taken_conflicts(self, client: AsyncClient, alice: dict):
        response = await client.post("/api/v1/auth/register", json={
            "email": "another.alice@example.org",
            "password": TEST_PASSWORD,
            "username": "Alice",
        })
        assert response.status_code == 409
        assert response.json()["code"] == "username_taken"

    async def test_derived_username_gets_suffix_when_taken(self, client: AsyncClient, alice: dict):
        response = await client.post("/api/v1/auth/register", json={
            "email": "alice@elsewhere.org",
            "password": TEST_PASSWORD,
        })
        assert response.status_code == 201
        assert response.json()["user"]["username"] == "alice-2"

    @pytest.mark.parametrize(("email", "expected"), [
        ("_bob@example.com", "bob"),
        ("o'brien@example.com", "obrien"),
        ("__@example.com", "user"),
    ])
    async def test_derived_username_is_sanitized(self, client: AsyncClient, email: str, expected: str):
        response = await client.post("/api/v1/auth/register", json={"email": email, "password": TEST_PASSWORD})
        assert response.status_code == 201, response.text
        assert response.json()["user"]["username"] == expected

    async def test_malformed_explicit_username_rejected(self, client: AsyncClient):
        response = await client.post("/api/v1/auth/register", json={
            "email": "frank@example.com",
            "password": TEST_PASSWORD,
            "username": "_frank",
        })
        assert response.status_code == 400
        assert response.json()["code"] == "invalid_username"

    async def test_weak_password_rejected(self, client: AsyncClient):
        response = await client.post("/api/v1/auth/register", json={
            "email": "weak@example.com",
            "password": "password",
        })
        assert response.status_code == 400
        assert response.json()["code"] == "weak_password"

    async def test_register_publishes_sign_in(self, client: AsyncClient, fake_redis):
        user = await register(client, "erin")
        channel, message = fake_redis.published[-1]
        assert channel == f"auth:session:{user['user_id']}"
        assert json.loads(message)["event"] == "signed_in"


class TestLogin:
    async def test_login_success(self, client: AsyncClient, alice: dict):
        response = await client.post("/api/v1/auth/login", json={
            "email": alice["email"],
            "password": alice["password"],
        })
        assert response.status_code == 200
        data = response.json()
        assert data["user"]["username"] == "alice"
        assert data["user"]["login_count"] >= 2

    async def test_wrong_password(self, client: AsyncClient, alice: dict):
        response = await client.post("/api/v1/auth/login", json={
            "email": alice["email"],
            "password": "WrongP@ss1",
        })
        assert response.status_code == 401
        assert "invalid" in response.json()["detail"].lower()

    async def test_unknown_email(self, client: AsyncClient):
        response = await client.post("/api/v1/auth/login", json={
            "email": "nobody@example.com",
            "password": TEST_PASSWORD,
        })
        assert response.status_code == 401

    async def test_lockout_after_repeated_failures(self, client: AsyncClient, alice: dict):
        for i in range(10):
            await client.post("/api/v1/auth/login", json={
                "email": alice["email"],
                "password": f"WrongP@ss{i}",
            })
        response = await client.post("/api/v1/auth/login", json={
            "email": alice["email"],
            "password": alice["password"],
        })
        assert response.status_code == 429
        assert "locked" in response.json()["detail"].lower()

    async def test_successful_login_clears_failures(self, client: AsyncClient, alice: dict, fake_redis):
        for i in range(3):
            await client.post("/api/v1/auth/login", json={
                "email": alice["email"],
                "password": f"WrongP@ss{i}",
            })
        assert fake_redis.store[f"login_attempts:{alice['user_id']}"] == "3"

        response = await client.post("/api/v1/auth/login", json={
            "email": alice["email"],
            "password": alice["password"],
        })
        assert response.status_code == 200
        assert f"login_attempts:{alice['user_id']}" not in fake_redis.store


class TestSession:
    async def test_current_session(self, client: AsyncClient, alice: dict):
        response = await client.get("/api/v1/auth/session", headers=alice["headers"])
        assert response.status_code == 200
        data = response.json()
        assert data["id"] == alice["user_id"]
        assert data["email"] == alice["email"]
        assert data["username"] == "alice"

    async def test_requires_token(self, client: AsyncClient):
        response = await client.get("/api/v1/auth/session")
        assert response.status_code in (401, 403)

    async def test_logout_invalidates_access_token(self, client: AsyncClient, alice: dict, fake_redis):
        response = await client.post("/api/v1/auth/logout", json={"refresh_token": alice["refresh_token"]})
        assert response.status_code == 200
        assert json.loads(fake_redis.published[-1][1])["event"] == "signed_out"

        response = await client.get("/api/v1/auth/session", headers=alice["headers"])
        assert response.status_code == 401

    async def test_logout_with_garbage_token_is_harmless(self, client: AsyncClient, alice: dict):
        response = await client.post("/api/v1/auth/logout", json={"refresh_token": "garbage"})
        assert response.status_code == 200
        response = await client.get("/api/v1/auth/session", headers=alice["headers"])
        assert response.status_code == 200

    async def test_other_sessions_survive_logout(self, client: AsyncClient, alice: dict):
        second = await client.post("/api/v1/auth/login", json={
            "email": alice["email"],
            "password": alice["password"],
        })
        second_headers = {"Authorization": f"Bearer {second.json()['access_token']}"}

        await client.post("/api/v1/auth/logout", json={"refresh_token": alice["refresh_token"]})

        response = await client.get("/api/v1/auth/session", headers=second_headers)
        assert response.status_code == 200

    async def test_session_changes_survive_redis_outage(
        self, client: AsyncClient, alice: dict, fake_redis, monkeypatch
    ):
        async def _unreachable(*args, **kwargs):
            raise RedisConnectionError("Connection refused")

        monkeypatch.setattr(fake_redis, "publish", _unreachable)

        response = await client.post("/api/v1/auth/logout", json={"refresh_token": alice["refresh_token"]})
        assert response.status_code == 200
        assert response.json() == {"status": "logged_out"}
        assert (await client.get("/api/v1/auth/session", headers=alice["headers"])).status_code == 401

        response = await client.post("/api/v1/auth/login", json={
            "email": alice["email"],
            "password": alice["password"],
        })
        assert response.status_code == 200

    async def test_logout_all(self, client: AsyncClient, alice: dict):
        response = await client.post("/api/v1/auth/logout-all", headers=alice["headers"])
        assert response.status_code == 200
        assert response.json() == {"status": "all_sessions_revoked", "revoked_count": 1}
        response = await client.get("/api/v1/auth/session", headers=alice["headers"])
        assert response.status_code == 401


class TestRefresh:
    async def test_refresh_rotates_session(self, client: AsyncClient, alice: dict):
        response = await client.post("/api/v1/auth/refresh", json={"refresh_token": alice["refresh_token"]})
        assert response.status_code == 200
        data = response.json()
        assert data["refresh_token"] != alice["refresh_token"]

        new_headers = {"Authorization": f"Bearer {data['access_token']}"}
        assert (await client.get("/api/v1/auth/session", headers=new_headers)).status_code == 200
        # The rotated-away session no longer authorizes requests.
        assert (await client.get("/api/v1/auth/session", headers=alice["headers"])).status_code == 401

    async def test_refresh_token_reuse_revokes_everything(self, client: AsyncClient, alice: dict):
        first = await client.post("/api/v1/auth/refresh", json={"refresh_token": alice["refresh_token"]})
        new_headers = {"Authorization": f"Bearer {first.json()['access_token']}"}

        reuse = await client.post("/api/v1/auth/refresh", json={"refresh_token": alice["refresh_token"]})
        assert reuse.status_code == 401

        assert (await client.get("/api/v1/auth/session", headers=new_headers)).status_code == 401

    async def test_access_token_cannot_refresh(self, client: AsyncClient, alice: dict):
        response = await client.post("/api/v1/auth/refresh", json={"refresh_token": alice["access_token"]})
        assert response.status_code == 401
