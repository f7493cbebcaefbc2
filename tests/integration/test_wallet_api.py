"""Wallet API tests — /api/v1/wallet/*."""

from __future__ import annotations

from datetime import timedelta

import pytest
from httpx import AsyncClient

from stepcoin.auth.jwt import create_access_token
from tests.conftest import USER_ID


class TestAuth:
    async def test_missing_token(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/wallet")
        assert response.status_code in (401, 403)

    async def test_bad_token(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/wallet", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    async def test_expired_token(self, client: AsyncClient) -> None:
        token = create_access_token(USER_ID, expires_in=timedelta(seconds=-5))
        response = await client.get("/api/v1/wallet", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Token has expired"


class TestWallet:
    async def test_wallet_not_found_before_open(self, client: AsyncClient, alice_headers: dict) -> None:
        response = await client.get("/api/v1/wallet", headers=alice_headers)
        assert response.status_code == 404
        assert response.json() == {"detail": "Wallet not found", "code": "wallet_not_found"}

    async def test_open_and_read(self, client: AsyncClient, alice_headers: dict) -> None:
        opened = await client.post("/api/v1/wallet", headers=alice_headers)
        assert opened.status_code == 200
        assert opened.json()["coins"] == 0

        again = await client.post("/api/v1/wallet", headers=alice_headers)
        assert again.status_code == 200

        response = await client.get("/api/v1/wallet", headers=alice_headers)
        data = response.json()
        assert data["user_id"] == USER_ID
        assert data["coins"] == 0
        assert data["total_earned"] == 0
        assert data["steps_counted"] == 0

    async def test_users_are_isolated(self, client: AsyncClient, alice_headers: dict, bob_headers: dict) -> None:
        await client.post("/api/v1/activity/samples", json={"steps": 3000}, headers=alice_headers)
        await client.post("/api/v1/wallet", headers=bob_headers)

        bob = (await client.get("/api/v1/wallet", headers=bob_headers)).json()
        assert bob["coins"] == 0


class TestTransactions:
    async def test_history_pages(self, client: AsyncClient, alice_headers: dict) -> None:
        for steps in (1000, 2000, 3000, 4000):
            await client.post("/api/v1/activity/samples", json={"steps": steps}, headers=alice_headers)

        first = (await client.get("/api/v1/wallet/transactions?limit=3", headers=alice_headers)).json()
        assert len(first["transactions"]) == 3
        assert first["next_cursor"] is not None
        assert all(t["kind"] == "earned" and t["amount"] == 1 for t in first["transactions"])

        second = (
            await client.get(
                f"/api/v1/wallet/transactions?limit=3&cursor={first['next_cursor']}", headers=alice_headers,
            )
        ).json()
        assert len(second["transactions"]) == 1
        assert second["next_cursor"] is None

        ids = [t["id"] for t in first["transactions"] + second["transactions"]]
        assert ids == sorted(ids, reverse=True)

    async def test_bad_cursor(self, client: AsyncClient, alice_headers: dict) -> None:
        await client.post("/api/v1/wallet", headers=alice_headers)
        response = await client.get("/api/v1/wallet/transactions", params={"cursor": "not-a-cursor"}, headers=alice_headers)
        assert response.status_code == 400

    @pytest.mark.parametrize("limit", [0, 101])
    async def test_limit_bounds(self, client: AsyncClient, alice_headers: dict, limit: int) -> None:
        await client.post("/api/v1/wallet", headers=alice_headers)
        response = await client.get(f"/api/v1/wallet/transactions?limit={limit}", headers=alice_headers)
        assert response.status_code == 422


class TestFitnessScore:
    async def test_score(self, client: AsyncClient, alice_headers: dict) -> None:
        await client.post("/api/v1/activity/samples", json={"steps": 250_000}, headers=alice_headers)
        response = await client.get("/api/v1/wallet/fitness-score", headers=alice_headers)
        assert response.status_code == 200
        assert response.json() == {"score": 7, "level": "Novice"}  # 2.5 from steps + 5 for one earning


class TestActivityStats:
    async def test_stats_after_first_sample(self, client: AsyncClient, alice_headers: dict) -> None:
        await client.post("/api/v1/activity/samples", json={"steps": 250_000}, headers=alice_headers)
        response = await client.get("/api/v1/wallet/stats", headers=alice_headers)
        assert response.status_code == 200
        assert response.json() == {
            "total_days": 1,
            "active_days": 1,
            "streak_percentage": 100.0,
            "fitness_score": 7,
            "fitness_level": "Novice",
        }

    async def test_requires_wallet(self, client: AsyncClient, alice_headers: dict) -> None:
        response = await client.get("/api/v1/wallet/stats", headers=alice_headers)
        assert response.status_code == 404


class TestAdminLedgerCheck:
    async def test_requires_admin(self, client: AsyncClient) -> None:
        response = await client.get(f"/api/v1/admin/wallets/{USER_ID}/verify")
        assert response.status_code == 403

    async def test_consistent_after_activity(self, client: AsyncClient, alice_headers: dict) -> None:
        await client.post("/api/v1/activity/samples", json={"steps": 4321}, headers=alice_headers)
        response = await client.get(
            f"/api/v1/admin/wallets/{USER_ID}/verify", headers={"X-Admin-Token": "test-admin-token"},
        )
        assert response.status_code == 200
        assert response.json() == {"user_id": USER_ID, "coins": 4, "transaction_sum": 4, "consistent": True}
