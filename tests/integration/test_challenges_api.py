"""Challenge API tests — catalog, join/leave, my challenges, tick, admin seed."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from tests.conftest import add_challenge, challenge_row

ADMIN = {"X-Admin-Token": "test-admin-token"}


def _json_row(**overrides: object) -> dict:
    row = challenge_row(**overrides)
    row["start_date"] = row["start_date"].isoformat()
    row["end_date"] = row["end_date"].isoformat()
    return row


class TestCatalog:
    async def test_empty_catalog(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/challenges")
        assert response.status_code == 200
        assert response.json() == []

    async def test_catalog_and_detail(self, client: AsyncClient, db: AsyncSession) -> None:
        await add_challenge(db)
        catalog = (await client.get("/api/v1/challenges")).json()
        assert [c["id"] for c in catalog] == ["walk-20k"]
        assert catalog[0]["participants_count"] == 0

        detail = await client.get("/api/v1/challenges/walk-20k")
        assert detail.status_code == 200
        assert detail.json()["entry_fee"] == 5

    async def test_ended_hidden_unless_requested(self, client: AsyncClient, db: AsyncSession) -> None:
        now = datetime.now(timezone.utc)
        await add_challenge(db, start_date=now - timedelta(days=5), end_date=now - timedelta(days=1))
        assert (await client.get("/api/v1/challenges")).json() == []
        ended = (await client.get("/api/v1/challenges", params={"include_ended": "true"})).json()
        assert len(ended) == 1

    async def test_unknown_challenge(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/challenges/nope")
        assert response.status_code == 404
        assert response.json()["code"] == "challenge_not_found"


class TestJoinFlow:
    async def test_join_tick_complete(self, client: AsyncClient, db: AsyncSession, alice_headers: dict) -> None:
        await add_challenge(db)
        await client.post("/api/v1/activity/samples", json={"steps": 5000}, headers=alice_headers)

        joined = await client.post("/api/v1/challenges/walk-20k/join", headers=alice_headers)
        assert joined.status_code == 200
        body = joined.json()
        assert body["coins"] == 0
        assert body["membership"]["status"] == "active"
        assert body["membership"]["challenge"]["participants_count"] == 1

        again = await client.post("/api/v1/challenges/walk-20k/join", headers=alice_headers)
        assert again.status_code == 409
        assert again.json()["code"] == "already_joined"

        synced = await client.post("/api/v1/activity/samples", json={"steps": 25000}, headers=alice_headers)
        progress = synced.json()["progress"]
        assert progress["completed"] == ["walk-20k"]
        assert progress["coins_rewarded"] == 20
        assert synced.json()["wallet"]["coins"] == 20 + 20

        mine = (await client.get("/api/v1/me/challenges", headers=alice_headers)).json()
        assert mine[0]["status"] == "completed"
        assert mine[0]["current_progress"] == 20000

        leave = await client.delete("/api/v1/challenges/walk-20k/membership", headers=alice_headers)
        assert leave.status_code == 409
        assert leave.json()["code"] == "challenge_already_completed"

    async def test_join_without_funds(self, client: AsyncClient, db: AsyncSession, alice_headers: dict) -> None:
        await add_challenge(db)
        response = await client.post("/api/v1/challenges/walk-20k/join", headers=alice_headers)
        assert response.status_code == 402
        assert response.json()["code"] == "insufficient_funds"

    async def test_join_ended(self, client: AsyncClient, db: AsyncSession, alice_headers: dict) -> None:
        now = datetime.now(timezone.utc)
        await add_challenge(db, entry_fee=0, start_date=now - timedelta(days=5), end_date=now - timedelta(days=1))
        response = await client.post("/api/v1/challenges/walk-20k/join", headers=alice_headers)
        assert response.status_code == 409
        assert response.json()["code"] == "challenge_ended"

    async def test_leave(self, client: AsyncClient, db: AsyncSession, alice_headers: dict) -> None:
        await add_challenge(db, entry_fee=0)
        await client.post("/api/v1/challenges/walk-20k/join", headers=alice_headers)

        response = await client.delete("/api/v1/challenges/walk-20k/membership", headers=alice_headers)
        assert response.status_code == 204
        assert (await client.get("/api/v1/me/challenges", headers=alice_headers)).json() == []

        missing = await client.delete("/api/v1/challenges/walk-20k/membership", headers=alice_headers)
        assert missing.status_code == 404
        assert missing.json()["code"] == "not_joined"

    async def test_manual_tick(self, client: AsyncClient, db: AsyncSession, alice_headers: dict) -> None:
        await add_challenge(db, entry_fee=0)
        await client.post("/api/v1/challenges/walk-20k/join", headers=alice_headers)
        response = await client.post("/api/v1/challenges/tick", headers=alice_headers)
        assert response.status_code == 200
        assert response.json() == {"updated": [], "completed": [], "coins_rewarded": 0}


class TestAdminSeed:
    async def test_requires_admin_token(self, client: AsyncClient) -> None:
        response = await client.post("/api/v1/admin/challenges", json={"challenges": []})
        assert response.status_code == 403

        wrong = await client.post(
            "/api/v1/admin/challenges", json={"challenges": []}, headers={"X-Admin-Token": "nope"},
        )
        assert wrong.status_code == 403

    async def test_seed_and_reseed(self, client: AsyncClient) -> None:
        payload = {"challenges": [_json_row(), _json_row(id="walk-5k", goal=5000)]}
        first = await client.post("/api/v1/admin/challenges", json=payload, headers=ADMIN)
        assert first.status_code == 200
        assert first.json() == {"seeded": 2}

        await client.post("/api/v1/admin/challenges", json=payload, headers=ADMIN)
        catalog = (await client.get("/api/v1/challenges")).json()
        assert sorted(c["id"] for c in catalog) == ["walk-20k", "walk-5k"]

    async def test_invalid_rows(self, client: AsyncClient) -> None:
        now = datetime.now(timezone.utc)
        bad = _json_row(start_date=now, end_date=now - timedelta(days=1))
        response = await client.post("/api/v1/admin/challenges", json={"challenges": [bad]}, headers=ADMIN)
        assert response.status_code == 422

        bad_type = _json_row(type="swim")
        response = await client.post("/api/v1/admin/challenges", json={"challenges": [bad_type]}, headers=ADMIN)
        assert response.status_code == 422
