"""Activity source adapters.

Callers depend only on ``ActivitySource``. Two variants exist:

- ``SimulatedActivitySource``: demo/dev data, per-user running totals grown by
  a random 3 000-15 000 steps per fetch at ~0.7 m per step.
- ``DeviceBackedActivitySource``: pulls cumulative totals from the device
  health bridge over HTTP.
"""

from __future__ import annotations

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import httpx

from stepcoin.config import Settings

METERS_PER_STEP = 0.7


@dataclass(frozen=True)
class ActivitySample:
    """Cumulative activity totals as reported by a source at ``sampled_at``."""

    cumulative_steps: int
    cumulative_distance: float
    sampled_at: datetime

    def __post_init__(self) -> None:
        if self.cumulative_steps < 0:
            msg = f"cumulative_steps must be >= 0, got {self.cumulative_steps}"
            raise ValueError(msg)
        if self.cumulative_distance < 0:
            msg = f"cumulative_distance must be >= 0, got {self.cumulative_distance}"
            raise ValueError(msg)
        if self.sampled_at.tzinfo is None:
            object.__setattr__(self, "sampled_at", self.sampled_at.replace(tzinfo=timezone.utc))


class ActivitySource(ABC):
    """Supplies cumulative step/distance samples on demand."""

    name: str = "unknown"

    @abstractmethod
    async def fetch_sample(self, user_id: str) -> ActivitySample:
        """Return the user's current cumulative totals."""

    async def aclose(self) -> None:  # noqa: B027
        """Release any held resources."""


class SimulatedActivitySource(ActivitySource):
    """Random but monotonically growing per-user totals."""

    name = "simulated"

    def __init__(
        self,
        seed: int | None = None,
        min_steps: int = 3000,
        max_steps: int = 15000,
    ) -> None:
        self._rng = random.Random(seed)  # noqa: S311
        self._min_steps = min_steps
        self._max_steps = max_steps
        self._totals: dict[str, int] = {}

    async def fetch_sample(self, user_id: str) -> ActivitySample:
        steps = self._totals.get(user_id, 0) + self._rng.randint(self._min_steps, self._max_steps)
        self._totals[user_id] = steps
        return ActivitySample(
            cumulative_steps=steps,
            cumulative_distance=round(steps * METERS_PER_STEP, 2),
            sampled_at=datetime.now(timezone.utc),
        )

    def reset(self, user_id: str) -> None:
        """Simulate a device counter reset (e.g. a new day)."""
        self._totals.pop(user_id, None)


class DeviceBackedActivitySource(ActivitySource):
    """Reads totals from the health bridge: ``GET /v1/users/{user_id}/activity``.

    Expected response body::

        {"steps": 12345, "distance_meters": 8641.5, "sampled_at": "2026-03-01T12:00:00Z"}
    """

    name = "device"

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, headers=headers, timeout=timeout)

    async def fetch_sample(self, user_id: str) -> ActivitySample:
        response = await self._client.get(f"/v1/users/{user_id}/activity")
        response.raise_for_status()
        return self._parse(response.json())

    @staticmethod
    def _parse(data: dict[str, Any]) -> ActivitySample:
        sampled_at_raw = data.get("sampled_at")
        if sampled_at_raw:
            sampled_at = datetime.fromisoformat(str(sampled_at_raw).replace("Z", "+00:00"))
        else:
            sampled_at = datetime.now(timezone.utc)
        return ActivitySample(
            cumulative_steps=int(data.get("steps", 0)),
            cumulative_distance=float(data.get("distance_meters", 0.0)),
            sampled_at=sampled_at,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def build_activity_source(settings: Settings) -> ActivitySource:
    """Construct the source selected by ``settings.activity_source``."""
    if settings.activity_source == "device":
        return DeviceBackedActivitySource(
            base_url=settings.device_api_base_url,
            token=settings.device_api_token,
            timeout=settings.device_api_timeout_seconds,
        )
    if settings.activity_source == "simulated":
        return SimulatedActivitySource(seed=settings.simulated_seed)
    msg = f"Unknown activity source: {settings.activity_source!r}"
    raise ValueError(msg)
