"""arq worker settings.

Import path for arq CLI: arq stepcoin.workers.settings.WorkerSettings
"""

from __future__ import annotations

from arq import cron
from arq.connections import RedisSettings

from stepcoin.config import get_settings
from stepcoin.workers.jobs import (
    heal_participant_counts,
    shutdown,
    startup,
    sync_all_activity,
    tick_all_users,
)


class WorkerSettings:
    """arq worker settings for activity sync and challenge upkeep."""

    functions = [sync_all_activity, tick_all_users, heal_participant_counts]
    cron_jobs = [
        cron(sync_all_activity, second={0}, unique=True),
        cron(tick_all_users, minute=set(range(0, 60, 5)), second={30}, unique=True),
        cron(heal_participant_counts, minute={0}, second={15}, unique=True),
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().arq_redis_url)
    max_jobs = 4
    job_timeout = 300


__all__ = ["WorkerSettings"]
