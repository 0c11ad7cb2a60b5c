"""Tests for the background cleanup jobs."""

import time
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from clientlogin.auth_providers.client_session import _memory_store
from clientlogin.core.config import settings
from clientlogin.jobs import cleanup


class TestCleanupJobs:
    @pytest.mark.asyncio
    async def test_expired_sessions_are_swept(self, session_engine, credential_store, alice):
        old = datetime.now(timezone.utc) - timedelta(days=settings.LOGIN_EXPIRY + 1)
        await credential_store.create_session(alice.id, "stale", created_at=old)
        await credential_store.create_session(alice.id, "fresh")

        deleted = await cleanup.cleanup_expired_sessions(session_engine)

        assert deleted == 1
        assert [s.session_token for s in await credential_store.list_sessions(alice.id)] == ["fresh"]

    @pytest.mark.asyncio
    async def test_sweep_errors_are_logged_not_raised(self):
        engine = AsyncMock()
        engine.prune_expired_sessions.side_effect = RuntimeError("database gone")

        assert await cleanup.cleanup_expired_sessions(engine) == 0

    @pytest.mark.asyncio
    async def test_transport_sessions_are_purged(self, transport_store):
        _memory_store["clientlogin:visitor:clientlogin_state"] = ("T", time.time() - 1)

        assert await cleanup.cleanup_transport_sessions() == 1
        assert _memory_store == {}

    def test_jobs_are_registered(self, monkeypatch):
        scheduler = AsyncIOScheduler()
        monkeypatch.setattr(cleanup, "scheduler", scheduler)

        cleanup.register_jobs()

        jobs = {job["id"]: job for job in cleanup.get_job_status()}
        assert set(jobs) == {"cleanup_expired_sessions", "cleanup_transport_sessions"}
        assert f"hour='{settings.CLEANUP_HOUR}'" in jobs["cleanup_expired_sessions"]["trigger"]
        assert jobs["cleanup_expired_sessions"]["next_run"] is None
