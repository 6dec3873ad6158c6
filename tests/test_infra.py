"""
Scheduler, TTL cache, assignment detail lookups and settings loading.
"""
from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from duesync.config import load_settings
from duesync.domain.common.errors import UpstreamError
from duesync.domain.common.ports import CancelToken
from duesync.domain.sync.details import AssignmentDetails, detail_from_payload
from duesync.infra.cache.memory_cache import TtlCache
from duesync.infra.clock.system_clock import SystemClock
from duesync.infra.ids.uuid_gen import UuidGenerator
from duesync.infra.scheduler.loop import AsyncioScheduler
from tests.fakes import FakeLmsClient, FixedClock


# ----- CancelToken -----


def test_cancel_token_transitions_are_one_shot():
    token = CancelToken()
    assert token.claim() is True
    assert token.cancel() is False
    assert token.state == CancelToken.FIRED

    other = CancelToken()
    assert other.cancel() is True
    assert other.claim() is False
    assert other.state == CancelToken.CANCELLED


# ----- AsyncioScheduler -----


def test_scheduled_call_runs_after_delay():
    ran = []

    async def run():
        scheduler = AsyncioScheduler()

        async def job():
            ran.append("job")

        token = scheduler.schedule_once(0.01, job)
        assert scheduler.pending_count == 1
        await asyncio.sleep(0.05)
        return token

    token = asyncio.run(run())
    assert ran == ["job"]
    assert token.state == CancelToken.FIRED


def test_cancelled_call_never_runs():
    ran = []

    async def run():
        scheduler = AsyncioScheduler()

        async def job():
            ran.append("job")

        token = scheduler.schedule_once(0.01, job)
        assert token.cancel() is True
        await asyncio.sleep(0.05)

    asyncio.run(run())
    assert ran == []


def test_failing_call_is_logged_not_raised(caplog):
    async def run():
        scheduler = AsyncioScheduler()

        async def job():
            raise RuntimeError("write failed")

        scheduler.schedule_once(0, job)
        await asyncio.sleep(0.02)

    asyncio.run(run())
    assert "write failed" in caplog.text


def test_flush_runs_pending_calls_now_and_cancel_all_drops_them():
    ran = []

    async def run():
        scheduler = AsyncioScheduler()

        async def job(name):
            ran.append(name)

        scheduler.schedule_once(60, lambda: job("a"))
        await scheduler.flush()
        scheduler.schedule_once(60, lambda: job("b"))
        assert scheduler.cancel_all() == 1
        assert scheduler.pending_count == 0

    asyncio.run(run())
    assert ran == ["a"]


# ----- TtlCache -----


def test_cache_entries_expire():
    clock = FixedClock()
    cache = TtlCache(clock, ttl_seconds=300)
    cache.set("1-2", {"submitted_at": None})
    clock.advance(299)
    assert cache.get("1-2") == {"submitted_at": None}
    clock.advance(1)
    assert cache.get("1-2") is None
    assert len(cache) == 0


def test_cache_expire_drops_entry():
    cache = TtlCache(FixedClock(), ttl_seconds=300)
    cache.set("k", 1)
    cache.expire("k")
    cache.expire("missing")
    assert cache.get("k") is None


# ----- assignment detail -----


def test_detail_lookup_is_cached_per_assignment():
    client = FakeLmsClient(
        details={
            "7-1": {
                "id": 1,
                "name": "Lab",
                "submission_types": ["online_upload"],
                "allowed_extensions": ["pdf"],
                "quiz_id": 44,
                "locked_for_user": True,
                "lock_explanation": "Locked until Monday",
            }
        }
    )
    details = AssignmentDetails(client, TtlCache(FixedClock(), 300))

    first = asyncio.run(details.get("7", "1"))
    second = asyncio.run(details.get("7", "1"))

    assert first is second
    assert client.calls["assignment"] == 1
    assert first.quiz_id == "44"
    assert first.allowed_extensions == ["pdf"]
    assert first.locked_for_user is True

    details.invalidate("7", "1")
    asyncio.run(details.get("7", "1"))
    assert client.calls["assignment"] == 2


def test_detail_lookup_errors_propagate():
    details = AssignmentDetails(FakeLmsClient(), TtlCache(FixedClock(), 300))
    with pytest.raises(UpstreamError):
        asyncio.run(details.get("7", "404"))


def test_detail_defaults_for_sparse_payload():
    detail = detail_from_payload({"id": 3})
    assert detail.name == ""
    assert detail.submission_types == []
    assert detail.quiz_id is None


# ----- settings -----


def test_settings_defaults(monkeypatch):
    for name in (
        "DUESYNC_DB_PATH",
        "DUESYNC_KV_DIR",
        "DUESYNC_USER_ID",
        "DUESYNC_FETCH_CONCURRENCY",
        "DUESYNC_UNDO_SECONDS",
        "DUESYNC_LOG_LEVEL",
        "DUESYNC_TZ",
        "LMS_BASE_URL",
        "LMS_TOKEN",
    ):
        monkeypatch.delenv(name, raising=False)
    settings = load_settings()
    assert settings.db_path == Path("data/duesync.db")
    assert settings.user_id == "local"
    assert settings.fetch_concurrency == 5
    assert settings.undo_seconds == 7.0
    assert settings.log_level == "INFO"
    assert settings.timezone == "UTC"


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("LMS_BASE_URL", " https://lms.test/ ")
    monkeypatch.setenv("DUESYNC_SUBMISSION_CONCURRENCY", "2")
    monkeypatch.setenv("DUESYNC_LOG_LEVEL", "debug")
    settings = load_settings()
    assert settings.lms_base_url == "https://lms.test/"
    assert settings.submission_concurrency == 2
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize("name, value", [("DUESYNC_FETCH_CONCURRENCY", "many"), ("DUESYNC_FETCH_CONCURRENCY", "0"), ("DUESYNC_UNDO_SECONDS", "-1")])
def test_invalid_numbers_fail_fast(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(RuntimeError):
        load_settings()


# ----- clock + ids -----


def test_system_clock_is_aware_and_rejects_unknown_zones():
    clock = SystemClock("Europe/Helsinki")
    assert clock.now().tzinfo is not None
    assert clock.tz_name == "Europe/Helsinki"
    with pytest.raises(ValueError):
        SystemClock("Mars/Olympus_Mons")


def test_uuid_generator_formats():
    assert len(UuidGenerator().new_id()) == 36
    compact = UuidGenerator(compact=True).new_id()
    assert len(compact) == 32 and "-" not in compact
