"""Tests for IngestionOrchestrator: per-source pipeline and batch behavior."""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.ingestion.config import IngestConfig
from src.ingestion.mock_adapter import MockAdapter
from src.ingestion.orchestrator import IngestionOrchestrator
from src.ingestion.schemas import EventType, Platform, RawItem
from src.ingestion.upsert import EventWriter
from src.quota.tracker import QuotaTracker
from src.storage.database import StorageError


def _stamp(at: datetime) -> str:
    return at.isoformat().replace("+00:00", "Z")


def twitch_video(video_id: str, created_at: datetime, title: str | None = "VOD") -> RawItem:
    return RawItem(Platform.TWITCH, "video", {
        "id": video_id,
        "title": title,
        "created_at": _stamp(created_at),
        "duration": "1h0m0s",
        "type": "archive",
    })


def twitch_stream(stream_id: str, started_at: datetime) -> RawItem:
    return RawItem(Platform.TWITCH, "stream", {
        "id": stream_id,
        "user_login": "caster",
        "title": "Live now",
        "started_at": _stamp(started_at),
        "viewer_count": 10,
    })


@pytest.fixture
def build(sources_repo, events_repo, now):
    """Build an orchestrator over the in-memory repositories."""

    def _build(adapters, config: IngestConfig | None = None, clock=None, writer=None):
        return IngestionOrchestrator(
            adapters={a.platform: a for a in adapters},
            sources=sources_repo,
            writer=writer or EventWriter(events_repo),
            config=config or IngestConfig(),
            clock=clock or (lambda: now),
            metrics=MagicMock(),
        )

    return _build


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_fetch_normalize_write_and_advance(self, build, sources_repo, events_repo, make_source, now):
        source = sources_repo.add(make_source(Platform.TWITCH, "1001"))
        adapter = MockAdapter(Platform.TWITCH, items={"1001": [
            twitch_video("v1", now - timedelta(days=1)),
            twitch_video("v2", now - timedelta(days=2)),
        ]})

        result = await build([adapter]).run_batch([source])

        assert result.succeeded == 1
        assert result.events_upserted == 2
        assert len(events_repo.rows) == 2
        assert sources_repo.rows[source.id].last_fetched_at == now
        assert sources_repo.rows[source.id].fetch_status == "ok"
        assert adapter.fetch_calls == [("1001", now - timedelta(days=7))]

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, build, sources_repo, events_repo, make_source, now):
        source = sources_repo.add(make_source(Platform.TWITCH, "1001"))
        adapter = MockAdapter(Platform.TWITCH, items={"1001": [twitch_video("v1", now - timedelta(hours=2))]})
        orchestrator = build([adapter])

        await orchestrator.run_batch([source])
        snapshot = {k: (e.id, e.title) for k, e in events_repo.rows.items()}
        await orchestrator.run_batch([sources_repo.rows[source.id]])

        assert {k: (e.id, e.title) for k, e in events_repo.rows.items()} == snapshot

    @pytest.mark.asyncio
    async def test_empty_batch(self, build):
        result = await build([]).run_batch([])
        assert result.processed == 0


class TestWindow:
    @pytest.mark.asyncio
    async def test_twitch_first_fetch_keeps_last_seven_days(
        self, build, sources_repo, events_repo, make_source, now
    ):
        source = sources_repo.add(make_source(Platform.TWITCH, "1001"))
        adapter = MockAdapter(Platform.TWITCH, items={"1001": [
            twitch_video("recent", now - timedelta(days=6)),
            twitch_video("old", now - timedelta(days=8)),
        ]})

        result = await build([adapter]).run_batch([source])

        assert set(k[1] for k in events_repo.rows) == {"recent"}
        assert result.events_upserted == 1
        assert sources_repo.rows[source.id].last_fetched_at == now

    @pytest.mark.asyncio
    async def test_slack_overlap_reupserts_items_near_watermark(
        self, build, sources_repo, events_repo, make_source, now
    ):
        last = now - timedelta(hours=1)
        source = sources_repo.add(make_source(Platform.TWITCH, "1001", last_fetched_at=last))
        adapter = MockAdapter(Platform.TWITCH, items={"1001": [
            twitch_video("edge", last - timedelta(minutes=3)),
            twitch_video("before-slack", last - timedelta(minutes=10)),
        ]})

        result = await build([adapter]).run_batch([source])

        assert adapter.fetch_calls[0][1] == last - timedelta(minutes=5)
        assert set(k[1] for k in events_repo.rows) == {"edge"}
        assert result.events_upserted == 1

    @pytest.mark.asyncio
    async def test_live_items_are_exempt_from_window(
        self, build, sources_repo, events_repo, make_source, now
    ):
        source = sources_repo.add(
            make_source(Platform.TWITCH, "1001", last_fetched_at=now - timedelta(minutes=30))
        )
        adapter = MockAdapter(Platform.TWITCH, items={"1001": [
            twitch_stream("marathon", now - timedelta(days=2)),
        ]})

        await build([adapter]).run_batch([source])

        stored = events_repo.rows[(Platform.TWITCH, "marathon")]
        assert stored.type == EventType.LIVE


class TestFailures:
    @pytest.mark.asyncio
    async def test_adapter_failure_tags_source_and_keeps_watermark(
        self, build, sources_repo, make_source, now
    ):
        last = now - timedelta(hours=3)
        bad = sources_repo.add(make_source(Platform.TWITCH, "bad", last_fetched_at=last))
        good = sources_repo.add(make_source(Platform.TWITCH, "good"))
        adapter = MockAdapter(
            Platform.TWITCH,
            items={"good": [twitch_video("v1", now - timedelta(hours=1))]},
            failing={"bad"},
        )

        result = await build([adapter]).run_batch([bad, good])

        assert result.failed == 1
        assert result.succeeded == 1
        assert sources_repo.rows[bad.id].last_fetched_at == last
        assert sources_repo.rows[bad.id].fetch_status == "error:AdapterError"
        assert sources_repo.rows[good.id].last_fetched_at == now

    @pytest.mark.asyncio
    async def test_bad_item_skipped_siblings_kept(
        self, build, sources_repo, events_repo, make_source, now
    ):
        source = sources_repo.add(make_source(Platform.TWITCH, "1001"))
        adapter = MockAdapter(Platform.TWITCH, items={"1001": [
            twitch_video("ok-1", now - timedelta(hours=1)),
            twitch_video("broken", now - timedelta(hours=2), title=None),
            twitch_video("ok-2", now - timedelta(hours=3)),
        ]})

        result = await build([adapter]).run_batch([source])

        assert result.succeeded == 1
        assert result.items_rejected == 1
        assert set(k[1] for k in events_repo.rows) == {"ok-1", "ok-2"}

    @pytest.mark.asyncio
    async def test_storage_failure_aborts_batch_without_advancing(
        self, sources_repo, events_repo, make_source, now
    ):
        source = sources_repo.add(make_source(Platform.TWITCH, "1001"))
        adapter = MockAdapter(Platform.TWITCH, items={"1001": [twitch_video("v1", now - timedelta(hours=1))]})
        events_repo.upsert = AsyncMock(side_effect=StorageError("connection lost"))
        orchestrator = IngestionOrchestrator(
            {Platform.TWITCH: adapter}, sources_repo, EventWriter(events_repo),
            clock=lambda: now, metrics=MagicMock(),
        )

        with pytest.raises(StorageError):
            await orchestrator.run_batch([source])

        assert sources_repo.fetched_calls == []
        assert sources_repo.failed_calls == []
        assert sources_repo.rows[source.id].last_fetched_at is None

    @pytest.mark.asyncio
    async def test_platform_without_adapter_is_skipped(self, build, sources_repo, make_source):
        source = sources_repo.add(make_source(Platform.RADIKO, "TBS"))

        result = await build([MockAdapter(Platform.TWITCH, items={})]).run_batch([source])

        assert result.skipped == 1
        assert sources_repo.fetched_calls == []


class TestQuota:
    @pytest.mark.asyncio
    async def test_insufficient_quota_defers_source(self, build, sources_repo, make_source):
        quota = QuotaTracker(None, Platform.YOUTUBE, daily_limit=10)
        adapter = MockAdapter(Platform.YOUTUBE, items={}, quota=quota, cost_per_fetch=20)
        source = sources_repo.add(make_source(Platform.YOUTUBE, "UCx"))

        result = await build([adapter]).run_batch([source])

        assert result.deferred == 1
        assert result.failed == 0
        assert adapter.fetch_calls == []
        assert sources_repo.rows[source.id].last_fetched_at is None
        assert sources_repo.rows[source.id].fetch_status == "ok"

    @pytest.mark.asyncio
    async def test_budget_spent_until_exhausted(self, build, sources_repo, make_source):
        quota = QuotaTracker(None, Platform.YOUTUBE, daily_limit=5)
        adapter = MockAdapter(Platform.YOUTUBE, items={}, quota=quota, cost_per_fetch=2)
        sources = [sources_repo.add(make_source(Platform.YOUTUBE, f"UC{i}")) for i in range(4)]

        result = await build([adapter], config=IngestConfig(max_workers=1)).run_batch(sources)

        assert result.succeeded == 2
        assert result.deferred == 2
        assert quota.used == 4


class TestDeadline:
    @pytest.mark.asyncio
    async def test_timeout_cancels_and_leaves_watermarks(self, build, sources_repo, make_source):
        sources = [sources_repo.add(make_source(Platform.TWITCH, f"slow-{i}")) for i in range(2)]
        adapter = MockAdapter(Platform.TWITCH, items={}, delay=5.0)
        config = IngestConfig(max_workers=1, run_timeout_seconds=0.05)

        result = await build([adapter], config=config).run_batch(sources)

        assert result.timed_out
        assert result.skipped == 2
        assert sources_repo.fetched_calls == []


class TestWatermarkMonotonic:
    @pytest.mark.asyncio
    async def test_later_run_advances_and_earlier_clock_never_rewinds(
        self, build, sources_repo, make_source, now
    ):
        source = sources_repo.add(make_source(Platform.PODCAST, "https://pod.example/feed"))
        adapter = MockAdapter(Platform.PODCAST, items={})

        await build([adapter], clock=lambda: now).run_batch([source])
        later = now + timedelta(hours=1)
        await build([adapter], clock=lambda: later).run_batch([sources_repo.rows[source.id]])
        await build([adapter], clock=lambda: now).run_batch([sources_repo.rows[source.id]])

        assert sources_repo.rows[source.id].last_fetched_at == later
