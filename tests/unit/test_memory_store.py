"""Tests for the in-memory job store."""

import asyncio

import pytest

from fakes import make_job
from spark_worker.models import JobStatus
from spark_worker.models.job import ALLOWED_TRANSITIONS
from spark_worker.store import InMemoryJobStore


class TestFetchQueued:
    @pytest.mark.asyncio
    async def test_orders_by_priority_then_creation(self) -> None:
        store = InMemoryJobStore(
            [
                make_job("late-low", priority=5, offset_s=1),
                make_job("unset", priority=None, offset_s=0),
                make_job("high", priority=1, offset_s=3),
                make_job("early-low", priority=5, offset_s=0),
            ]
        )
        jobs = await store.fetch_queued(10)
        assert [j.id for j in jobs] == ["high", "early-low", "late-low", "unset"]

    @pytest.mark.asyncio
    async def test_respects_limit_and_status(self) -> None:
        store = InMemoryJobStore([make_job(f"j{i}", priority=i) for i in range(5)])
        assert await store.claim_running("j0")
        jobs = await store.fetch_queued(2)
        assert [j.id for j in jobs] == ["j1", "j2"]
        assert await store.fetch_queued(0) == []

    def test_duplicate_id_rejected(self) -> None:
        store = InMemoryJobStore([make_job("j1")])
        with pytest.raises(ValueError):
            store.add(make_job("j1"))


class TestClaim:
    @pytest.mark.asyncio
    async def test_claim_is_mutually_exclusive(self) -> None:
        store = InMemoryJobStore([make_job("j1")])
        results = await asyncio.gather(*(store.claim_running("j1") for _ in range(10)))
        assert results.count(True) == 1
        job = store.get("j1")
        assert job.status == JobStatus.RUNNING
        assert job.started_at is not None

    @pytest.mark.asyncio
    async def test_claim_clears_previous_errors(self) -> None:
        store = InMemoryJobStore([make_job("j1").model_copy(update={"last_error": "old"})])
        assert await store.claim_running("j1")
        assert store.get("j1").last_error is None

    @pytest.mark.asyncio
    async def test_claim_unknown_job(self) -> None:
        assert not await InMemoryJobStore().claim_running("missing")


class TestTerminalWrites:
    @pytest.mark.asyncio
    async def test_delivered(self) -> None:
        store = InMemoryJobStore([make_job("j1")])
        await store.claim_running("j1")
        job = await store.mark_delivered("j1", "https://cdn/x.mp4", "dry_run")
        assert job.status == JobStatus.DELIVERED
        assert job.result_url == "https://cdn/x.mp4"
        assert job.provider_used == "dry_run"
        assert job.finished_at is not None
        assert store.transitions == [
            ("j1", JobStatus.QUEUED, JobStatus.RUNNING),
            ("j1", JobStatus.RUNNING, JobStatus.DELIVERED),
        ]

    @pytest.mark.asyncio
    async def test_failed_truncates_message(self) -> None:
        store = InMemoryJobStore([make_job("j1")], max_error_length=200)
        await store.claim_running("j1")
        job = await store.mark_failed("j1", "x" * 1000, "dry_run")
        assert job.status == JobStatus.FAILED
        assert len(job.error) == 200
        assert job.result_url is None

    @pytest.mark.asyncio
    async def test_terminal_state_is_final(self) -> None:
        store = InMemoryJobStore([make_job("j1")])
        await store.claim_running("j1")
        await store.mark_failed("j1", "boom")
        assert await store.mark_delivered("j1", "https://cdn/x.mp4", "dry_run") is None
        assert await store.mark_failed("j1", "again") is None
        assert not await store.claim_running("j1")
        assert store.get("j1").status == JobStatus.FAILED

    @pytest.mark.asyncio
    async def test_queued_job_cannot_be_delivered(self) -> None:
        store = InMemoryJobStore([make_job("j1")])
        assert await store.mark_delivered("j1", "https://cdn/x.mp4", "dry_run") is None
        assert store.get("j1").status == JobStatus.QUEUED


class TestTransitionTable:
    @pytest.mark.asyncio
    async def test_guards_follow_allowed_transitions(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setitem(
            ALLOWED_TRANSITIONS, JobStatus.RUNNING, frozenset({JobStatus.DELIVERED})
        )
        store = InMemoryJobStore([make_job("j1")])
        await store.claim_running("j1")

        assert await store.mark_failed("j1", "boom") is None
        assert store.get("j1").status == JobStatus.RUNNING

    @pytest.mark.asyncio
    async def test_finished_at_only_on_terminal_states(self) -> None:
        store = InMemoryJobStore([make_job("j1")])
        await store.claim_running("j1")
        assert store.get("j1").finished_at is None
        job = await store.mark_failed("j1", "boom")
        assert job.finished_at is not None


class TestRecordDiagnostic:
    @pytest.mark.asyncio
    async def test_writes_last_error_without_transition(self) -> None:
        store = InMemoryJobStore([make_job("j1")])
        await store.claim_running("j1")
        await store.record_diagnostic("j1", "worker stopped")
        job = store.get("j1")
        assert job.last_error == "worker stopped"
        assert job.status == JobStatus.RUNNING

    @pytest.mark.asyncio
    async def test_unknown_job_does_not_raise(self) -> None:
        await InMemoryJobStore().record_diagnostic("missing", "boom")
