import asyncio

import pytest

from app.domain.errors import InvalidJobStateError, JobNotFoundError, PayloadValidationError
from app.domain.states import JobStatus
from app.services.job_queue import JobQueue

@pytest.mark.asyncio
async def test_enqueue_defaults(queue, clock):
    job = await queue.enqueue("bulk_resync_passes", {"program_id": "prog-1"})

    assert job.status == JobStatus.PENDING
    assert job.attempts == 0
    assert job.max_attempts == 3
    assert job.scheduled_at == clock.now
    assert job.payload == {"program_id": "prog-1"}

@pytest.mark.asyncio
async def test_enqueue_rejects_invalid_known_payload(queue, store):
    with pytest.raises(PayloadValidationError):
        await queue.enqueue("bulk_resync_passes", {"template_id": "t-1"})

    assert await store.list_jobs() == []

@pytest.mark.asyncio
async def test_enqueue_passes_unknown_types_through(queue):
    job = await queue.enqueue("custom_export", {"anything": [1, 2]})
    assert job.payload == {"anything": [1, 2]}

@pytest.mark.asyncio
async def test_dequeue_returns_none_when_nothing_due(queue, clock):
    assert await queue.dequeue() is None

    await queue.enqueue("send_email", {}, scheduled_at=clock.now.replace(year=2030))
    assert await queue.dequeue() is None

@pytest.mark.asyncio
async def test_dequeue_claims_oldest_due_job(queue, clock):
    first = await queue.enqueue("a", {})
    clock.advance(1)
    await queue.enqueue("a", {})

    job = await queue.dequeue()

    assert job.id == first.id
    assert job.status == JobStatus.PROCESSING
    assert job.attempts == 1
    assert job.started_at == clock.now

@pytest.mark.asyncio
async def test_dequeue_filters_by_type(queue):
    await queue.enqueue("a", {})
    b = await queue.enqueue("b", {})

    job = await queue.dequeue(["b"])
    assert job.id == b.id
    assert await queue.dequeue(["b"]) is None

@pytest.mark.asyncio
async def test_empty_type_list_means_no_filter(queue):
    await queue.enqueue("a", {})
    assert await queue.dequeue([]) is not None

@pytest.mark.asyncio
async def test_concurrent_dequeue_claims_job_once(queue):
    await queue.enqueue("a", {})

    results = await asyncio.gather(*(queue.dequeue() for _ in range(10)))

    assert len([job for job in results if job is not None]) == 1

@pytest.mark.asyncio
async def test_lost_claim_race_returns_none(store, queue, clock):
    job = await queue.enqueue("a", {})

    # Both workers see the same candidate, only one conditional update wins
    seen_a = await store.select_one_eligible(None, clock.now)
    seen_b = await store.select_one_eligible(None, clock.now)
    assert seen_a.id == seen_b.id == job.id

    patch = {"status": JobStatus.PROCESSING, "attempts": 1}
    assert await store.update_where(job.id, JobStatus.PENDING, patch) is not None
    assert await store.update_where(job.id, JobStatus.PENDING, patch) is None

@pytest.mark.asyncio
async def test_complete_records_result(queue, clock):
    await queue.enqueue("a", {})
    job = await queue.dequeue()
    clock.advance(5)

    done = await queue.complete(job.id, {"ok": True})

    assert done.status == JobStatus.COMPLETED
    assert done.result == {"ok": True}
    assert done.completed_at == clock.now

@pytest.mark.asyncio
async def test_complete_defaults_result_to_empty_dict(queue):
    await queue.enqueue("a", {})
    job = await queue.dequeue()
    assert (await queue.complete(job.id)).result == {}

@pytest.mark.asyncio
async def test_complete_rejects_non_processing_job(queue):
    job = await queue.enqueue("a", {})
    with pytest.raises(InvalidJobStateError):
        await queue.complete(job.id)

@pytest.mark.asyncio
async def test_complete_unknown_job(queue):
    from uuid import uuid4
    with pytest.raises(JobNotFoundError):
        await queue.complete(uuid4())

@pytest.mark.asyncio
async def test_fail_schedules_retry_with_backoff(queue, clock):
    await queue.enqueue("a", {})
    job = await queue.dequeue()

    failed = await queue.fail(job.id, "boom")

    assert failed.status == JobStatus.PENDING
    assert failed.error == "boom"
    # attempts=1 after the lease, so the delay is 2s
    assert (failed.scheduled_at - clock.now).total_seconds() == 2
    assert failed.completed_at is None

@pytest.mark.asyncio
async def test_fail_terminal_skips_retries(queue):
    await queue.enqueue("a", {})
    job = await queue.dequeue()

    failed = await queue.fail(job.id, "no handler", terminal=True)

    assert failed.status == JobStatus.FAILED
    assert failed.completed_at is not None

@pytest.mark.asyncio
async def test_fail_unknown_job(queue):
    from uuid import uuid4
    with pytest.raises(JobNotFoundError):
        await queue.fail(uuid4(), "boom")

@pytest.mark.asyncio
async def test_bulk_resync_exhausts_attempts(queue, clock):
    job = await queue.enqueue("bulk_resync_passes", {"program_id": "prog-1"})
    statuses = [job.status]

    for attempt in range(1, 4):
        leased = await queue.dequeue()
        assert leased is not None and leased.id == job.id
        assert leased.attempts == attempt
        statuses.append(leased.status)

        failed = await queue.fail(job.id, "wallet API unavailable")
        statuses.append(failed.status)
        if attempt < 3:
            assert failed.completed_at is None
            clock.now = failed.scheduled_at

    assert statuses == [
        JobStatus.PENDING,
        JobStatus.PROCESSING, JobStatus.PENDING,
        JobStatus.PROCESSING, JobStatus.PENDING,
        JobStatus.PROCESSING, JobStatus.FAILED,
    ]
    final = await queue.get(job.id)
    assert final.attempts == final.max_attempts == 3
    assert final.is_terminal
    assert final.completed_at == clock.now
    assert await queue.dequeue() is None

@pytest.mark.asyncio
async def test_cancel_pending_job(queue):
    job = await queue.enqueue("a", {})

    assert await queue.cancel(job.id) is True

    cancelled = await queue.get(job.id)
    assert cancelled.status == JobStatus.FAILED
    assert cancelled.error == "Job cancelled"
    assert cancelled.completed_at is not None

@pytest.mark.asyncio
async def test_cancel_terminal_job_is_noop(queue):
    await queue.enqueue("a", {})
    job = await queue.dequeue()
    await queue.complete(job.id)

    assert await queue.cancel(job.id) is False
    assert (await queue.get(job.id)).status == JobStatus.COMPLETED

@pytest.mark.asyncio
async def test_fail_after_cancel_is_ignored(queue):
    await queue.enqueue("a", {})
    job = await queue.dequeue()
    await queue.cancel(job.id)

    current = await queue.fail(job.id, "late failure")

    assert current.status == JobStatus.FAILED
    assert current.error == "Job cancelled"

@pytest.mark.asyncio
async def test_retry_resets_failed_job(queue, clock):
    await queue.enqueue("a", {})
    job = await queue.dequeue()
    await queue.fail(job.id, "bad", terminal=True)
    clock.advance(60)

    assert await queue.retry(job.id) is True

    reset = await queue.get(job.id)
    assert reset.status == JobStatus.PENDING
    assert reset.attempts == 0
    assert reset.error is None
    assert reset.started_at is None
    assert reset.completed_at is None
    assert reset.scheduled_at == clock.now

@pytest.mark.asyncio
async def test_retry_non_failed_job_is_noop(queue):
    job = await queue.enqueue("a", {})
    assert await queue.retry(job.id) is False

@pytest.mark.asyncio
async def test_process_job_completes_on_success(queue):
    await queue.enqueue("a", {"n": 2})
    job = await queue.dequeue()

    async def handler(payload):
        return {"doubled": payload["n"] * 2}

    done = await queue.process_job(job, handler)
    assert done.status == JobStatus.COMPLETED
    assert done.result == {"doubled": 4}

@pytest.mark.asyncio
async def test_process_job_records_failure_and_reraises(queue):
    await queue.enqueue("a", {})
    job = await queue.dequeue()

    async def handler(payload):
        raise ValueError("bad input")

    with pytest.raises(ValueError, match="bad input"):
        await queue.process_job(job, handler)

    failed = await queue.get(job.id)
    assert failed.status == JobStatus.PENDING
    assert failed.error == "bad input"

@pytest.mark.asyncio
async def test_record_completed_inserts_finished_row(queue, clock):
    job = await queue.record_completed("audit_entry", {"k": "v"}, {"sent": True})

    assert job.status == JobStatus.COMPLETED
    assert job.attempts == job.max_attempts == 1
    assert job.completed_at == job.started_at == clock.now
    assert job.result == {"sent": True}

@pytest.mark.asyncio
async def test_list_jobs_filters(queue, clock):
    await queue.enqueue("a", {})
    clock.advance(1)
    b = await queue.enqueue("b", {})
    await queue.cancel(b.id)

    assert [j.type for j in await queue.list_jobs()] == ["b", "a"]
    assert [j.id for j in await queue.list_jobs(status=JobStatus.FAILED)] == [b.id]
    assert [j.type for j in await queue.list_jobs(job_type="a")] == ["a"]

@pytest.mark.asyncio
async def test_default_max_attempts_is_configurable(store, clock):
    queue = JobQueue(store, default_max_attempts=5, clock=clock)
    job = await queue.enqueue("a", {})
    assert job.max_attempts == 5
