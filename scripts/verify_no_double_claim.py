#!/usr/bin/env python3
"""
Races 20 workers for one job against the configured database
(SQLALCHEMY_DATABASE_URI). Exactly one dequeue may win.
"""
import asyncio
import uuid

from app.db.session import AsyncSessionLocal, Base, engine
from app.db.store import SqlJobStore
from app.services.job_queue import JobQueue

WORKERS = 20

async def attempt_lease(queue: JobQueue, job_type: str, worker_id: str):
    job = await queue.dequeue([job_type])
    if job is None:
        return None
    return worker_id, job

async def verify_no_double_claim():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    store = SqlJobStore(AsyncSessionLocal)
    job_type = f"concurrency_test_{uuid.uuid4().hex[:8]}"

    # 1. Create 1 job
    print("1. Creating 1 job...")
    job = await JobQueue(store).enqueue(job_type, {"task": "concurrency_test"})
    print(f"   Job created: {job.id}")

    # 2. Spawn concurrent workers, each with its own queue over the same database
    print(f"2. Spawning {WORKERS} concurrent lease attempts...")
    results = await asyncio.gather(
        *(attempt_lease(JobQueue(store), job_type, f"worker-{i}") for i in range(WORKERS))
    )

    # 3. Analyze results
    leases = [r for r in results if r is not None]
    print(f"3. Results: {len(leases)} successful leases.")

    if len(leases) == 1:
        worker_id, leased = leases[0]
        if leased.id != job.id:
            print(f"FAILURE: Worker claimed WRONG job: {leased.id}")
        else:
            print("SUCCESS: Exactly one worker claimed the job.")
            print(f"   Winner: {worker_id} (attempts={leased.attempts})")
    elif len(leases) == 0:
        print("FAILURE: No one claimed the job (unexpected).")
    else:
        print(f"FAILURE: {len(leases)} workers claimed the job! Double claim detected.")
        for worker_id, _ in leases:
            print(f"   - {worker_id}")

    await engine.dispose()

if __name__ == "__main__":
    asyncio.run(verify_no_double_claim())
