#!/usr/bin/env python3
"""
Sends a simulated points burst through a running API and checks that it
produces exactly one merged notification_sent record.

The participant must exist in the configured participant directory.
"""
import asyncio
import sys

import httpx

API_URL = "http://localhost:8000"

async def verify_points_burst(program_id: str, participant_uuid: str):
    async with httpx.AsyncClient(base_url=API_URL, timeout=10.0) as client:
        before = await client.get("/api/v1/jobs", params={"type": "notification_sent", "limit": 500})
        before.raise_for_status()
        seen = {job["id"] for job in before.json()}

        print("1. Simulating burst of 5 events (+5 each)...")
        resp = await client.post("/api/v1/notifications/simulate/points-burst", json={
            "program_id": program_id,
            "participant_uuid": participant_uuid,
            "total_events": 5,
            "delta_per_event": 5,
            "duration_sec": 90,
        })
        if resp.status_code != 200:
            print(f"FAILURE: Simulation rejected ({resp.status_code}): {resp.text}")
            return
        print(f"   Queued {resp.json()['events_queued']} events")

        print("2. Flushing buffers...")
        resp = await client.post("/api/v1/notifications/flush")
        resp.raise_for_status()
        print(f"   Flushed: {resp.json()['flushed']}")

        after = await client.get("/api/v1/jobs", params={"type": "notification_sent", "limit": 500})
        after.raise_for_status()
        new = [job for job in after.json() if job["id"] not in seen]

        print(f"3. Results: {len(new)} new notification(s).")
        if len(new) == 1 and new[0]["payload"]["events_merged"] == 5:
            print("SUCCESS: Burst merged into one notification.")
            print(f"   Message: {new[0]['payload'].get('message')}")
        elif len(new) == 0:
            print("FAILURE: Nothing recorded (throttled from an earlier run?).")
        else:
            print(f"FAILURE: Expected one notification merging 5 events, got {[j['payload'] for j in new]}")

if __name__ == "__main__":
    if len(sys.argv) != 3:
        print("usage: verify_points_burst.py <program_id> <participant_uuid>")
        sys.exit(1)
    asyncio.run(verify_points_burst(sys.argv[1], sys.argv[2]))
