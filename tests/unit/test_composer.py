from datetime import datetime, timedelta, timezone

import pytest

from app.domain.models import NotificationBuffer, NotificationEvent, NotificationSettings
from app.domain.states import NotificationRule, PointsDisplay
from app.notifications.composer import NotificationComposer, points_change
from tests.conftest import PARTICIPANT_UUID, PROGRAM_ID

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

def event(offset, before, after, rule=NotificationRule.POINTS_UPDATED):
    return NotificationEvent(
        program_id=PROGRAM_ID,
        participant_uuid=PARTICIPANT_UUID,
        rule=rule,
        data={"unused_points_before": before, "unused_points_after": after},
        timestamp=T0 + timedelta(seconds=offset),
    )

def buffer(events, rule=NotificationRule.POINTS_UPDATED, settings=None):
    return NotificationBuffer(
        participant_uuid=PARTICIPANT_UUID,
        rule=rule,
        program_id=PROGRAM_ID,
        merge_window_ends=T0 + timedelta(seconds=120),
        settings=settings or NotificationSettings(),
        events=events,
    )

def test_points_change_orders_by_timestamp():
    # Arrival order differs from event time
    events = [event(30, 110, 120), event(0, 100, 110), event(60, 120, 135)]

    change = points_change(events, PointsDisplay.UNUSED_POINTS)

    assert (change.before, change.after, change.delta) == (100, 135, 35)

def test_points_change_missing_values_count_as_zero():
    events = [NotificationEvent(PROGRAM_ID, PARTICIPANT_UUID, NotificationRule.POINTS_UPDATED, {}, T0)]
    assert points_change(events, PointsDisplay.POINTS).delta == 0

@pytest.mark.asyncio
async def test_compose_points_message(queue, directory):
    composer = NotificationComposer(queue, directory, points_template="{fname} @ {program_name}: {points_delta} -> {new_points}")

    payload = await composer.compose(buffer([event(0, 100, 110), event(45, 110, 130)]))

    assert payload["message"] == "Ada @ Coffee Club: +30 -> 130"
    assert payload["events_merged"] == 2
    assert payload["first_event_time"] == T0.isoformat()
    assert payload["last_event_time"] == (T0 + timedelta(seconds=45)).isoformat()

@pytest.mark.asyncio
async def test_compose_other_rules_carry_count_only(queue, directory):
    composer = NotificationComposer(queue, directory)

    payload = await composer.compose(
        buffer([event(0, 0, 0, NotificationRule.LOCATION_ENTER)], rule=NotificationRule.LOCATION_ENTER)
    )

    assert payload["events_merged"] == 1
    assert "message" not in payload

@pytest.mark.asyncio
async def test_send_records_completed_job(queue, directory):
    composer = NotificationComposer(queue, directory)

    job = await composer.send(buffer([event(0, 100, 105)]))

    stored = await queue.get(job.id)
    assert stored.type == "notification_sent"
    assert stored.result == {"sent": True}
    assert stored.payload["points_delta"] == 5
