import asyncio
import json
import time
from datetime import datetime, timedelta

import httpx
import pytest

from rideswith.config import settings
from rideswith.models import Chapter, Ride, StravaConnection, StravaSyncedEvent
from rideswith.services import strava, strava_sync
from rideswith.services.strava_sync import hash_event_data, map_event_to_ride, sync_strava_events
from rideswith.utils import isoformat

CLUB_ID = "4242"


def strava_event(event_id=1, days_ahead=5, **overrides):
    event = {
        "id": event_id,
        "title": "Club Run",
        "description": "Regroup at the top of every climb",
        "address": "Herne Hill Velodrome",
        "start_latlng": [51.4503, -0.0927],
        "upcoming_occurrences": [isoformat(datetime.utcnow() + timedelta(days=days_ahead))],
        "skill_level": 2,
        "private": False,
    }
    event.update(overrides)
    return event


@pytest.fixture
def fake_strava(monkeypatch):
    """Serves club events and token refreshes from an in-memory Strava."""
    state = {"events": [], "requests": []}

    def handler(request: httpx.Request) -> httpx.Response:
        state["requests"].append(request)
        if request.url.path == "/oauth/token":
            return httpx.Response(200, json={
                "access_token": "fresh-access",
                "refresh_token": "fresh-refresh",
                "expires_at": int(time.time()) + 6 * 3600,
            })
        if request.url.path == f"/api/v3/clubs/{CLUB_ID}/group_events":
            return httpx.Response(200, json=state["events"])
        return httpx.Response(404, json={"message": "Record Not Found"})

    monkeypatch.setattr(strava, "_http_client", lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    monkeypatch.setattr(settings, "STRAVA_CLIENT_ID", "client-id")
    monkeypatch.setattr(settings, "STRAVA_CLIENT_SECRET", "client-secret")
    return state


@pytest.fixture
def connected_chapter(db, make_user, make_brand, make_chapter):
    owner = make_user(name="Club Captain")
    chapter = make_chapter(make_brand(owner), members=[(owner, "OWNER")])
    db.add(StravaConnection(
        chapter_id=chapter.id,
        user_id=owner.id,
        access_token="stored-access",
        refresh_token="stored-refresh",
        expires_at=datetime.utcnow() + timedelta(hours=2),
        strava_club_id=CLUB_ID,
    ))
    db.commit()
    return chapter


def run_sync(db, chapter):
    return asyncio.run(sync_strava_events(db, chapter.id))


def test_create_then_skip_then_update(db, fake_strava, connected_chapter):
    fake_strava["events"] = [strava_event()]

    result = run_sync(db, connected_chapter)
    assert (result.created, result.updated, result.skipped) == (1, 0, 0)
    assert result.success

    ride = db.query(Ride).one()
    assert ride.title == "Club Run"
    assert ride.chapter_id == connected_chapter.id
    assert ride.pace == "MODERATE"
    assert ride.strava_event_url == f"https://www.strava.com/clubs/{CLUB_ID}/group_events/1"
    db.expire_all()
    assert db.get(Chapter, connected_chapter.id).ride_count == 1

    result = run_sync(db, connected_chapter)
    assert (result.created, result.updated, result.skipped) == (0, 0, 1)

    fake_strava["events"] = [strava_event(title="Club Run (new route)")]
    result = run_sync(db, connected_chapter)
    assert (result.created, result.updated, result.skipped) == (0, 1, 0)

    db.expire_all()
    assert db.query(Ride).one().title == "Club Run (new route)"
    assert db.query(StravaSyncedEvent).one().strava_event_hash == hash_event_data(fake_strava["events"][0])


def test_private_and_past_events_are_skipped(db, fake_strava, connected_chapter):
    fake_strava["events"] = [
        strava_event(event_id=1, private=True),
        strava_event(event_id=2, days_ahead=-2, start_date_local=None),
    ]

    result = run_sync(db, connected_chapter)

    assert result.skipped == 2
    assert result.created == 0
    assert db.query(Ride).count() == 0


def test_locally_deleted_ride_is_recreated(db, fake_strava, connected_chapter):
    fake_strava["events"] = [strava_event()]
    run_sync(db, connected_chapter)
    db.query(Ride).delete()
    db.commit()

    result = run_sync(db, connected_chapter)

    assert result.created == 1
    assert db.query(Ride).count() == 1
    assert db.query(StravaSyncedEvent).count() == 1


def test_expired_tokens_are_refreshed(db, fake_strava, connected_chapter):
    connection = db.query(StravaConnection).one()
    connection.expires_at = datetime.utcnow() - timedelta(minutes=1)
    db.commit()
    fake_strava["events"] = [strava_event()]

    result = run_sync(db, connected_chapter)

    assert result.created == 1
    token_requests = [r for r in fake_strava["requests"] if r.url.path == "/oauth/token"]
    assert len(token_requests) == 1
    assert json.loads(token_requests[0].content)["grant_type"] == "refresh_token"

    events_request = fake_strava["requests"][-1]
    assert events_request.headers["Authorization"] == "Bearer fresh-access"

    db.expire_all()
    connection = db.query(StravaConnection).one()
    assert connection.access_token == "fresh-access"
    assert connection.refresh_token == "fresh-refresh"


def test_strava_errors_are_recorded(db, fake_strava, connected_chapter, monkeypatch):
    def failing(request):
        return httpx.Response(500, text="upstream down")

    monkeypatch.setattr(strava, "_http_client", lambda: httpx.AsyncClient(transport=httpx.MockTransport(failing)))

    result = run_sync(db, connected_chapter)

    assert not result.success
    db.expire_all()
    connection = db.query(StravaConnection).one()
    assert connection.last_sync_at is not None
    assert "500" in connection.last_sync_error


def test_concurrent_syncs_run_one_at_a_time(db, fake_strava, connected_chapter):
    fake_strava["events"] = [strava_event()]

    async def twice():
        return await asyncio.gather(
            sync_strava_events(db, connected_chapter.id),
            sync_strava_events(db, connected_chapter.id),
        )

    first, second = asyncio.run(twice())

    assert (first.created, second.created, second.skipped) == (1, 0, 1)
    assert db.query(Ride).count() == 1
    # Nothing left behind once both have finished
    assert connected_chapter.id not in strava_sync._sync_locks


def test_missing_connection(db, make_user, make_brand, make_chapter):
    chapter = make_chapter(make_brand(make_user()))

    result = run_sync(db, chapter)

    assert result.errors == ["No Strava connection found for this chapter"]


def test_map_event_uses_next_future_occurrence():
    now = datetime(2025, 6, 1, 12, 0)
    event = strava_event(
        upcoming_occurrences=["2025-05-25T08:00:00Z", "2025-06-08T08:00:00Z"],
        skill_level=4,
        address=None,
        start_latlng=None,
    )

    values = map_event_to_ride(event, "chapter-1", "organizer-1", CLUB_ID, now=now)

    assert values["date"] == datetime(2025, 6, 8, 8, 0)
    assert values["pace"] == "RACE"
    assert (values["pace_min"], values["pace_max"]) == (35, 45)
    assert values["location_name"] == "See Strava event for details"
    assert (values["latitude"], values["longitude"]) == (0, 0)


def test_map_event_without_future_date():
    now = datetime(2025, 6, 1, 12, 0)
    event = strava_event(upcoming_occurrences=["2025-05-25T08:00:00Z"], start_date_local="2025-05-25T08:00:00")

    assert map_event_to_ride(event, "chapter-1", "organizer-1", CLUB_ID, now=now) is None


def test_hash_ignores_unrelated_fields():
    event = strava_event()
    assert hash_event_data(event) == hash_event_data(dict(event, skill_level=1, private=True))
    assert hash_event_data(event) != hash_event_data(dict(event, title="Different"))
