import time
from datetime import datetime, timedelta
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from rideswith.config import settings
from rideswith.models import StravaConnection
from rideswith.services import strava


@pytest.fixture
def strava_configured(monkeypatch):
    monkeypatch.setattr(settings, "STRAVA_CLIENT_ID", "client-id")
    monkeypatch.setattr(settings, "STRAVA_CLIENT_SECRET", "client-secret")


@pytest.fixture
def fake_strava_api(monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/oauth/token":
            return httpx.Response(200, json={
                "access_token": "new-access",
                "refresh_token": "new-refresh",
                "expires_at": int(time.time()) + 6 * 3600,
            })
        if request.url.path == "/api/v3/athlete/clubs":
            return httpx.Response(200, json=[{"id": 77, "name": "Dulwich Paragon", "member_count": 300, "admin": True}])
        if request.url.path == "/api/v3/clubs/77/group_events":
            return httpx.Response(200, json=[])
        return httpx.Response(404)

    monkeypatch.setattr(strava, "_http_client", lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler)))


@pytest.fixture
def chapter_with_owner(make_user, make_brand, make_chapter):
    owner = make_user()
    chapter = make_chapter(make_brand(owner), members=[(owner, "OWNER")])
    return chapter, owner


def connect(db, chapter, user, club_id=""):
    db.add(StravaConnection(
        chapter_id=chapter.id,
        user_id=user.id,
        access_token="access",
        refresh_token="refresh",
        expires_at=datetime.utcnow() + timedelta(hours=1),
        strava_club_id=club_id,
    ))
    db.commit()


def test_authorize_redirects_to_strava(chapter_with_owner, login, strava_configured):
    chapter, owner = chapter_with_owner

    response = login(owner).get("/api/strava/authorize", params={"chapterId": chapter.id}, follow_redirects=False)

    location = urlparse(response.headers["location"])
    assert location.netloc == "www.strava.com"
    state = parse_qs(location.query)["state"][0]
    assert strava.decode_state(state)["chapterId"] == chapter.id


def test_authorize_requires_chapter_admin(chapter_with_owner, make_user, login, strava_configured):
    chapter, _ = chapter_with_owner

    response = login(make_user()).get("/api/strava/authorize", params={"chapterId": chapter.id})

    assert response.status_code == 403


def test_authorize_rejects_existing_connection(db, chapter_with_owner, login, strava_configured):
    chapter, owner = chapter_with_owner
    connect(db, chapter, owner)

    response = login(owner).get("/api/strava/authorize", params={"chapterId": chapter.id})

    assert response.status_code == 400


def test_callback_stores_connection(db, chapter_with_owner, login, strava_configured, fake_strava_api):
    chapter, owner = chapter_with_owner
    state = strava.encode_state(chapter.id, owner.id)

    response = login(owner).get(
        "/api/strava/callback", params={"code": "auth-code", "state": state}, follow_redirects=False
    )

    assert response.headers["location"] == (
        f"{settings.FRONTEND_URL}/communities/{chapter.brand.slug}/{chapter.slug}/edit"
        "?stravaConnected=true&selectClub=true"
    )
    connection = db.query(StravaConnection).one()
    assert connection.access_token == "new-access"
    assert connection.strava_club_id == ""


@pytest.mark.parametrize("params, error", [
    ({"error": "access_denied"}, "access_denied"),
    ({"code": "abc"}, "missing_params"),
    ({"code": "abc", "state": "!!!"}, "invalid_state"),
])
def test_callback_errors_redirect(chapter_with_owner, login, params, error):
    _, owner = chapter_with_owner

    response = login(owner).get("/api/strava/callback", params=params, follow_redirects=False)

    assert response.headers["location"] == f"{settings.FRONTEND_URL}/strava/error?error={error}"


def test_callback_checks_user_and_age(chapter_with_owner, make_user, login):
    chapter, owner = chapter_with_owner

    other_state = strava.encode_state(chapter.id, "someone-else")
    response = login(owner).get("/api/strava/callback", params={"code": "c", "state": other_state}, follow_redirects=False)
    assert response.headers["location"].endswith("error=user_mismatch")

    old_state = strava.encode_state(chapter.id, owner.id, timestamp=time.time() - 3600)
    response = login(owner).get("/api/strava/callback", params={"code": "c", "state": old_state}, follow_redirects=False)
    assert response.headers["location"].endswith("error=state_expired")


def test_callback_requires_sign_in(client):
    response = client.get("/api/strava/callback", params={"code": "c", "state": "s"}, follow_redirects=False)

    assert response.headers["location"] == f"{settings.FRONTEND_URL}/auth/signin?error=Unauthorized"


def test_list_and_select_club(db, chapter_with_owner, login, strava_configured, fake_strava_api):
    chapter, owner = chapter_with_owner
    connect(db, chapter, owner)
    client = login(owner)

    clubs = client.get("/api/strava/clubs", params={"chapterId": chapter.id}).json()
    assert clubs["clubs"][0] == {
        "id": "77",
        "name": "Dulwich Paragon",
        "profileMedium": None,
        "coverPhoto": None,
        "city": None,
        "state": None,
        "country": None,
        "memberCount": 300,
        "isAdmin": True,
    }
    assert clubs["currentClubId"] is None

    response = client.post("/api/strava/clubs", json={"chapterId": chapter.id, "clubId": 77, "clubName": "Dulwich Paragon"})
    assert response.status_code == 200
    assert response.json()["syncResult"]["success"] is True

    status = client.get(f"/api/strava/sync/{chapter.id}").json()
    assert status["clubId"] == "77"
    assert status["clubName"] == "Dulwich Paragon"
    assert status["lastSyncAt"] is not None


def test_manual_sync_needs_a_club(db, chapter_with_owner, login):
    chapter, owner = chapter_with_owner
    client = login(owner)

    assert client.post(f"/api/strava/sync/{chapter.id}").status_code == 404
    assert client.get(f"/api/strava/sync/{chapter.id}").json() == {"connected": False}

    connect(db, chapter, owner)
    response = client.post(f"/api/strava/sync/{chapter.id}")
    assert response.status_code == 400
    assert response.json() == {"error": "No Strava club selected. Please select a club first."}


def test_toggle_auto_sync_and_disconnect(db, chapter_with_owner, login):
    chapter, owner = chapter_with_owner
    connect(db, chapter, owner, club_id="77")
    client = login(owner)

    response = client.put(f"/api/strava/sync/{chapter.id}", json={"autoSync": False})
    assert response.json() == {"success": True, "autoSync": False}

    response = client.delete("/api/strava/disconnect", params={"chapterId": chapter.id})
    assert response.json() == {"success": True}
    assert db.query(StravaConnection).count() == 0
