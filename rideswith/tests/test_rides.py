from datetime import datetime, timedelta

from rideswith.models import Chapter, Organizer, Ride, Rsvp
from rideswith.utils import isoformat


def ride_payload(start=None, **overrides):
    start = start or (datetime.utcnow() + timedelta(days=1)).replace(hour=8, minute=0, second=0, microsecond=0)
    payload = {
        "title": "Tuesday Chaingang",
        "date": isoformat(start),
        "endTime": isoformat(start + timedelta(hours=2)),
        "locationName": "Richmond Park",
        "locationAddress": "Roehampton Gate",
        "latitude": 51.4424,
        "longitude": -0.2597,
        "distance": 60,
        "pace": "FAST",
    }
    payload.update(overrides)
    return payload


def create_series(client, weeks=4):
    start = (datetime.utcnow() + timedelta(days=1)).replace(hour=8, minute=0, second=0, microsecond=0)
    response = client.post(
        "/api/rides",
        json=ride_payload(
            start,
            recurrencePattern="WEEKLY",
            recurrenceEndDate=(start + timedelta(weeks=weeks)).date().isoformat(),
        ),
    )
    assert response.status_code == 201, response.text
    return response.json()


def test_create_ride_requires_auth(client):
    response = client.post("/api/rides", json=ride_payload())
    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


def test_create_ride_validates_required_fields(make_user, login):
    client = login(make_user())

    assert client.post("/api/rides", json=ride_payload(title="  ")).json()["error"] == "Title is required"
    assert client.post("/api/rides", json=ride_payload(date=None)).json()["error"] == "Date is required"
    assert client.post("/api/rides", json=ride_payload(locationName="")).json()["error"] == "Location is required"

    response = client.post("/api/rides", json=ride_payload(pace="WARP"))
    assert response.status_code == 400
    assert response.json()["error"] == "Valid pace is required"


def test_create_ride_sets_up_organizer_and_rsvp(db, make_user, login):
    user = make_user(name="Maria Ortiz")
    client = login(user)

    response = client.post("/api/rides", json=ride_payload())

    assert response.status_code == 201
    data = response.json()
    assert data["pace"] == "fast"
    assert data["attendeeCount"] == 1
    assert data["organizer"]["name"] == "Maria Ortiz"

    organizer = db.query(Organizer).one()
    assert organizer.ride_count == 1
    rsvp = db.query(Rsvp).one()
    assert rsvp.user_id == user.id
    assert rsvp.status == "GOING"


def test_chapter_rides_require_a_chapter_role(db, make_user, make_brand, make_chapter, login):
    owner = make_user()
    moderator = make_user()
    outsider = make_user()
    chapter = make_chapter(make_brand(owner), members=[(owner, "OWNER"), (moderator, "MODERATOR")])

    response = login(outsider).post("/api/rides", json=ride_payload(chapterId=chapter.id))
    assert response.status_code == 403

    response = login(moderator).post("/api/rides", json=ride_payload(chapterId=chapter.id))
    assert response.status_code == 201
    assert response.json()["chapterId"] == chapter.id

    db.expire_all()
    assert db.get(Chapter, chapter.id).ride_count == 1


def test_recurring_ride_creates_one_series(db, make_user, login):
    user = make_user()
    client = login(user)

    data = create_series(client, weeks=4)

    rides = db.query(Ride).order_by(Ride.date).all()
    assert len(rides) == 5
    assert data["seriesCount"] == 5
    assert len({r.recurrence_series_id for r in rides}) == 1
    assert [r.is_recurring_template for r in rides] == [True, False, False, False, False]
    assert all(r.recurrence_pattern == "WEEKLY" for r in rides)
    for earlier, later in zip(rides, rides[1:]):
        assert later.date - earlier.date == timedelta(days=7)
        assert later.end_time - later.date == timedelta(hours=2)

    # Only the first ride carries the creator's RSVP
    assert db.query(Rsvp).one().ride_id == rides[0].id
    assert db.query(Organizer).one().ride_count == 5


def test_recurring_ride_rejects_bad_input(make_user, login):
    client = login(make_user())

    response = client.post("/api/rides", json=ride_payload(recurrencePattern="DAILY", recurrenceEndDate="2030-01-01"))
    assert response.status_code == 400

    response = client.post("/api/rides", json=ride_payload(recurrencePattern="WEEKLY"))
    assert response.status_code == 400
    assert response.json()["error"] == "Recurrence end date is required"

    response = client.post("/api/rides", json=ride_payload(recurrencePattern="WEEKLY", recurrenceEndDate="2001-01-01"))
    assert response.status_code == 400


def test_delete_this_removes_one_ride(db, make_user, login):
    client = login(make_user())
    create_series(client)
    rides = db.query(Ride).order_by(Ride.date).all()

    response = client.delete(f"/api/rides/{rides[2].id}?scope=this")

    assert response.json() == {"success": True, "deletedCount": 1}
    assert db.query(Ride).count() == 4


def test_delete_following_keeps_earlier_rides(db, make_user, login):
    client = login(make_user())
    create_series(client)
    rides = db.query(Ride).order_by(Ride.date).all()
    kept = {rides[0].id, rides[1].id}

    response = client.delete(f"/api/rides/{rides[2].id}?scope=following")

    assert response.json()["deletedCount"] == 3
    assert {r.id for r in db.query(Ride).all()} == kept
    db.expire_all()
    assert db.query(Organizer).one().ride_count == 2


def test_delete_all_removes_series_and_rsvps(db, make_user, login):
    client = login(make_user())
    create_series(client)
    rides = db.query(Ride).order_by(Ride.date).all()

    response = client.delete(f"/api/rides/{rides[3].id}?scope=all")

    assert response.json()["deletedCount"] == 5
    assert db.query(Ride).count() == 0
    assert db.query(Rsvp).count() == 0


def test_only_organizer_admins_can_delete(make_user, make_organizer, make_ride, login):
    owner = make_user()
    ride = make_ride(make_organizer(owner))

    response = login(make_user()).delete(f"/api/rides/{ride.id}")

    assert response.status_code == 403


def test_series_count(db, make_user, login):
    client = login(make_user())
    data = create_series(client)
    rides = db.query(Ride).order_by(Ride.date).all()

    response = client.get(
        f"/api/rides/series/{data['recurrenceSeriesId']}/count",
        params={"date": isoformat(rides[2].date)},
    )

    assert response.json() == {"total": 5, "following": 3}


def test_latest_shows_only_the_series_template(db, make_user, make_organizer, make_ride, login):
    user = make_user()
    client = login(user)
    create_series(client)
    make_ride(make_organizer(make_user()), title="One-off")

    response = client.get("/api/rides/latest")

    titles = [r["title"] for r in response.json()]
    assert sorted(titles) == ["One-off", "Tuesday Chaingang"]


def test_latest_limit(make_user, make_organizer, make_ride, client):
    organizer = make_organizer(make_user())
    for n in range(8):
        make_ride(organizer, title=f"Ride {n}")

    assert len(client.get("/api/rides/latest").json()) == 6
    assert len(client.get("/api/rides/latest", params={"limit": 8}).json()) == 8
    assert client.get("/api/rides/latest", params={"limit": 51}).status_code == 400


def test_list_filters_by_pace_and_radius(make_user, make_organizer, make_ride, client):
    organizer = make_organizer(make_user())
    make_ride(organizer, title="London Social", pace="CASUAL")
    make_ride(organizer, title="London Race", pace="RACE")
    make_ride(organizer, title="Paris Social", pace="CASUAL", latitude=48.8566, longitude=2.3522)
    make_ride(organizer, title="Old Ride", days_ahead=-3)

    everything = client.get("/api/rides").json()
    assert {r["title"] for r in everything} == {"London Social", "London Race", "Paris Social"}

    casual = client.get("/api/rides", params={"pace": "casual"}).json()
    assert {r["title"] for r in casual} == {"London Social", "Paris Social"}

    nearby = client.get("/api/rides", params={"lat": 51.5, "lng": -0.12, "radius": 25}).json()
    assert {r["title"] for r in nearby} == {"London Social", "London Race"}


def test_past_rides(make_user, make_organizer, make_ride, client):
    organizer = make_organizer(make_user())
    make_ride(organizer, title="Last week", days_ahead=-7)
    make_ride(organizer, title="Yesterday", days_ahead=-1)
    make_ride(organizer, title="Tomorrow", days_ahead=1)

    titles = [r["title"] for r in client.get("/api/rides/past").json()]

    assert titles == ["Yesterday", "Last week"]


def test_update_ride_and_go_live(make_user, make_organizer, make_ride, login):
    owner = make_user()
    ride = make_ride(make_organizer(owner))
    client = login(owner)

    payload = ride_payload(title="Renamed Ride", isLive=True, liveLocationUrl="https://maps.example.com/live")
    response = client.put(f"/api/rides/{ride.id}", json=payload)

    assert response.status_code == 200
    data = response.json()
    assert data["title"] == "Renamed Ride"
    assert data["isLive"] is True
    assert data["liveStartedAt"] is not None


def test_get_missing_ride(client):
    response = client.get("/api/rides/does-not-exist")
    assert response.status_code == 404
    assert response.json() == {"error": "Ride not found"}
