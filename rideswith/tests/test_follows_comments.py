from rideswith.models import Follow, RideComment


def test_follow_is_idempotent(db, make_user, make_brand, login):
    user = make_user()
    brand = make_brand(make_user())
    client = login(user)

    first = client.post("/api/follows", json={"brandId": brand.id})
    second = client.post("/api/follows", json={"brandId": brand.id})

    assert first.status_code == 200
    assert first.json()["id"] == second.json()["id"]
    assert db.query(Follow).count() == 1

    follows = client.get("/api/follows").json()["follows"]
    assert follows[0]["brand"]["slug"] == brand.slug


def test_follow_requires_exactly_one_target(make_user, make_brand, make_chapter, login):
    owner = make_user()
    brand = make_brand(owner)
    chapter = make_chapter(brand)
    client = login(make_user())

    response = client.post("/api/follows", json={})
    assert response.json() == {"error": "brandId or chapterId is required"}

    response = client.post("/api/follows", json={"brandId": brand.id, "chapterId": chapter.id})
    assert response.json() == {"error": "Can only follow one entity at a time"}

    response = client.post("/api/follows", json={"chapterId": "missing"})
    assert response.status_code == 404


def test_unfollow_chapter(db, make_user, make_brand, make_chapter, login):
    user = make_user()
    chapter = make_chapter(make_brand(make_user()))
    client = login(user)
    client.post("/api/follows", json={"chapterId": chapter.id})

    response = client.delete("/api/follows", params={"chapterId": chapter.id})

    assert response.json() == {"success": True}
    assert db.query(Follow).count() == 0


def test_comments_newest_first(make_user, make_organizer, make_ride, login):
    ride = make_ride(make_organizer(make_user()))
    client = login(make_user(name="Ana"))

    client.post(f"/api/rides/{ride.id}/comments", json={"content": "First!"})
    client.post(f"/api/rides/{ride.id}/comments", json={"content": "See you there"})

    comments = client.get(f"/api/rides/{ride.id}/comments").json()
    assert [c["content"] for c in comments] == ["See you there", "First!"]
    assert comments[0]["user"]["name"] == "Ana"


def test_comment_length_limits(make_user, make_organizer, make_ride, login):
    ride = make_ride(make_organizer(make_user()))
    client = login(make_user())

    assert client.post(f"/api/rides/{ride.id}/comments", json={"content": "   "}).status_code == 400
    assert client.post(f"/api/rides/{ride.id}/comments", json={"content": "x" * 2001}).status_code == 400
    assert client.post(f"/api/rides/{ride.id}/comments", json={"content": "x" * 2000}).status_code == 201


def test_comment_delete_permissions(db, make_user, make_organizer, make_ride, login):
    organizer_owner = make_user()
    author = make_user()
    ride = make_ride(make_organizer(organizer_owner))
    comment_id = login(author).post(f"/api/rides/{ride.id}/comments", json={"content": "Flat tyre, running late"}).json()["id"]

    response = login(make_user()).delete(f"/api/rides/{ride.id}/comments", params={"commentId": comment_id})
    assert response.status_code == 403
    assert response.json() == {"error": "Forbidden"}

    response = login(organizer_owner).delete(f"/api/rides/{ride.id}/comments", params={"commentId": comment_id})
    assert response.status_code == 200
    assert db.query(RideComment).count() == 0
