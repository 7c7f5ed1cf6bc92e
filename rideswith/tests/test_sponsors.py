from rideswith.models import Sponsor
from rideswith.roles import PLATFORM_ADMIN_ROLE


def sponsors_url(brand, chapter, sponsor_id=None):
    url = f"/api/communities/{brand.slug}/{chapter.slug}/sponsors"
    return f"{url}/{sponsor_id}" if sponsor_id else url


def test_sponsors_disabled_by_default(make_user, make_brand, make_chapter, login):
    owner = make_user()
    brand = make_brand(owner)
    chapter = make_chapter(brand, members=[(owner, "OWNER")])
    client = login(owner)

    response = client.post(sponsors_url(brand, chapter), json={"name": "Café", "website": "https://cafe.example.com"})
    assert response.status_code == 403

    listing = client.get(sponsors_url(brand, chapter)).json()
    assert listing == {"sponsors": [], "sponsorLabel": "sponsors", "sponsorsEnabled": False}


def test_create_sponsors_with_display_order(db, make_user, make_brand, make_chapter, login):
    owner = make_user()
    brand = make_brand(owner, sponsors_enabled=True, sponsor_label="partners")
    chapter = make_chapter(brand, members=[(owner, "OWNER")])
    client = login(owner)

    first = client.post(sponsors_url(brand, chapter), json={"name": "Café", "website": "https://cafe.example.com"})
    second = client.post(
        sponsors_url(brand, chapter),
        json={"name": "Bike Shop", "website": "https://bikes.example.com", "displaySize": "LARGE"},
    )

    assert first.status_code == 201
    assert first.json()["displayOrder"] == 0
    assert second.json()["displayOrder"] == 1
    assert second.json()["displaySize"] == "LARGE"

    listing = client.get(sponsors_url(brand, chapter)).json()
    assert [s["name"] for s in listing["sponsors"]] == ["Café", "Bike Shop"]
    assert listing["sponsorLabel"] == "partners"


def test_sponsor_validation(make_user, make_brand, make_chapter, login):
    owner = make_user()
    brand = make_brand(owner, sponsors_enabled=True)
    chapter = make_chapter(brand, members=[(owner, "OWNER")])
    client = login(owner)

    assert client.post(sponsors_url(brand, chapter), json={"website": "https://x.example.com"}).status_code == 400
    assert client.post(sponsors_url(brand, chapter), json={"name": "No Site"}).json() == {
        "error": "Website URL is required"
    }
    response = client.post(
        sponsors_url(brand, chapter),
        json={"name": "Huge", "website": "https://x.example.com", "displaySize": "GIANT"},
    )
    assert response.status_code == 400


def test_moderators_cannot_manage_sponsors(make_user, make_brand, make_chapter, login):
    owner = make_user()
    moderator = make_user()
    brand = make_brand(owner, sponsors_enabled=True)
    chapter = make_chapter(brand, members=[(owner, "OWNER"), (moderator, "MODERATOR")])

    response = login(moderator).post(sponsors_url(brand, chapter), json={"name": "Café", "website": "https://c.example.com"})

    assert response.status_code == 403


def test_chapter_override_and_platform_admin(db, make_user, make_brand, make_chapter, login):
    owner = make_user()
    platform_admin = make_user(role=PLATFORM_ADMIN_ROLE)
    brand = make_brand(owner, sponsors_enabled=True)
    chapter = make_chapter(brand, members=[(owner, "OWNER")], sponsors_enabled=False)
    db.add(Sponsor(chapter_id=chapter.id, name="Hidden", website="https://hidden.example.com"))
    db.commit()

    assert login(owner).get(sponsors_url(brand, chapter)).json()["sponsors"] == []

    # Platform admins see and manage sponsors regardless of the toggle
    admin_view = login(platform_admin).get(sponsors_url(brand, chapter)).json()
    assert [s["name"] for s in admin_view["sponsors"]] == ["Hidden"]
    response = login(platform_admin).post(
        sponsors_url(brand, chapter), json={"name": "Admin Added", "website": "https://a.example.com"}
    )
    assert response.status_code == 201


def test_inactive_sponsors_listed_only_with_all(db, make_user, make_brand, make_chapter, client):
    owner = make_user()
    brand = make_brand(owner, sponsors_enabled=True)
    chapter = make_chapter(brand, members=[(owner, "OWNER")])
    db.add(Sponsor(chapter_id=chapter.id, name="Active", website="https://a.example.com", display_order=0))
    db.add(Sponsor(chapter_id=chapter.id, name="Paused", website="https://p.example.com", display_order=1, is_active=False))
    db.commit()

    assert [s["name"] for s in client.get(sponsors_url(brand, chapter)).json()["sponsors"]] == ["Active"]
    everything = client.get(sponsors_url(brand, chapter), params={"all": "true"}).json()["sponsors"]
    assert [s["name"] for s in everything] == ["Active", "Paused"]


def test_sponsor_from_another_chapter_is_not_found(db, make_user, make_brand, make_chapter, login):
    owner = make_user()
    brand = make_brand(owner, sponsors_enabled=True)
    london = make_chapter(brand, city="London", members=[(owner, "OWNER")])
    paris = make_chapter(brand, city="Paris", members=[(owner, "OWNER")])
    sponsor = Sponsor(chapter_id=paris.id, name="Boulangerie", website="https://pain.example.com")
    db.add(sponsor)
    db.commit()
    client = login(owner)

    assert client.get(sponsors_url(brand, london, sponsor.id)).status_code == 404
    assert client.get(sponsors_url(brand, paris, sponsor.id)).status_code == 200


def test_update_and_delete_sponsor(db, make_user, make_brand, make_chapter, login):
    owner = make_user()
    brand = make_brand(owner, sponsors_enabled=True)
    chapter = make_chapter(brand, members=[(owner, "OWNER")])
    sponsor = Sponsor(chapter_id=chapter.id, name="Café", website="https://cafe.example.com", description="Coffee")
    db.add(sponsor)
    db.commit()
    client = login(owner)

    response = client.put(sponsors_url(brand, chapter, sponsor.id), json={"isActive": False, "description": ""})
    assert response.json()["isActive"] is False
    assert response.json()["description"] is None
    assert response.json()["name"] == "Café"

    assert client.delete(sponsors_url(brand, chapter, sponsor.id)).json() == {"success": True}
    assert db.query(Sponsor).count() == 0


def test_community_sponsors(db, make_user, make_brand, make_chapter, login, client):
    owner = make_user()
    brand = make_brand(owner, sponsors_enabled=True, sponsor_label="partners")
    chapter = make_chapter(brand)
    db.add(Sponsor(chapter_id=chapter.id, name="Chapter Café", website="https://cafe.example.com"))
    db.commit()
    owner_client = login(owner)
    url = f"/api/communities/{brand.slug}/sponsors"

    first = owner_client.post(url, json={"name": "Frame Builder", "website": "https://frames.example.com"})
    assert first.status_code == 201
    assert first.json()["brandId"] == brand.id
    assert first.json()["chapterId"] is None
    second = owner_client.post(url, json={"name": "Tyre Co", "website": "https://tyres.example.com", "isActive": False})
    assert second.json()["displayOrder"] == 1

    listing = client.get(url).json()
    assert [s["name"] for s in listing["sponsors"]] == ["Frame Builder"]
    assert listing["sponsorLabel"] == "partners"
    assert len(client.get(url, params={"all": "true"}).json()["sponsors"]) == 2


def test_community_sponsor_permissions(make_user, make_brand, login, client):
    owner = make_user()
    enabled = make_brand(owner, name="Enabled", sponsors_enabled=True)
    disabled = make_brand(owner, name="Disabled")
    body = {"name": "Frame Builder", "website": "https://frames.example.com"}

    response = login(make_user()).post(f"/api/communities/{enabled.slug}/sponsors", json=body)
    assert response.status_code == 403
    assert response.json() == {"error": "You don't have permission to add sponsors"}

    assert login(owner).post(f"/api/communities/{disabled.slug}/sponsors", json=body).status_code == 403
    assert login(owner).post(f"/api/communities/{enabled.slug}/sponsors", json={"name": "No site"}).json() == {
        "error": "Website URL is required"
    }
    assert client.get("/api/communities/nowhere/sponsors").json() == {"error": "Community not found"}
