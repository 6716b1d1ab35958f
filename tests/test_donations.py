from datetime import datetime, timedelta, timezone

from bson import ObjectId


def add_campaign(db, **fields):
    doc = {"email": "owner@example.com", "donationStatus": "active", "createdAt": datetime.now(timezone.utc)}
    doc.update(fields)
    return db.donations.insert_one(doc).inserted_id


def test_infinite_listing(client, db):
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    for i in range(7):
        add_campaign(db, petName=f"pet{i}", createdAt=start + timedelta(days=i))

    first = client.get("/donations/infinite").json()
    assert len(first["donations"]) == 6
    assert first["donations"][0]["petName"] == "pet6"
    assert first["total"] == 7
    assert first["hasMore"] is True

    last = client.get("/donations/infinite", params={"page": 2}).json()
    assert [d["petName"] for d in last["donations"]] == ["pet0"]
    assert last["hasMore"] is False


def test_list_by_email_and_status(client, db):
    add_campaign(db, petName="a")
    add_campaign(db, petName="b", donationStatus="closed")
    add_campaign(db, petName="c", email="other@example.com")

    names = [d["petName"] for d in client.get("/donations", params={"email": "owner@example.com"}).json()]
    assert sorted(names) == ["a", "b"]

    names = [d["petName"] for d in client.get("/donations", params={"status": "closed"}).json()]
    assert names == ["b"]


def test_get_donation(client, db):
    cid = add_campaign(db, petName="Milo")
    r = client.get(f"/donations/{cid}")
    assert r.status_code == 200
    assert r.json()["petName"] == "Milo"

    r = client.get(f"/donations/{ObjectId()}")
    assert r.status_code == 404
    assert r.json() == {"message": "Donation not found"}


def test_create_donation(client, db, user_headers):
    r = client.post("/donations", json={"petName": "Milo", "maxDonationAmount": 500}, headers=user_headers)
    assert r.status_code == 200
    doc = db.donations.find_one({"_id": ObjectId(r.json()["insertedId"])})
    assert doc["donationStatus"] == "active"
    assert doc["email"] == "user@example.com"


def test_update_donation_strips_protected_fields(client, db, user_headers):
    cid = add_campaign(db, petName="Milo")
    r = client.put(
        f"/donations/{cid}",
        json={"petName": "Max", "donationStatus": "closed", "email": "x@example.com"},
        headers=user_headers,
    )
    assert r.status_code == 200
    doc = db.donations.find_one({"_id": cid})
    assert doc["petName"] == "Max"
    assert doc["donationStatus"] == "active"
    assert doc["email"] == "owner@example.com"


def test_set_donation_status(client, db, user_headers):
    cid = add_campaign(db)
    r = client.patch(f"/donations/{cid}", json={"donationStatus": "paused"}, headers=user_headers)
    assert r.json()["modifiedCount"] == 1
    assert db.donations.find_one({"_id": cid})["donationStatus"] == "paused"


def test_admin_deletes_campaign(client, db, admin_headers):
    cid = add_campaign(db)
    r = client.delete(f"/donations/{cid}", headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["deletedCount"] == 1


def test_create_donation_without_any_email_is_403(client, db, make_headers):
    r = client.post("/donations", json={"petName": "Milo"}, headers=make_headers(None))
    assert r.status_code == 403
    assert r.json() == {"message": "Forbidden: No email found in token"}
    assert db.donations.count_documents({}) == 0
