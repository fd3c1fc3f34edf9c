from bson import ObjectId

from database import TRANSPORT_ENTRIES, USERS
from tests.conftest import auth_header, create_entry

URL = "/api/users"


def test_admin_lists_users_without_passwords(client, alice, bob, admin):
    res = client.get(URL, params={"limit": 2}, headers=auth_header(admin["token"]))

    assert res.status_code == 200
    body = res.json()
    assert body["total"] == 3
    assert body["count"] == 2
    assert body["pages"] == 2
    assert all("password" not in u for u in body["data"])

    res = client.get(URL, params={"search": "alice"}, headers=auth_header(admin["token"]))
    assert [u["email"] for u in res.json()["data"]] == ["alice@acme-logistics.com"]

    res = client.get(URL, params={"role": "admin"}, headers=auth_header(admin["token"]))
    assert [u["id"] for u in res.json()["data"]] == [admin["id"]]


def test_listing_and_stats_are_admin_only(client, alice):
    headers = auth_header(alice["token"])

    res = client.get(URL, headers=headers)
    assert res.status_code == 403
    assert res.json()["error"] == "Admin only"
    assert client.get(f"{URL}/stats", headers=headers).status_code == 403
    assert client.get(f"{URL}/mobile/9000000001", headers=headers).status_code == 403


def test_user_stats(client, alice, admin):
    res = client.get(f"{URL}/stats", headers=auth_header(admin["token"]))

    assert res.json()["data"] == {
        "total": 2,
        "active": 2,
        "inactive": 0,
        "admins": 1,
        "regular": 1,
        "recentRegistrations": 2,
    }


def test_get_user_guard_outcomes(client, alice, bob, admin):
    path = f"{URL}/{alice['id']}"

    res = client.get(path, headers=auth_header(alice["token"]))
    assert res.status_code == 200
    assert res.json()["data"]["email"] == "alice@acme-logistics.com"
    assert "password" not in res.json()["data"]

    assert client.get(path, headers=auth_header(bob["token"])).status_code == 403
    assert client.get(path, headers=auth_header(admin["token"])).status_code == 200
    assert client.get(f"{URL}/{ObjectId()}", headers=auth_header(admin["token"])).status_code == 404
    assert client.get(f"{URL}/nope", headers=auth_header(admin["token"])).status_code == 400


def test_lookup_by_uniqueid_and_mobile(client, alice, admin):
    uniqueid = alice["uniqueid"]

    res = client.get(f"{URL}/uniqueid/{uniqueid.lower()}", headers=auth_header(alice["token"]))
    assert res.json()["data"]["id"] == alice["id"]

    res = client.get(f"{URL}/mobile/9000000001", headers=auth_header(admin["token"]))
    assert res.json()["data"]["uniqueid"] == uniqueid
    assert client.get(f"{URL}/mobile/9999999999", headers=auth_header(admin["token"])).status_code == 404


def test_regular_user_cannot_change_role_or_activation(client, alice):
    res = client.put(
        f"{URL}/{alice['id']}",
        json={"role": "admin", "isActive": False, "email": "Alice.New@Acme-Logistics.com"},
        headers=auth_header(alice["token"]),
    )

    assert res.status_code == 200
    data = res.json()["data"]
    assert data["role"] == "user"
    assert data["isActive"] is True
    assert data["email"] == "alice.new@acme-logistics.com"


def test_admin_can_change_role_and_deactivate(client, alice, admin):
    res = client.put(
        f"{URL}/{alice['id']}",
        json={"role": "admin", "isActive": False},
        headers=auth_header(admin["token"]),
    )

    assert res.status_code == 200
    assert res.json()["data"]["role"] == "admin"
    # a deactivated account's token stops working
    assert client.get("/api/auth/me", headers=auth_header(alice["token"])).status_code == 401


def test_update_profile_and_bank_merge(client, alice, bob):
    path = f"{URL}/{alice['id']}"
    headers = auth_header(alice["token"])

    res = client.put(f"{path}/profile", json={"companyName": "Rao Carriers", "gstNumber": "27abcde1234f1z5"}, headers=headers)
    assert res.status_code == 200
    profile = res.json()["data"]["profile"]
    assert profile["companyName"] == "Rao Carriers"
    assert profile["gstNumber"] == "27ABCDE1234F1Z5"
    assert profile["ownerName"] == "Alice Rao"

    res = client.put(f"{path}/bank", json={"bankName": "SBI", "ifscCode": "sbin0001234"}, headers=headers)
    assert res.json()["data"]["bank"]["ifscCode"] == "SBIN0001234"
    res = client.put(f"{path}/bank", json={"accountNumber": "123456789"}, headers=headers)
    assert res.json()["data"]["bank"]["bankName"] == "SBI"

    assert client.put(f"{path}/bank", json={"bankName": "X"}, headers=auth_header(bob["token"])).status_code == 403


def test_update_rejects_a_taken_email(client, alice, bob):
    res = client.put(f"{URL}/{alice['id']}", json={"email": "bob@acme-logistics.com"}, headers=auth_header(alice["token"]))

    assert res.status_code == 400
    assert res.json()["error"] == "Duplicate field value entered"


def test_admin_cannot_delete_own_account(client, admin, db):
    res = client.delete(f"{URL}/{admin['id']}", headers=auth_header(admin["token"]))

    assert res.status_code == 400
    assert res.json()["error"] == "Cannot delete your own account"
    assert db[USERS].count_documents({"_id": ObjectId(admin["id"])}) == 1


def test_admin_deletes_another_user(client, alice, bob, admin, db):
    create_entry(client, alice["token"])

    res = client.delete(f"{URL}/{alice['id']}", headers=auth_header(admin["token"]))

    assert res.status_code == 200
    assert res.json()["data"]["email"] == "alice@acme-logistics.com"
    assert db[USERS].count_documents({"_id": ObjectId(alice["id"])}) == 0
    # entries are left in place
    assert db[TRANSPORT_ENTRIES].count_documents({}) == 1
    assert client.delete(f"{URL}/{alice['id']}", headers=auth_header(admin["token"])).status_code == 404
    assert client.delete(f"{URL}/{admin['id']}", headers=auth_header(bob["token"])).status_code == 403
