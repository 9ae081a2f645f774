from sqlmodel import select

from conftest import NYABIHU, PASSWORD, auth_headers
from models import Category, Listing, Log, Message, Role, User
from routers.auth import verify_password


def test_me_includes_location(client, donor):
    resp = client.get("/api/users/me", headers=auth_headers(donor))
    assert resp.status_code == 200
    body = resp.json()
    assert body["role"] == "DONOR"
    assert body["isVerified"] is True
    assert body["location"] == {"longitude": NYABIHU[0], "latitude": NYABIHU[1]}
    assert "password" not in body


def test_me_without_location(client, admin):
    assert client.get("/api/users/me", headers=auth_headers(admin)).json()["location"] is None


def test_update_profile(client, donor):
    resp = client.put(
        "/api/users/me",
        json={"fname": "Renamed", "address": "2 New Street"},
        headers=auth_headers(donor),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["fname"] == "Renamed"
    assert body["address"] == "2 New Street"
    assert body["lname"] == donor.lname


def test_update_profile_email_in_use(client, donor, acceptor):
    resp = client.put(
        "/api/users/me", json={"email": acceptor.email}, headers=auth_headers(donor)
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Email already in use"


def test_update_location(client, session, make_user):
    user = make_user(Role.ACCEPTOR)
    resp = client.put(
        "/api/users/me/location",
        json={"longitude": 30.06, "latitude": -1.94},
        headers=auth_headers(user),
    )
    assert resp.status_code == 200
    assert resp.json()["message"] == "Location updated"

    session.refresh(user)
    assert (user.longitude, user.latitude) == (30.06, -1.94)


def test_update_location_out_of_range(client, donor):
    resp = client.put(
        "/api/users/me/location",
        json={"longitude": 200, "latitude": 0},
        headers=auth_headers(donor),
    )
    assert resp.status_code == 400


def test_change_password_two_steps(client, session, donor, outbox):
    headers = auth_headers(donor)
    payload = {"currentPassword": PASSWORD, "newPassword": "brand-new-pass"}

    first = client.post("/api/users/me/change-password", json=payload, headers=headers)
    assert first.status_code == 200
    assert first.json() == {"message": "OTP sent to your email", "userId": donor.id}
    otp = outbox[-1]["otp"]

    session.refresh(donor)
    assert verify_password(PASSWORD, donor.password)

    second = client.post(
        "/api/users/me/change-password", json={**payload, "otpCode": otp}, headers=headers
    )
    assert second.status_code == 200
    assert second.json()["message"] == "Password changed successfully"

    login = client.post(
        "/api/auth/login", json={"email": donor.email, "password": "brand-new-pass"}
    )
    assert login.status_code == 200


def test_change_password_wrong_current_password(client, donor, outbox):
    resp = client.post(
        "/api/users/me/change-password",
        json={"currentPassword": "wrong", "newPassword": "brand-new-pass"},
        headers=auth_headers(donor),
    )
    assert resp.status_code == 400
    assert outbox == []


def test_change_password_bad_otp(client, donor, outbox):
    headers = auth_headers(donor)
    payload = {"currentPassword": PASSWORD, "newPassword": "brand-new-pass"}
    client.post("/api/users/me/change-password", json=payload, headers=headers)
    wrong = "000000" if outbox[-1]["otp"] != "000000" else "111111"

    resp = client.post(
        "/api/users/me/change-password", json={**payload, "otpCode": wrong}, headers=headers
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Invalid or expired OTP"


def test_change_password_too_short(client, donor):
    resp = client.post(
        "/api/users/me/change-password",
        json={"currentPassword": PASSWORD, "newPassword": "short"},
        headers=auth_headers(donor),
    )
    assert resp.status_code == 400


def test_list_users_admin_only(client, donor):
    assert client.get("/api/users", headers=auth_headers(donor)).status_code == 403


def test_list_users_search_and_pagination(client, session, admin, make_user):
    make_user(fname="Marie", lname="Uwase")
    make_user(fname="Jean", lname="Marie-Claude")
    make_user(fname="Paul", lname="Kagame", email="paul@marie.org")
    make_user(fname="Other", lname="Person")

    resp = client.get(
        "/api/users", params={"search": "marie", "limit": 2}, headers=auth_headers(admin)
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["meta"] == {"totalItems": 3, "currentPage": 1, "totalPages": 2, "limit": 2}
    assert [u["fname"] for u in body["data"]] == ["Marie", "Jean"]

    page2 = client.get(
        "/api/users",
        params={"search": "MARIE", "limit": 2, "page": 2},
        headers=auth_headers(admin),
    ).json()
    assert [u["fname"] for u in page2["data"]] == ["Paul"]

    actions = session.exec(select(Log.action).where(Log.user_id == admin.id)).all()
    assert actions.count("Users list viewed") == 2


def test_admin_deletes_user_and_their_content(client, session, admin, donor, acceptor):
    listing = Listing(user_id=donor.id, title="Chairs", category=Category.FURNITURE)
    session.add(listing)
    session.commit()
    session.add(Message(sender_id=donor.id, receiver_id=acceptor.id, content="hi"))
    session.add(
        Message(
            sender_id=acceptor.id,
            receiver_id=admin.id,
            listing_id=listing.id,
            content="about the chairs",
        )
    )
    session.add(Log(user_id=donor.id, action="Created listing: Chairs"))
    session.commit()
    donor_id = donor.id

    resp = client.delete(f"/api/users/{donor_id}", headers=auth_headers(admin))
    assert resp.status_code == 200
    assert resp.json()["message"] == "User deleted"

    session.expire_all()
    assert session.get(User, donor_id) is None
    assert session.exec(select(Listing)).all() == []
    remaining = session.exec(select(Message)).all()
    assert [(m.content, m.listing_id) for m in remaining] == [("about the chairs", None)]
    old_log = session.exec(select(Log).where(Log.action == "Created listing: Chairs")).one()
    assert old_log.user_id is None
    assert session.exec(select(Log).where(Log.action == f"User {donor_id} deleted")).one()


def test_admin_delete_edge_cases(client, admin, donor):
    headers = auth_headers(admin)
    assert client.delete("/api/users/9999", headers=headers).status_code == 404
    assert client.delete(f"/api/users/{admin.id}", headers=headers).status_code == 400
    assert client.delete(f"/api/users/{admin.id}", headers=auth_headers(donor)).status_code == 403


def test_change_password_with_non_digit_otp(client, donor, outbox):
    headers = auth_headers(donor)
    payload = {"currentPassword": PASSWORD, "newPassword": "brand-new-pass"}
    client.post("/api/users/me/change-password", json=payload, headers=headers)

    resp = client.post(
        "/api/users/me/change-password", json={**payload, "otpCode": "١٢٣٤٥٦"}, headers=headers
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Invalid or expired OTP"
