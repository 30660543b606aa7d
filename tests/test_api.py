def _request(client, people, start, end, amount=500):
    return client.post(
        "/api/bookings",
        json={
            "vehicleId": people.vehicle,
            "ownerId": people.owner,
            "bookingStart": start,
            "bookingEnd": end,
            "totalAmount": amount,
        },
    )


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["ok"] is True


def test_booking_round_trip(client, login_as, people, sink):
    login_as(people.renter)
    r = _request(client, people, "2026-07-01T00:00:00", "2026-07-05T00:00:00")
    assert r.status_code == 201
    body = r.json()
    assert body["success"] is True
    booking_id = body["bookingId"]
    assert sink.subjects_for(people.owner) == [f"Booking Request: Toyota Axio. Booking ID: {booking_id}"]

    login_as(people.owner)
    pending = client.get("/api/bookings/pending").json()
    assert [b["id"] for b in pending] == [booking_id]
    assert pending[0]["renter"]["name"] == "Amina Renter"

    r = client.post(f"/api/bookings/{booking_id}/approve")
    assert r.json()["status"] == "approved"
    again = client.post(f"/api/bookings/{booking_id}/approve")
    assert again.status_code == 409
    assert again.json()["error"] == "invalid_transition"

    dates = client.get(f"/api/bookings/unavailable-dates/{people.vehicle}").json()
    assert dates == {"unavailableDates": [{"start": "2026-07-01T00:00:00", "end": "2026-07-05T00:00:00"}]}

    login_as(people.other)
    clash = _request(client, people, "2026-07-03T00:00:00", "2026-07-04T00:00:00")
    assert clash.status_code == 409
    assert clash.json()["error"] == "conflict"


def test_renter_cannot_approve(client, login_as, people):
    login_as(people.renter)
    booking_id = _request(client, people, "2026-08-01T00:00:00", "2026-08-03T00:00:00").json()["bookingId"]
    r = client.post(f"/api/bookings/{booking_id}/approve")
    assert r.status_code == 403


def test_cancel_via_delete(client, login_as, people):
    login_as(people.renter)
    booking_id = _request(client, people, "2026-08-01T00:00:00", "2026-08-03T00:00:00").json()["bookingId"]

    r = client.delete(f"/api/booking/{booking_id}")
    assert r.json() == {"success": True, "message": "Booking cancelled successfully"}
    assert client.get(f"/api/bookings/unavailable-dates/{people.vehicle}").json() == {"unavailableDates": []}
    assert client.get("/api/user/bookings").json() == []
    assert client.get("/api/user/bookings?include_cancelled=true").json()[0]["status"] == "cancelled"

    assert client.delete("/api/booking/999999").status_code == 404


def test_booking_detail_is_private(client, login_as, people):
    login_as(people.renter)
    booking_id = _request(client, people, "2026-08-01T00:00:00", "2026-08-03T00:00:00").json()["bookingId"]
    assert client.get(f"/api/bookings/{booking_id}").json()["vehicle"]["brand"] == "Toyota"

    login_as(people.other)
    assert client.get(f"/api/bookings/{booking_id}").status_code == 403


def test_bad_booking_payloads(client, login_as, people):
    login_as(people.renter)
    assert _request(client, people, "2026-08-05T00:00:00", "2026-08-01T00:00:00").status_code == 400
    assert _request(client, people, "2026-08-01T00:00:00", "2026-08-03T00:00:00", amount=0).status_code == 400
    # missing fields never reach the lifecycle
    assert client.post("/api/bookings", json={"vehicleId": people.vehicle}).status_code == 422


def test_start_and_return(client, login_as, people):
    login_as(people.renter)
    booking_id = _request(client, people, "2026-08-01T00:00:00", "2026-08-03T00:00:00").json()["bookingId"]
    login_as(people.owner)
    client.post(f"/api/bookings/{booking_id}/approve")
    assert client.post(f"/api/bookings/{booking_id}/start").json()["status"] == "inUse"
    assert client.post(f"/api/bookings/{booking_id}/return").json()["status"] == "returned"
    assert client.post(f"/api/bookings/{booking_id}/reject").status_code == 409


def test_admin_listing(client, login_as, people):
    login_as(people.renter)
    _request(client, people, "2026-08-01T00:00:00", "2026-08-03T00:00:00")
    assert client.get("/api/admin/bookings").status_code == 403

    login_as(people.admin)
    r = client.get("/api/admin/bookings?status=pending")
    assert r.json()["count"] == 1
    assert client.get("/api/admin/bookings?status=lost").status_code == 400


def test_admin_allbookings_path(client, login_as, people):
    login_as(people.renter)
    _request(client, people, "2026-08-01T00:00:00", "2026-08-03T00:00:00")
    login_as(people.admin)
    assert client.get("/api/admin/allbookings").json()["count"] == 1


def test_schema_errors_use_the_error_envelope(client, login_as, people):
    login_as(people.renter)
    r = client.post("/api/bookings", json={"vehicleId": people.vehicle, "ownerId": people.owner})
    assert r.status_code == 422
    body = r.json()
    assert body["success"] is False
    assert body["error"] == "validation_error"
    assert "bookingStart" in body["detail"]


# ---------- chat ----------
def _connect(client, login_as, user_id):
    login_as(user_id)
    return client.websocket_connect("/ws")


def _join(ws, people, user_id):
    ws.send_json({"event": "join", "data": {"vehicleId": people.vehicle, "ownerId": people.owner, "userId": user_id}})
    return ws.receive_json()


def _say(ws, people, sender_id, text, username="Amina"):
    ws.send_json({
        "event": "message",
        "data": {
            "vehicleId": people.vehicle,
            "ownerId": people.owner,
            "userId": people.renter,
            "senderId": sender_id,
            "message": text,
            "username": username,
        },
    })


def test_socket_message_reaches_room_once(client, login_as, people):
    with _connect(client, login_as, people.owner) as owner_ws, _connect(client, login_as, people.renter) as renter_ws:
        assert _join(owner_ws, people, people.renter) == {
            "event": "joined", "data": {"room": f"{people.vehicle}-{people.owner}-{people.renter}"}
        }
        _join(owner_ws, people, people.renter)
        _join(renter_ws, people, people.renter)

        _say(renter_ws, people, people.renter, "hi, is it free?")
        got = owner_ws.receive_json()
        assert got["event"] == "message"
        assert got["data"]["message"] == "hi, is it free?"
        assert got["data"]["senderId"] == people.renter
        assert renter_ws.receive_json()["event"] == "message"

        # joined twice, delivered once: the next frame is the pong
        owner_ws.send_json({"event": "ping"})
        assert owner_ws.receive_json()["event"] == "pong"

    history = client.get(f"/api/chat/{people.vehicle}/{people.owner}/{people.renter}").json()
    assert [m["message"] for m in history] == ["hi, is it free?"]


def test_sender_comes_from_the_session(client, login_as, people):
    with _connect(client, login_as, people.renter) as renter_ws:
        _join(renter_ws, people, people.renter)
        _say(renter_ws, people, None, "no senderId needed")
        assert renter_ws.receive_json()["data"]["senderId"] == people.renter

    history = client.get(f"/api/chat/{people.vehicle}/{people.owner}/{people.renter}").json()
    assert [m["senderId"] for m in history] == [people.renter]


def test_socket_cannot_speak_for_someone_else(client, login_as, people):
    with _connect(client, login_as, people.owner) as owner_ws, _connect(client, login_as, people.renter) as renter_ws:
        _join(owner_ws, people, people.renter)
        _say(renter_ws, people, people.owner, "send deposit to my other account", username="Bashir Owner")
        err = renter_ws.receive_json()
        assert err["event"] == "error"
        assert err["data"]["error"] == "unauthorized"

        owner_ws.send_json({"event": "ping"})
        assert owner_ws.receive_json()["event"] == "pong"

    assert client.get(f"/api/chat/{people.vehicle}/{people.owner}/{people.renter}").json() == []


def test_anonymous_socket_cannot_post_or_join(client, login_as, people):
    with _connect(client, login_as, None) as ws:
        _say(ws, people, people.owner, "hello?")
        assert ws.receive_json()["data"]["error"] == "unauthorized"
        assert _join(ws, people, people.renter)["data"]["error"] == "unauthorized"

    assert client.get(f"/api/chat/{people.vehicle}/{people.owner}/{people.renter}").json() == []


def test_outsider_cannot_join_a_conversation(client, login_as, people):
    with _connect(client, login_as, people.other) as ws:
        assert _join(ws, people, people.renter)["data"]["error"] == "unauthorized"
        ws.send_json({"event": "joinOwner", "data": {"vehicleId": people.vehicle, "ownerId": people.owner}})
        assert ws.receive_json()["data"]["error"] == "unauthorized"


def test_socket_rejects_empty_message(client, login_as, people):
    with _connect(client, login_as, people.owner) as listener, _connect(client, login_as, people.renter) as sender:
        _join(listener, people, people.renter)
        _say(sender, people, people.renter, "   ")
        err = sender.receive_json()
        assert err["event"] == "error"
        assert err["data"]["error"] == "validation_error"

        listener.send_json({"event": "ping"})
        assert listener.receive_json()["event"] == "pong"

    assert client.get(f"/api/chat/{people.vehicle}/{people.owner}/{people.renter}").json() == []


def test_socket_reports_bad_frames(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_text("not json")
        assert ws.receive_json()["data"]["error"] == "validation_error"
        ws.send_json({"event": "dance"})
        assert ws.receive_json()["data"]["error"] == "unknown_event"


def test_owner_inbox(client, login_as, people):
    with _connect(client, login_as, people.owner) as inbox, _connect(client, login_as, people.renter) as renter_ws:
        inbox.send_json({"event": "joinOwner", "data": {"vehicleId": people.vehicle, "ownerId": people.owner}})
        assert inbox.receive_json()["data"]["room"] == f"{people.vehicle}-{people.owner}"

        _say(renter_ws, people, people.renter, "hello owner")
        assert inbox.receive_json() == {
            "event": "newUser", "data": {"userId": people.renter, "username": "Amina"}
        }

    chats = client.get(f"/api/ownerChats/{people.vehicle}/{people.owner}").json()
    assert chats == {"userIds": [people.renter], "userNames": ["Amina"]}
    assert client.get(f"/api/userChats/{people.renter}").json() == [
        {"vehicleId": people.vehicle, "ownerId": people.owner, "userId": people.renter}
    ]


def test_owner_reply_does_not_signal_inbox(client, login_as, people):
    with _connect(client, login_as, people.owner) as owner_ws, _connect(client, login_as, people.renter) as renter_ws:
        owner_ws.send_json({"event": "joinOwner", "data": {"vehicleId": people.vehicle, "ownerId": people.owner}})
        owner_ws.receive_json()

        _say(renter_ws, people, people.renter, "hello owner")
        assert owner_ws.receive_json()["data"] == {"userId": people.renter, "username": "Amina"}

        _say(owner_ws, people, people.owner, "hi Amina", username="Bashir")
        # only the inbox room is joined, so the next frame must be the pong
        owner_ws.send_json({"event": "ping"})
        assert owner_ws.receive_json()["event"] == "pong"

    chats = client.get(f"/api/ownerChats/{people.vehicle}/{people.owner}").json()
    assert chats["userNames"] == ["Amina"]
