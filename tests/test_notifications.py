import pytest

from wheelz.errors import NotificationError
from wheelz.models import Notification
from wheelz.notifications import (
    CompositeSink, EmailSink, InAppSink, Notice, build_sink, deliver_all, push_notif,
)


def _notice(user_id=1, email="someone@example.com", subject="Booking approved"):
    return Notice(user_id=user_id, email=email, subject=subject, body="Dear someone")


class FakeSMTP:
    def __init__(self, ok=True):
        self.ok = ok
        self.calls = []

    def __call__(self, to, subject, text_body, **kw):
        self.calls.append((to, subject))
        return self.ok


def test_email_sink_sends_text_body():
    send = FakeSMTP()
    EmailSink(send=send).notify(_notice())
    assert send.calls == [("someone@example.com", "Booking approved")]


def test_email_sink_raises_on_failed_delivery():
    with pytest.raises(NotificationError):
        EmailSink(send=FakeSMTP(ok=False)).notify(_notice())


def test_email_sink_needs_an_address():
    send = FakeSMTP()
    with pytest.raises(NotificationError):
        EmailSink(send=send).notify(_notice(email=None))
    assert send.calls == []


def test_in_app_sink_writes_notification(db, people):
    InAppSink().notify(_notice(user_id=people.renter))
    rows = db.query(Notification).filter_by(user_id=people.renter).all()
    assert [n.title for n in rows] == ["Booking approved"]
    assert rows[0].is_read is False


def test_push_notif_ignores_blank_title(db, people):
    assert push_notif(db, people.renter, "   ") is None
    assert db.query(Notification).count() == 0


def test_composite_survives_one_channel(db, people):
    send = FakeSMTP(ok=False)
    CompositeSink([EmailSink(send=send), InAppSink()]).notify(_notice(user_id=people.renter))
    assert len(send.calls) == 1
    assert db.query(Notification).filter_by(user_id=people.renter).count() == 1


def test_composite_raises_when_every_channel_fails():
    sink = CompositeSink([EmailSink(send=FakeSMTP(ok=False)), EmailSink(send=FakeSMTP(ok=False))])
    with pytest.raises(NotificationError):
        sink.notify(_notice())


def test_deliver_all_isolates_recipients(sink):
    sink.fail_for = {2}
    delivered = deliver_all(sink, [_notice(user_id=1), _notice(user_id=2), _notice(user_id=3)])
    assert delivered == 2
    assert [n.user_id for n in sink.sent] == [1, 3]


def test_deliver_all_absorbs_unexpected_errors():
    class Exploding:
        name = "boom"

        def notify(self, notice):
            raise RuntimeError("nope")

    assert deliver_all(Exploding(), [_notice()]) == 0


def test_build_sink_from_channel_list():
    assert isinstance(build_sink("email"), EmailSink)
    assert isinstance(build_sink("inapp"), InAppSink)
    combo = build_sink("email, inapp, pigeon")
    assert isinstance(combo, CompositeSink)
    assert [s.name for s in combo.sinks] == ["email", "inapp"]


def test_notification_routes(client, login_as, db, people):
    push_notif(db, people.renter, "Booking approved", "see you")
    push_notif(db, people.renter, "Vehicle returned", "rate it")
    push_notif(db, people.owner, "Booking Request", "new one")
    login_as(people.renter)

    assert client.get("/api/notifs/unread_count").json() == {"count": 2}
    items = client.get("/api/notifs/list").json()["items"]
    assert {i["title"] for i in items} == {"Booking approved", "Vehicle returned"}

    assert client.post(f"/api/notifs/{items[0]['id']}/read").json() == {"ok": True}
    assert client.get("/api/notifs/unread_count").json() == {"count": 1}

    client.post("/api/notifs/mark_all_read")
    assert client.get("/api/notifs/unread_count").json() == {"count": 0}

    owners = db.query(Notification).filter_by(user_id=people.owner).one()
    r = client.post(f"/api/notifs/{owners.id}/read")
    assert r.status_code == 404


def test_notification_routes_need_login(client, login_as):
    login_as(None)
    r = client.get("/api/notifs/unread_count")
    assert r.status_code == 401
    assert r.json()["error"] == "unauthorized"
