# wheelz/notifications.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Protocol, Sequence

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from . import email_service
from .auth import require_user
from .database import SessionLocal, get_db
from .errors import NotificationError, NotFoundError
from .models import Notification, User

logger = logging.getLogger(__name__)

router = APIRouter(tags=["notifications"])


@dataclass(frozen=True)
class Notice:
    """One message for one recipient."""

    user_id: int
    email: Optional[str]
    subject: str
    body: str
    kind: str = "booking"
    link_url: Optional[str] = None


class NotificationSink(Protocol):
    name: str

    def notify(self, notice: Notice) -> None:
        """Deliver or raise NotificationError."""


# ========= sinks =========
class EmailSink:
    name = "email"

    def __init__(self, send: Callable[..., bool] = email_service.send_email):
        self._send = send

    def notify(self, notice: Notice) -> None:
        if not notice.email:
            raise NotificationError(f"user#{notice.user_id}", notice.subject, "no email address")
        if not self._send(to=notice.email, subject=notice.subject, text_body=notice.body):
            raise NotificationError(notice.email, notice.subject, "SMTP delivery failed")


class InAppSink:
    name = "inapp"

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self._session_factory = session_factory

    def notify(self, notice: Notice) -> None:
        db = self._session_factory()
        try:
            push_notif(db, notice.user_id, notice.subject, notice.body, kind=notice.kind, link_url=notice.link_url)
        except Exception as e:
            db.rollback()
            raise NotificationError(f"user#{notice.user_id}", notice.subject, str(e)) from e
        finally:
            db.close()


class CompositeSink:
    """Every child gets every notice; one child failing doesn't stop the others."""

    name = "composite"

    def __init__(self, sinks: Sequence[NotificationSink]):
        self.sinks = list(sinks)

    def notify(self, notice: Notice) -> None:
        failed = []
        for sink in self.sinks:
            try:
                sink.notify(notice)
            except NotificationError as e:
                logger.warning("[%s] %s", sink.name, e)
                failed.append(sink.name)
        if failed and len(failed) == len(self.sinks):
            raise NotificationError(
                notice.email or f"user#{notice.user_id}", notice.subject, "all channels failed: " + ", ".join(failed)
            )


def deliver_all(sink: NotificationSink, notices: Iterable[Notice]) -> int:
    """Best-effort fan-out: each notice is tried on its own, failures are logged and absorbed."""
    delivered = 0
    for notice in notices:
        try:
            sink.notify(notice)
            delivered += 1
        except NotificationError as e:
            logger.warning("notification dropped: %s", e)
        except Exception:
            logger.exception("unexpected error notifying user #%s (%r)", notice.user_id, notice.subject)
    return delivered


def build_sink(channels: Optional[str] = None) -> NotificationSink:
    raw = channels if channels is not None else os.getenv("NOTIFY_CHANNELS", "email,inapp")
    names = [c.strip().lower() for c in raw.split(",") if c.strip()]
    sinks: List[NotificationSink] = []
    for n in names:
        if n == "email":
            sinks.append(EmailSink())
        elif n == "inapp":
            sinks.append(InAppSink())
        else:
            logger.warning("unknown notification channel %r ignored", n)
    if len(sinks) == 1:
        return sinks[0]
    return CompositeSink(sinks)


_sink: Optional[NotificationSink] = None


def get_notification_sink() -> NotificationSink:
    """Dependency returning the process-wide sink (overridable in tests)."""
    global _sink
    if _sink is None:
        _sink = build_sink()
    return _sink


# ========= helper: create a single in-app notification =========
def push_notif(
    db: Session,
    user_id: int,
    title: str,
    body: str = "",
    *,
    kind: str = "info",
    link_url: str | None = None,
) -> Optional[Notification]:
    if not user_id or not (title or "").strip():
        return None
    n = Notification(
        user_id=user_id,
        title=(title or "").strip()[:200],
        body=(body or "").strip()[:1000],
        kind=kind or "info",
        link_url=link_url or "",
        is_read=False,
        created_at=datetime.utcnow(),
    )
    db.add(n)
    db.commit()
    db.refresh(n)
    return n


# ========= API =========
@router.get("/api/notifs/unread_count")
def unread_count(db: Session = Depends(get_db), user: User = Depends(require_user)):
    cnt = db.query(Notification).filter(
        Notification.user_id == user.id, Notification.is_read == False  # noqa: E712
    ).count()
    return JSONResponse({"count": int(cnt)})


@router.get("/api/notifs/list")
def list_notifs(
    request: Request,
    limit: int = 20,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
):
    rows = (
        db.query(Notification)
        .filter(Notification.user_id == user.id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(max(1, min(limit, 50)))
        .all()
    )
    return JSONResponse({
        "items": [
            {
                "id": n.id,
                "title": n.title,
                "body": n.body or "",
                "kind": n.kind or "info",
                "link": n.link_url or "",
                "is_read": bool(n.is_read),
                "created_at": n.created_at.isoformat(),
            } for n in rows
        ]
    })


@router.post("/api/notifs/mark_all_read")
def mark_all_read(db: Session = Depends(get_db), user: User = Depends(require_user)):
    db.query(Notification).filter(
        Notification.user_id == user.id, Notification.is_read == False  # noqa: E712
    ).update({"is_read": True})
    db.commit()
    return JSONResponse({"ok": True})


@router.post("/api/notifs/{notif_id}/read")
def mark_read(notif_id: int, db: Session = Depends(get_db), user: User = Depends(require_user)):
    n = db.get(Notification, notif_id)
    if not n or n.user_id != user.id:
        raise NotFoundError(f"notification #{notif_id} not found")
    n.is_read = True
    db.commit()
    return JSONResponse({"ok": True})
