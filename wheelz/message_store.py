# wheelz/message_store.py
"""Append-only chat log, partitioned by conversation key."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .addressing import ConversationKey
from .errors import AuthorizationError, NotFoundError, ValidationError
from .models import Conversation, Message, User, Vehicle

logger = logging.getLogger(__name__)

MAX_BODY_CHARS = 4000


def _get_or_create_conversation(db: Session, key: ConversationKey) -> Conversation:
    q = db.query(Conversation).filter(
        Conversation.vehicle_id == key.vehicle_id,
        Conversation.owner_id == key.owner_id,
        Conversation.user_id == key.user_id,
    )
    conv = q.first()
    if conv:
        return conv

    conv = Conversation(
        vehicle_id=key.vehicle_id,
        owner_id=key.owner_id,
        user_id=key.user_id,
        created_at=datetime.utcnow(),
    )
    db.add(conv)
    try:
        db.flush()
    except IntegrityError:
        # another writer created the row first; nothing else is pending yet
        db.rollback()
        conv = q.one()
    return conv


def append(
    db: Session,
    key: ConversationKey,
    sender_id: int,
    sender_display_name: str | None,
    body: str,
) -> Message:
    """Persist one message and bump the conversation index; committed on return."""
    text = (body or "").strip()
    if not text:
        raise ValidationError("message body must not be empty")
    if len(text) > MAX_BODY_CHARS:
        raise ValidationError(f"message body exceeds {MAX_BODY_CHARS} characters")

    vehicle = db.get(Vehicle, key.vehicle_id)
    if not vehicle or vehicle.owner_id != key.owner_id:
        raise NotFoundError(f"no vehicle #{key.vehicle_id} owned by user #{key.owner_id}")
    if not db.get(User, key.user_id):
        raise NotFoundError(f"user #{key.user_id} not found")
    if sender_id not in (key.owner_id, key.user_id):
        raise AuthorizationError(f"user #{sender_id} is not part of conversation {key.room}")

    conv = _get_or_create_conversation(db, key)

    # sent_at never goes backwards inside one conversation
    now = datetime.utcnow()
    if conv.last_message_at and conv.last_message_at > now:
        now = conv.last_message_at

    msg = Message(
        conversation_id=conv.id,
        vehicle_id=key.vehicle_id,
        owner_id=key.owner_id,
        user_id=key.user_id,
        sender_id=sender_id,
        username=(sender_display_name or "").strip() or None,
        body=text,
        sent_at=now,
    )
    db.add(msg)

    conv.last_message_at = now
    # the counterpart's name is what the owner inbox shows
    if sender_id == key.user_id and msg.username:
        conv.last_username = msg.username

    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(msg)
    logger.debug("message #%s appended to %s", msg.id, key.room)
    return msg


def list_by_conversation(db: Session, vehicle_id: int, owner_id: int, counterpart_user_id: int) -> List[Message]:
    # TODO: paginate with a (sent_at, id) cursor once threads get long
    return (
        db.query(Message)
        .filter(
            Message.vehicle_id == vehicle_id,
            Message.owner_id == owner_id,
            Message.user_id == counterpart_user_id,
        )
        .order_by(Message.sent_at.asc(), Message.id.asc())
        .all()
    )


def list_distinct_counterparts(db: Session, vehicle_id: int, owner_id: int) -> List[Tuple[int, str | None]]:
    """Users who opened a chat with this owner about this vehicle, most recent first."""
    rows = (
        db.query(Conversation.user_id, Conversation.last_username)
        .filter(Conversation.vehicle_id == vehicle_id, Conversation.owner_id == owner_id)
        .order_by(Conversation.last_message_at.desc())
        .all()
    )
    return [(uid, name) for uid, name in rows]


def list_conversations_for_user(db: Session, user_id: int) -> List[ConversationKey]:
    rows = (
        db.query(Conversation.vehicle_id, Conversation.owner_id, Conversation.user_id)
        .filter(Conversation.user_id == user_id)
        .order_by(Conversation.last_message_at.desc())
        .all()
    )
    return [ConversationKey(v, o, u) for v, o, u in rows]
