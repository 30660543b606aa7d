# wheelz/auth.py
# Login and token issuance live elsewhere; this module only reads the
# signed session cookie that SessionMiddleware maintains.
from typing import Optional

from fastapi import Depends, Request, WebSocket
from sqlalchemy.orm import Session

from .database import get_db
from .errors import AuthorizationError
from .models import User


def get_current_user(request: Request, db: Session = Depends(get_db)) -> Optional[User]:
    data = request.session.get("user") or {}
    uid = data.get("id")
    return db.get(User, uid) if uid else None


def get_socket_user_id(websocket: WebSocket) -> Optional[int]:
    """Session user behind a WebSocket; resolved once, at connect time."""
    data = websocket.session.get("user") or {}
    uid = data.get("id")
    return int(uid) if uid else None


def require_user(user: Optional[User] = Depends(get_current_user)) -> User:
    if not user:
        raise AuthorizationError("not logged in", authenticated=False)
    return user


def require_admin(user: User = Depends(require_user)) -> User:
    if not user.is_admin:
        raise AuthorizationError("admin access required")
    return user
