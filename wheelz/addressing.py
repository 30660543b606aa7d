# wheelz/addressing.py
"""Room naming for chat conversations.

A conversation is the ordered triple (vehicle, owner, counterpart user).
Both participants derive the same room string from it, and the same
triple is the partition key of the message log.
"""

from __future__ import annotations

from typing import NamedTuple, Union

from .errors import ValidationError

SEPARATOR = "-"

Ident = Union[int, str]


def _part(name: str, value: Ident) -> str:
    s = str(value).strip() if value is not None else ""
    if not s:
        raise ValidationError(f"{name} is required")
    return s


class ConversationKey(NamedTuple):
    vehicle_id: int
    owner_id: int
    user_id: int

    @property
    def room(self) -> str:
        return room_id(self.vehicle_id, self.owner_id, self.user_id)

    @property
    def owner_room(self) -> str:
        return owner_room_id(self.vehicle_id, self.owner_id)


def room_id(vehicle_id: Ident, owner_id: Ident, counterpart_user_id: Ident) -> str:
    return SEPARATOR.join((
        _part("vehicleId", vehicle_id),
        _part("ownerId", owner_id),
        _part("userId", counterpart_user_id),
    ))


def owner_room_id(vehicle_id: Ident, owner_id: Ident) -> str:
    """Room an owner's inbox listens on for new counterparts."""
    return SEPARATOR.join((_part("vehicleId", vehicle_id), _part("ownerId", owner_id)))


def conversation_key(vehicle_id: Ident, owner_id: Ident, counterpart_user_id: Ident) -> ConversationKey:
    """Parse client-supplied ids into a key; ids must be integers."""
    parts = []
    for name, value in (("vehicleId", vehicle_id), ("ownerId", owner_id), ("userId", counterpart_user_id)):
        raw = _part(name, value)
        try:
            parts.append(int(raw))
        except ValueError:
            raise ValidationError(f"{name} must be an integer id")
    return ConversationKey(*parts)
