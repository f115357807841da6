from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

UNKNOWN_DISPLAY_NAME = "Unknown User"


class FriendRequestStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


@dataclass(frozen=True, slots=True)
class UserIdentity:
    user_id: str
    email: str
    display_name: str


@dataclass(frozen=True, slots=True)
class FriendEdge:
    owner_id: str
    friend_id: str
    email: str
    display_name: str
    established_at: datetime


@dataclass(frozen=True, slots=True)
class FriendRequest:
    from_id: str
    to_id: str
    from_email: str
    from_display_name: str
    status: FriendRequestStatus
    sent_at: datetime
