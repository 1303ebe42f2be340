import datetime
import itertools
import logging
import time
from dataclasses import dataclass, field, asdict
from typing import Callable, Dict, List, Optional

from . import envelopes as ev
from .envelopes import Outbound, deliver_all
from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)

DEFAULT_GROUP_NAME = "未命名群組"
IMAGE_PLACEHOLDER = "[圖片]"
MESSAGE_TYPES = ("text", "image")


def now_ms(clock=time.time):
    return int(clock() * 1000)


def display_time(clock=time.time):
    return datetime.datetime.fromtimestamp(clock()).strftime("%Y/%m/%d %H:%M:%S")


@dataclass(frozen=True)
class Message:
    sender: str
    text: str
    time: str
    type: str = "text"

    def to_dict(self):
        return asdict(self)


@dataclass
class Room:
    id: str
    name: str
    is_group: bool
    participants: tuple
    messages: List[Message] = field(default_factory=list)
    last_read: Dict[str, int] = field(default_factory=dict)
    last_message: str = ""
    last_update_time: int = 0

    def has_member(self, username):
        return username in self.participants

    def unread_count(self, username):
        return len(self.messages) - self.last_read.get(username, 0)

    def mark_read(self, username):
        self.last_read[username] = len(self.messages)

    def is_pair(self, a, b):
        return not self.is_group and len(self.participants) == 2 and set(self.participants) == {a, b}


class RoomStore:
    """Owns every room: membership, message log and per-user read cursors."""

    def __init__(self, registry: ConnectionRegistry, clock: Callable[[], float] = time.time):
        self.registry = registry
        self.clock = clock
        # room id -> number of users in that room's call; wired by the hub
        self.call_size: Callable[[str], int] = lambda room_id: 0
        self._rooms: Dict[str, Room] = {}
        self._ids = itertools.count(1)

    def get(self, room_id) -> Optional[Room]:
        if not isinstance(room_id, str):
            return None
        return self._rooms.get(room_id)

    def member_room(self, username, room_id) -> Optional[Room]:
        """The room if it exists and ``username`` is a participant, else None."""
        room = self.get(room_id)
        if room is None or username is None or not room.has_member(username):
            logger.debug("%s is not a member of %r", username, room_id)
            return None
        return room

    def find_pair_room(self, a, b) -> Optional[Room]:
        for room in self._rooms.values():
            if room.is_pair(a, b):
                return room
        return None

    # ------------ operations ------------

    def create_room(self, is_group, name, participants) -> List[Outbound]:
        # keep order, drop repeats
        participants = tuple(dict.fromkeys(p for p in participants or () if isinstance(p, str) and p))
        if not participants:
            logger.debug("createRoom rejected: no participants")
            return []
        is_group = bool(is_group)
        if not is_group and len(participants) == 2:
            existing = self.find_pair_room(*participants)
            if existing is not None:
                logger.info("1:1 room %s already exists for %s", existing.id, participants)
                return []

        room_id = f"room_{next(self._ids)}"
        if not is_group and len(participants) == 2:
            room_name = f"{participants[0]} & {participants[1]}"
        else:
            room_name = name or DEFAULT_GROUP_NAME
        room = Room(
            id=room_id,
            name=room_name,
            is_group=is_group,
            participants=participants,
            last_read={u: 0 for u in participants},
            last_update_time=now_ms(self.clock),
        )
        self._rooms[room_id] = room
        logger.info("created %s (%s) participants=%s", room_id, room_name, list(participants))
        return self.refresh_many(participants)

    def join_room(self, conn_id, room_id) -> List[Outbound]:
        username = self.registry.username_of(conn_id)
        room = self.member_room(username, room_id)
        if room is None:
            return []
        room.mark_read(username)
        logger.info("%s opened %s", username, room_id)
        out = [Outbound(ev.ROOM_MESSAGES, [m.to_dict() for m in room.messages], to=conn_id)]
        return out + self.refresh(username)

    def send_message(self, conn_id, room_id, text, msg_type="text") -> List[Outbound]:
        username = self.registry.username_of(conn_id)
        room = self.member_room(username, room_id)
        if room is None or msg_type not in MESSAGE_TYPES or not isinstance(text, str):
            return []
        message = Message(sender=username, text=text, time=display_time(self.clock), type=msg_type)
        room.messages.append(message)
        room.last_message = text if msg_type == "text" else IMAGE_PLACEHOLDER
        room.last_update_time = now_ms(self.clock)
        room.mark_read(username)

        out = []
        for user in room.participants:
            out += deliver_all(ev.NEW_MESSAGE, message.to_dict(), self.registry.resolve(user))
        return out + self.refresh_many(room.participants)

    def mark_read(self, conn_id, room_id) -> List[Outbound]:
        username = self.registry.username_of(conn_id)
        room = self.member_room(username, room_id)
        if room is None:
            return []
        room.mark_read(username)
        return self.refresh(username)

    # ------------ room list ------------

    def list_visible_rooms(self, username) -> List[dict]:
        visible = [r for r in self._rooms.values() if r.has_member(username)]
        visible.sort(key=lambda r: r.last_update_time, reverse=True)
        summaries = []
        for room in visible:
            count = self.call_size(room.id)
            summaries.append({
                "id": room.id,
                "name": room.name,
                "isGroup": room.is_group,
                "lastMessage": room.last_message,
                "lastUpdateTime": room.last_update_time,
                "unreadCount": room.unread_count(username),
                "inCall": count > 0,
                "callCount": count,
            })
        return summaries

    def refresh(self, username) -> List[Outbound]:
        conns = self.registry.resolve(username)
        if not conns:
            return []
        return deliver_all(ev.ROOMS_UPDATED, self.list_visible_rooms(username), conns)

    def refresh_many(self, usernames) -> List[Outbound]:
        out = []
        for user in usernames:
            out += self.refresh(user)
        return out
