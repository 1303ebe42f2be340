import logging
from typing import Dict, List, Set

from . import envelopes as ev
from .envelopes import Outbound, deliver_all
from .registry import ConnectionRegistry
from .rooms import RoomStore

logger = logging.getLogger(__name__)

MEDIA_TYPES = ("video", "audio")


def is_initiator(local_user, remote_user):
    """Group calls: the lexicographically smaller username sends the offer."""
    return local_user < remote_user


class CallCoordinator:
    """Tracks who is currently in each room's call.

    A room with no call has no entry at all; an entry is dropped as soon as
    its member set empties.
    """

    def __init__(self, registry: ConnectionRegistry, rooms: RoomStore):
        self.registry = registry
        self.rooms = rooms
        self._members: Dict[str, Set[str]] = {}

    def members(self, room_id) -> Set[str]:
        return set(self._members.get(room_id, ()))

    def size(self, room_id) -> int:
        return len(self._members.get(room_id, ()))

    def active_rooms(self):
        return list(self._members)

    def _notify(self, username, event, payload):
        return deliver_all(event, payload, self.registry.resolve(username))

    def join_call(self, conn_id, room_id, media_type="video") -> List[Outbound]:
        username = self.registry.username_of(conn_id)
        room = self.rooms.member_room(username, room_id)
        if room is None:
            return []
        if media_type not in MEDIA_TYPES:
            media_type = "video"

        members = self._members.setdefault(room_id, set())
        members.add(username)
        logger.info("%s joined call in %s (%s)", username, room_id, media_type)

        out = []
        if not room.is_group and len(room.participants) == 2:
            if set(room.participants) <= members:
                logger.debug("1:1 call in %s already has both participants", room_id)
            else:
                others = [u for u in room.participants if u != username]
                out.append(Outbound(ev.CALL_MEMBERS, {
                    "roomId": room_id,
                    "otherUsers": others,
                    "mediaType": media_type,
                    "isGroup": False,
                }, to=conn_id))
        else:
            others = sorted(members - {username})
            out.append(Outbound(ev.CALL_MEMBERS, {
                "roomId": room_id,
                "otherUsers": others,
                "mediaType": media_type,
                "isGroup": True,
            }, to=conn_id))
            for user in others:
                out += self._notify(user, ev.NEW_PEER, {"username": username, "mediaType": media_type})
        return out + self.rooms.refresh_many(room.participants)

    def reject_call(self, conn_id, target_username) -> List[Outbound]:
        username = self.registry.username_of(conn_id)
        if username is None or not isinstance(target_username, str):
            return []
        logger.info("%s rejected a call from %s", username, target_username)
        return self._notify(target_username, ev.CALL_REJECTED, {"from": username})

    def leave_call(self, conn_id, room_id) -> List[Outbound]:
        username = self.registry.username_of(conn_id)
        if username is None or not isinstance(room_id, str) or room_id not in self._members:
            return []
        if username not in self._members[room_id]:
            logger.debug("%s left a call in %s it never joined", username, room_id)
            return []
        return self._remove(username, room_id)

    def on_disconnect(self, username) -> List[Outbound]:
        out = []
        for room_id in [r for r, m in self._members.items() if username in m]:
            out += self._remove(username, room_id)
        return out

    def _remove(self, username, room_id):
        members = self._members[room_id]
        members.discard(username)
        logger.info("%s left call in %s", username, room_id)
        out = []
        for user in sorted(members):
            out += self._notify(user, ev.REMOVE_PEER, {"username": username})
        if not members:
            del self._members[room_id]
            logger.info("call in %s ended", room_id)
        room = self.rooms.get(room_id)
        if room is not None:
            out += self.rooms.refresh_many(room.participants)
        return out
