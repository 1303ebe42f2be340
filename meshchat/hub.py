"""Single entry point for every inbound envelope.

Each method applies one operation atomically under the hub lock and returns
the outbound envelopes it produced; delivery happens outside the lock.
"""
import logging
import threading
import time
from typing import List

from . import envelopes as ev
from .calls import CallCoordinator
from .envelopes import Outbound
from .registry import ConnectionRegistry
from .relay import SignalingRelay
from .rooms import RoomStore

logger = logging.getLogger(__name__)


def _get(data, key, default=None):
    return data.get(key, default) if isinstance(data, dict) else default


class ChatHub:
    def __init__(self, clock=time.time):
        self.lock = threading.Lock()
        self.registry = ConnectionRegistry()
        self.rooms = RoomStore(self.registry, clock=clock)
        self.calls = CallCoordinator(self.registry, self.rooms)
        self.relay = SignalingRelay(self.registry)
        self.rooms.call_size = self.calls.size

    def _users_list(self):
        return Outbound(ev.USERS_LIST, self.registry.list_users())

    def register(self, conn_id, username) -> List[Outbound]:
        if not isinstance(username, str) or not username:
            logger.debug("register rejected on %s: bad username %r", conn_id, username)
            return []
        with self.lock:
            previous = self.registry.register(conn_id, username)
            out = [self._users_list()]
            if previous is not None and previous != username:
                out += self.rooms.refresh(previous)
            return out + self.rooms.refresh(username)

    def disconnect(self, conn_id) -> List[Outbound]:
        with self.lock:
            username = self.registry.unregister(conn_id)
            if username is None:
                logger.info("unknown connection %s disconnected", conn_id)
                return []
            logger.info("%s disconnected (%s)", username, conn_id)
            out = [self._users_list()]
            out += self.calls.on_disconnect(username)
            return out + self.rooms.refresh(username)

    def create_room(self, conn_id, data) -> List[Outbound]:
        name = _get(data, "name") or _get(data, "roomName")
        participants = _get(data, "participants")
        if not isinstance(participants, (list, tuple)):
            return []
        with self.lock:
            return self.rooms.create_room(_get(data, "isGroup", False), name, participants)

    def join_room(self, conn_id, room_id) -> List[Outbound]:
        with self.lock:
            return self.rooms.join_room(conn_id, room_id)

    def send_message(self, conn_id, data) -> List[Outbound]:
        with self.lock:
            return self.rooms.send_message(conn_id, _get(data, "roomId"), _get(data, "text"), "text")

    def send_image_message(self, conn_id, data) -> List[Outbound]:
        with self.lock:
            return self.rooms.send_message(conn_id, _get(data, "roomId"), _get(data, "imageUrl"), "image")

    def read_room(self, conn_id, room_id) -> List[Outbound]:
        with self.lock:
            return self.rooms.mark_read(conn_id, room_id)

    def join_call(self, conn_id, data) -> List[Outbound]:
        # older clients send the bare room id
        if isinstance(data, str):
            data = {"roomId": data}
        media_type = _get(data, "mediaType") or _get(data, "type") or "video"
        with self.lock:
            return self.calls.join_call(conn_id, _get(data, "roomId"), media_type)

    def reject_call(self, conn_id, target) -> List[Outbound]:
        with self.lock:
            return self.calls.reject_call(conn_id, target)

    def leave_call(self, conn_id, room_id) -> List[Outbound]:
        with self.lock:
            return self.calls.leave_call(conn_id, room_id)

    def send_offer(self, conn_id, data) -> List[Outbound]:
        media_type = _get(data, "mediaType") or _get(data, "type")
        with self.lock:
            return self.relay.relay_offer(
                conn_id, _get(data, "targetUser"), _get(data, "offer"), _get(data, "roomId"), media_type
            )

    def send_answer(self, conn_id, data) -> List[Outbound]:
        with self.lock:
            return self.relay.relay_answer(conn_id, _get(data, "targetUser"), _get(data, "answer"))

    def send_candidate(self, conn_id, data) -> List[Outbound]:
        with self.lock:
            return self.relay.relay_candidate(conn_id, _get(data, "targetUser"), _get(data, "candidate"))

    def list_users(self):
        with self.lock:
            return self.registry.list_users()
