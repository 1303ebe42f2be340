"""Per-participant negotiation of mesh peer connections.

``CallSession`` runs on each participant's own side. It turns relayed
``callMembers`` / ``newPeer`` / offer / answer / ICE events into one
``PeerLink`` per remote user. The media engine is injected as a
``link_factory`` so the session itself never touches the network.

Link objects returned by the factory must provide ``add_track``,
``create_offer``, ``create_answer``, ``set_local_description``,
``set_remote_description``, ``add_ice_candidate``, ``close`` (all but the
first awaitable) and a ``local_description`` attribute.
"""
import enum
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from . import envelopes as ev
from .calls import is_initiator
from .errors import MediaCaptureError

logger = logging.getLogger(__name__)

INITIATOR = "initiator"
RESPONDER = "responder"


class NegotiationState(enum.Enum):
    NONE = "none"
    HAS_LOCAL_MEDIA = "has-local-media"
    LINK_CREATED = "link-created"
    OFFER_SENT = "offer-sent"
    AWAITING_LOCAL_ANSWER = "awaiting-local-answer"
    REMOTE_SET = "remote-set"
    CONNECTED = "connected"
    CLOSED = "closed"


@dataclass
class PeerLink:
    remote_user: str
    role: str
    connection: Any = None
    state: NegotiationState = NegotiationState.NONE
    remote_description_set: bool = False
    flushing: bool = False

    @property
    def closed(self):
        return self.state is NegotiationState.CLOSED


async def reject_all(remote_user, room_id, media_type):
    return False


class CallSession:
    def __init__(self, username, emit, link_factory, capture_media, decide=reject_all):
        self.username = username
        self.emit = emit
        self.link_factory = link_factory
        self.capture_media = capture_media
        self.decide = decide

        self.room_id: Optional[str] = None
        self.media_type = "video"
        self.in_call = False
        self.local_tracks: Optional[List[Any]] = None
        self.call_members = set()
        self.links: Dict[str, PeerLink] = {}
        self.pending_candidates: Dict[str, List[Any]] = {}

    @property
    def media_state(self):
        return NegotiationState.NONE if self.local_tracks is None else NegotiationState.HAS_LOCAL_MEDIA

    # ------------ joining / leaving ------------

    async def join_call(self, room_id, media_type="video"):
        """Capture local media if needed, then announce the join. Returns False if capture failed."""
        if self.in_call and self.room_id == room_id:
            return True
        if self.in_call:
            await self.leave_call()
        if self.local_tracks is None:
            try:
                self.local_tracks = list(await self.capture_media(media_type))
            except MediaCaptureError as e:
                logger.warning("media capture failed, not joining %s: %s", room_id, e)
                return False
        self.in_call = True
        self.room_id = room_id
        self.media_type = media_type
        await self.emit(ev.JOIN_CALL, {"roomId": room_id, "mediaType": media_type})
        return True

    async def leave_call(self):
        if not self.in_call:
            return
        room_id = self.room_id
        self.in_call = False
        self.room_id = None
        self.call_members.clear()
        for remote in list(self.links):
            await self.close_link(remote)
        self.pending_candidates.clear()
        for track in self.local_tracks or ():
            track.stop()
        self.local_tracks = None
        await self.emit(ev.LEAVE_CALL, room_id)

    # ------------ coordinator events ------------

    async def on_call_members(self, data):
        if not self.in_call or data.get("roomId", self.room_id) != self.room_id:
            return
        is_group = data.get("isGroup", True)
        for other in data.get("otherUsers") or ():
            self.call_members.add(other)
            # 1:1: whoever got callMembers is the caller and always offers
            if not is_group or is_initiator(self.username, other):
                await self.start_offer(other)

    async def on_new_peer(self, data):
        if not self.in_call:
            return
        other = data.get("username")
        self.call_members.add(other)
        if is_initiator(self.username, other):
            await self.start_offer(other)

    async def on_remove_peer(self, data):
        other = data.get("username")
        self.call_members.discard(other)
        await self.close_link(other)

    async def on_call_rejected(self, data):
        other = data.get("from")
        logger.info("%s rejected the call", other)
        self.call_members.discard(other)
        await self.close_link(other)
        if self.in_call and not self.links:
            await self.leave_call()

    # ------------ link lifecycle ------------

    def create_link(self, remote, role) -> Optional[PeerLink]:
        if remote in self.links:
            logger.warning("link to %s already exists", remote)
            return None
        link = PeerLink(remote, role, state=self.media_state)
        link.connection = self.link_factory(
            remote, lambda state: self.on_connection_state(remote, state)
        )
        for track in self.local_tracks or ():
            link.connection.add_track(track)
        link.state = NegotiationState.LINK_CREATED
        self.links[remote] = link
        return link

    async def close_link(self, remote):
        self.pending_candidates.pop(remote, None)
        link = self.links.pop(remote, None)
        if link is None:
            return
        link.state = NegotiationState.CLOSED
        await link.connection.close()
        logger.info("closed link to %s", remote)

    def on_connection_state(self, remote, state):
        link = self.links.get(remote)
        if link is None or link.closed:
            return
        if state == "connected":
            link.state = NegotiationState.CONNECTED
            logger.info("media connected with %s", remote)
        elif state in ("failed", "disconnected"):
            logger.warning("connection with %s is %s", remote, state)

    # ------------ negotiation ------------

    async def start_offer(self, remote):
        link = self.create_link(remote, INITIATOR)
        if link is None:
            return
        conn = link.connection
        await conn.set_local_description(await conn.create_offer())
        if link.closed:
            return
        link.state = NegotiationState.OFFER_SENT
        await self.emit(ev.SEND_OFFER, {
            "targetUser": remote,
            "roomId": self.room_id,
            "offer": conn.local_description,
            "mediaType": self.media_type,
        })

    async def on_receive_offer(self, data):
        remote = data.get("from")
        offer = data.get("offer")
        room_id = data.get("roomId", self.room_id)
        if not self.in_call or room_id != self.room_id:
            media_type = data.get("mediaType") or "video"
            if not await self.decide(remote, room_id, media_type):
                self.pending_candidates.pop(remote, None)
                await self.emit(ev.REJECT_CALL, remote)
                return
            # leaving another call clears every queue; keep this caller's
            early = self.pending_candidates.pop(remote, [])
            if not await self.join_call(room_id, media_type):
                await self.emit(ev.REJECT_CALL, remote)
                return
            if early:
                self.pending_candidates[remote] = early + self.pending_candidates.get(remote, [])
            self.call_members = {remote}

        link = self.links.get(remote)
        if link is None:
            link = self.create_link(remote, RESPONDER)
            if link is None:
                return
        link.state = NegotiationState.AWAITING_LOCAL_ANSWER
        await self.set_remote(link, offer)
        if link.closed:
            return
        conn = link.connection
        await conn.set_local_description(await conn.create_answer())
        if link.closed:
            return
        await self.emit(ev.SEND_ANSWER, {
            "targetUser": remote,
            "roomId": self.room_id,
            "answer": conn.local_description,
        })

    async def on_receive_answer(self, data):
        link = self.links.get(data.get("from"))
        if link is None or link.state is not NegotiationState.OFFER_SENT:
            logger.debug("ignoring answer from %s", data.get("from"))
            return
        await self.set_remote(link, data.get("answer"))

    async def on_receive_candidate(self, data):
        remote = data.get("from")
        candidate = data.get("candidate")
        link = self.links.get(remote)
        if link is None or not link.remote_description_set or link.flushing:
            self.pending_candidates.setdefault(remote, []).append(candidate)
            return
        await self.add_candidate(link, candidate)

    async def set_remote(self, link, description):
        await link.connection.set_remote_description(description)
        if link.closed:
            return
        link.remote_description_set = True
        link.state = NegotiationState.REMOTE_SET
        queue = self.pending_candidates.setdefault(link.remote_user, [])
        link.flushing = True
        try:
            while queue and not link.closed:
                await self.add_candidate(link, queue.pop(0))
        finally:
            link.flushing = False
            if self.pending_candidates.get(link.remote_user) is queue:
                del self.pending_candidates[link.remote_user]

    async def add_candidate(self, link, candidate):
        try:
            await link.connection.add_ice_candidate(candidate)
        except Exception:
            logger.exception("could not apply ICE candidate from %s", link.remote_user)
