"""Headless participant: Socket.IO transport + aiortc media engine.

Usage:
    client = CallClient("alice", decide=ask_user)
    await client.connect()
    await client.create_room(["alice", "bob"])
    await client.join_call("room_1", "audio")
    ...
    await client.close()
"""
import asyncio
import logging
import os

import aiohttp
import socketio
from aiortc import RTCConfiguration, RTCIceServer, RTCPeerConnection, RTCSessionDescription
from aiortc.contrib.media import MediaPlayer, MediaRelay
from aiortc.sdp import candidate_from_sdp

from . import envelopes as ev
from .config import ClientConfig
from .errors import MediaCaptureError
from .peer import CallSession, reject_all

logger = logging.getLogger(__name__)


def _as_dict(desc):
    if desc is None:
        return None
    return {"type": desc.type, "sdp": desc.sdp}


class AiortcLink:
    """Adapts an aiortc RTCPeerConnection to the link interface CallSession drives.

    aiortc gathers ICE candidates before setLocalDescription returns, so the
    local description already carries them; remote trickled candidates are
    accepted in the browser's JSON form.
    """

    def __init__(self, stun_url, on_state_change, relay=None):
        self.relay = relay
        self.pc = RTCPeerConnection(RTCConfiguration(iceServers=[RTCIceServer(urls=[stun_url])]))
        self.remote_tracks = []

        @self.pc.on("connectionstatechange")
        def on_state():
            on_state_change(self.pc.connectionState)

        @self.pc.on("track")
        def on_track(track):
            self.remote_tracks.append(track)

    def add_track(self, track):
        # every peer gets its own subscription; senders must not share one recv()
        self.pc.addTrack(self.relay.subscribe(track) if self.relay is not None else track)

    async def create_offer(self):
        return _as_dict(await self.pc.createOffer())

    async def create_answer(self):
        return _as_dict(await self.pc.createAnswer())

    async def set_local_description(self, desc):
        await self.pc.setLocalDescription(RTCSessionDescription(sdp=desc["sdp"], type=desc["type"]))

    async def set_remote_description(self, desc):
        await self.pc.setRemoteDescription(RTCSessionDescription(sdp=desc["sdp"], type=desc["type"]))

    @property
    def local_description(self):
        return _as_dict(self.pc.localDescription)

    async def add_ice_candidate(self, candidate):
        if not candidate or not candidate.get("candidate"):
            return  # end-of-candidates marker
        ice = candidate_from_sdp(candidate["candidate"].split(":", 1)[1])
        ice.sdpMid = candidate.get("sdpMid")
        ice.sdpMLineIndex = candidate.get("sdpMLineIndex")
        await self.pc.addIceCandidate(ice)

    async def close(self):
        await self.pc.close()


def media_capture(config: ClientConfig):
    async def capture(media_type):
        if not config.media_source:
            raise MediaCaptureError("no media source configured")
        try:
            player = MediaPlayer(config.media_source, format=config.media_format)
        except Exception as e:
            raise MediaCaptureError(str(e)) from e
        tracks = [player.audio]
        if media_type == "video":
            tracks.append(player.video)
        tracks = [t for t in tracks if t is not None]
        if not tracks:
            raise MediaCaptureError(f"{config.media_source} has no usable tracks")
        return tracks
    return capture


class CallClient:
    def __init__(self, username, config=None, decide=reject_all):
        self.username = username
        self.config = config or ClientConfig()
        self.sio = socketio.AsyncClient()
        # fans the captured tracks out to one subscriber per peer connection
        self.relay = MediaRelay()
        self.session = CallSession(
            username,
            emit=self.sio.emit,
            link_factory=lambda remote, on_state: AiortcLink(self.config.stun_url, on_state, self.relay),
            capture_media=media_capture(self.config),
            decide=decide,
        )
        self.users = []
        self.rooms = []
        self.messages = []
        # handlers run as separate tasks; keep signaling in arrival order
        self._signal_lock = asyncio.Lock()
        self._register_handlers()

    def _register_handlers(self):
        sio = self.sio

        @sio.event
        async def connect():
            await sio.emit(ev.REGISTER, self.username)

        @sio.on(ev.USERS_LIST)
        def users_list(users):
            self.users = users

        @sio.on(ev.ROOMS_UPDATED)
        def rooms_updated(rooms):
            self.rooms = rooms

        @sio.on(ev.ROOM_MESSAGES)
        def room_messages(messages):
            self.messages = list(messages)

        @sio.on(ev.NEW_MESSAGE)
        def new_message(message):
            self.messages.append(message)

        signaling = {
            ev.CALL_MEMBERS: self.session.on_call_members,
            ev.NEW_PEER: self.session.on_new_peer,
            ev.REMOVE_PEER: self.session.on_remove_peer,
            ev.CALL_REJECTED: self.session.on_call_rejected,
            ev.RECEIVE_OFFER: self.session.on_receive_offer,
            ev.RECEIVE_ANSWER: self.session.on_receive_answer,
            ev.RECEIVE_ICE_CANDIDATE: self.session.on_receive_candidate,
        }
        for event, handler in signaling.items():
            sio.on(event, self._serialized(handler))

    def _serialized(self, handler):
        async def run(data):
            async with self._signal_lock:
                await handler(data)
        return run

    async def connect(self):
        await self.sio.connect(self.config.server_url)

    async def close(self):
        async with self._signal_lock:
            await self.session.leave_call()
        await self.sio.disconnect()

    # ------------ rooms ------------

    async def create_room(self, participants, name="", is_group=False):
        participants = list(participants)
        if self.username not in participants:
            participants.append(self.username)
        await self.sio.emit(ev.CREATE_ROOM, {"isGroup": is_group, "name": name, "participants": participants})

    async def join_room(self, room_id):
        await self.sio.emit(ev.JOIN_ROOM, room_id)

    async def send_message(self, room_id, text):
        await self.sio.emit(ev.SEND_MESSAGE, {"roomId": room_id, "text": text})

    async def read_room(self, room_id):
        await self.sio.emit(ev.READ_ROOM, room_id)

    async def send_image(self, room_id, path):
        url = await self.upload_image(path)
        await self.sio.emit(ev.SEND_IMAGE_MESSAGE, {"roomId": room_id, "imageUrl": url})
        return url

    async def upload_image(self, path):
        form = aiohttp.FormData()
        with open(path, "rb") as fh:
            form.add_field("image", fh.read(), filename=os.path.basename(path))
        async with aiohttp.ClientSession() as http:
            async with http.post(self.config.server_url.rstrip("/") + "/upload", data=form) as resp:
                resp.raise_for_status()
                return (await resp.json())["url"]

    # ------------ calls ------------

    async def join_call(self, room_id, media_type="video"):
        async with self._signal_lock:
            return await self.session.join_call(room_id, media_type)

    async def leave_call(self):
        async with self._signal_lock:
            await self.session.leave_call()
