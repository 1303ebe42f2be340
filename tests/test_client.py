import asyncio

import pytest

pytest.importorskip("aiortc")
pytest.importorskip("aiohttp")
pytest.importorskip("socketio")

from aiortc import RTCSessionDescription  # noqa: E402

from meshchat.client import AiortcLink, _as_dict  # noqa: E402


class RecordingPC:
    def __init__(self):
        self.candidates = []
        self.tracks = []

    async def addIceCandidate(self, candidate):
        self.candidates.append(candidate)

    def addTrack(self, track):
        self.tracks.append(track)


class FakeRelay:
    def subscribe(self, track):
        return ("proxy", track)


def make_link(relay=None):
    async def build():
        link = AiortcLink("stun:stun.l.google.com:19302", lambda state: None, relay)
        await link.pc.close()
        link.pc = RecordingPC()
        return link
    return asyncio.run(build())


def test_as_dict():
    desc = RTCSessionDescription(sdp="v=0\r\n", type="offer")
    assert _as_dict(desc) == {"type": "offer", "sdp": "v=0\r\n"}
    assert _as_dict(None) is None


def test_browser_candidate_is_parsed():
    link = make_link()
    asyncio.run(link.add_ice_candidate({
        "candidate": "candidate:1 1 udp 2130706431 192.168.1.5 54321 typ host",
        "sdpMid": "0",
        "sdpMLineIndex": 0,
    }))
    (ice,) = link.pc.candidates
    assert (ice.ip, ice.port, ice.type, ice.protocol) == ("192.168.1.5", 54321, "host", "udp")
    assert (ice.sdpMid, ice.sdpMLineIndex) == ("0", 0)


@pytest.mark.parametrize("marker", [None, {}, {"candidate": ""}])
def test_end_of_candidates_is_ignored(marker):
    link = make_link()
    asyncio.run(link.add_ice_candidate(marker))
    assert link.pc.candidates == []


def test_each_link_subscribes_to_shared_tracks():
    relay = FakeRelay()
    first, second = make_link(relay), make_link(relay)
    track = object()
    first.add_track(track)
    second.add_track(track)
    assert first.pc.tracks == [("proxy", track)]
    assert second.pc.tracks == [("proxy", track)]
