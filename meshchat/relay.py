import logging
from typing import List

from . import envelopes as ev
from .envelopes import Outbound, deliver_all
from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class SignalingRelay:
    """Forwards offer/answer/ICE payloads to every connection of a named user.

    Payloads are opaque. A target with no live connection drops the message.
    """

    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry

    def _forward(self, conn_id, target, event, payload) -> List[Outbound]:
        sender = self.registry.username_of(conn_id)
        if sender is None or not isinstance(target, str):
            return []
        conns = self.registry.resolve(target)
        if not conns:
            logger.debug("dropped %s from %s: %s is offline", event, sender, target)
            return []
        return deliver_all(event, dict(payload, **{"from": sender}), conns)

    def relay_offer(self, conn_id, target, offer, room_id=None, media_type=None):
        return self._forward(conn_id, target, ev.RECEIVE_OFFER, {
            "offer": offer,
            "roomId": room_id,
            "mediaType": media_type,
        })

    def relay_answer(self, conn_id, target, answer):
        return self._forward(conn_id, target, ev.RECEIVE_ANSWER, {"answer": answer})

    def relay_candidate(self, conn_id, target, candidate):
        return self._forward(conn_id, target, ev.RECEIVE_ICE_CANDIDATE, {"candidate": candidate})
