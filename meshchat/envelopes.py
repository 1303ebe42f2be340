from dataclasses import dataclass
from typing import Any, Optional

# inbound
REGISTER = "register"
CREATE_ROOM = "createRoom"
JOIN_ROOM = "joinRoom"
SEND_MESSAGE = "sendMessage"
SEND_IMAGE_MESSAGE = "sendImageMessage"
READ_ROOM = "readRoom"
JOIN_CALL = "joinCall"
REJECT_CALL = "rejectCall"
LEAVE_CALL = "leaveCall"
SEND_OFFER = "sendOffer"
SEND_ANSWER = "sendAnswer"
SEND_ICE_CANDIDATE = "sendICECandidate"

# outbound
USERS_LIST = "usersList"
ROOMS_UPDATED = "roomsUpdated"
ROOM_MESSAGES = "roomMessages"
NEW_MESSAGE = "newMessage"
CALL_MEMBERS = "callMembers"
NEW_PEER = "newPeer"
CALL_REJECTED = "callRejected"
REMOVE_PEER = "removePeer"
RECEIVE_OFFER = "receiveOffer"
RECEIVE_ANSWER = "receiveAnswer"
RECEIVE_ICE_CANDIDATE = "receiveICECandidate"


@dataclass(frozen=True)
class Outbound:
    """One event to deliver. ``to`` is a connection id; None broadcasts to every connection."""
    event: str
    payload: Any
    to: Optional[str] = None


def deliver_all(event, payload, connections):
    return [Outbound(event, payload, to=c) for c in sorted(connections)]
