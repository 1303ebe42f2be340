import io

from tests.helpers import received


def test_register_broadcasts_user_list(connect):
    watcher = connect()
    alice = connect("alice")
    assert received(watcher, "usersList") == [["alice"]]
    assert received(alice, "usersList") == [["alice"]]
    assert received(alice, "roomsUpdated") == [[]]


def test_users_endpoint_lists_every_name_ever_registered(server, connect):
    app, _ = server
    alice = connect("alice")
    connect("bob")
    alice.disconnect()
    assert app.test_client().get("/users").get_json() == ["alice", "bob"]


def test_chat_scenario_over_socketio(connect):
    alice = connect("alice")
    bob = connect("bob")
    alice.get_received()
    bob.get_received()

    alice.emit("createRoom", {"isGroup": False, "name": "", "participants": ["alice", "bob"]})
    rooms = received(bob, "roomsUpdated")[-1]
    assert rooms[0]["id"] == "room_1" and rooms[0]["name"] == "alice & bob"
    alice.get_received()

    alice.emit("sendMessage", {"roomId": "room_1", "text": "hi"})
    bob_events = bob.get_received()
    new = [m["args"][0] for m in bob_events if m["name"] == "newMessage"]
    assert new[0]["sender"] == "alice" and new[0]["text"] == "hi" and new[0]["type"] == "text"
    bob_rooms = [m["args"][0] for m in bob_events if m["name"] == "roomsUpdated"][-1]
    assert bob_rooms[0]["unreadCount"] == 1
    assert received(alice, "roomsUpdated")[-1][0]["unreadCount"] == 0

    bob.emit("joinRoom", "room_1")
    bob_events = bob.get_received()
    history = [m["args"][0] for m in bob_events if m["name"] == "roomMessages"]
    assert [m["text"] for m in history[0]] == ["hi"]
    assert [m["args"][0] for m in bob_events if m["name"] == "roomsUpdated"][-1][0]["unreadCount"] == 0


def test_group_call_scenario_over_socketio(connect):
    alice = connect("alice")
    bob = connect("bob")
    carol = connect("carol")
    alice.emit("createRoom", {"isGroup": True, "name": "team", "participants": ["alice", "bob", "carol"]})
    for c in (alice, bob, carol):
        c.get_received()

    alice.emit("joinCall", {"roomId": "room_1", "mediaType": "video"})
    assert received(alice, "callMembers")[0]["otherUsers"] == []

    bob.emit("joinCall", {"roomId": "room_1", "mediaType": "video"})
    assert received(alice, "newPeer") == [{"username": "bob", "mediaType": "video"}]
    assert received(bob, "callMembers")[0]["otherUsers"] == ["alice"]
    carol_events = carol.get_received()
    assert not [m for m in carol_events if m["name"] == "newPeer"]
    assert [m["args"][0] for m in carol_events if m["name"] == "roomsUpdated"][-1][0]["callCount"] == 2

    alice.emit("sendOffer", {"targetUser": "bob", "roomId": "room_1", "offer": {"type": "offer", "sdp": "x"}, "mediaType": "video"})
    assert received(bob, "receiveOffer")[0]["from"] == "alice"

    bob.disconnect()
    assert received(alice, "removePeer") == [{"username": "bob"}]


def test_reject_call_over_socketio(connect):
    alice = connect("alice")
    bob = connect("bob")
    alice.get_received()
    bob.emit("rejectCall", "alice")
    assert received(alice, "callRejected") == [{"from": "bob"}]


def test_malformed_payloads_are_ignored(connect):
    alice = connect("alice")
    alice.get_received()
    alice.emit("createRoom", "garbage")
    alice.emit("sendMessage", None)
    alice.emit("joinCall", {"roomId": 7})
    alice.emit("sendOffer", ["x"])
    assert alice.get_received() == []
    assert alice.is_connected()


def test_upload_and_serve_image(server):
    app, _ = server
    http = app.test_client()
    resp = http.post(
        "/upload",
        data={"image": (io.BytesIO(b"\x89PNG fake"), "cat picture.png")},
        content_type="multipart/form-data",
    )
    assert resp.status_code == 200
    url = resp.get_json()["url"]
    assert url.startswith("http://localhost/uploads/") and url.endswith("cat_picture.png")

    served = http.get(url.replace("http://localhost", ""))
    assert served.status_code == 200
    assert served.data == b"\x89PNG fake"


def test_upload_without_file(server):
    app, _ = server
    resp = app.test_client().post("/upload", data={}, content_type="multipart/form-data")
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "No file uploaded"}


def test_index(server):
    app, _ = server
    assert app.test_client().get("/").data == b"Chat server is running."


def test_oversized_upload_is_refused(tmp_path):
    from meshchat.server import create_app

    app, _ = create_app({
        "ASYNC_MODE": "threading",
        "UPLOAD_DIR": str(tmp_path / "uploads"),
        "MAX_CONTENT_LENGTH": 64,
        "TESTING": True,
    })
    resp = app.test_client().post(
        "/upload",
        data={"image": (io.BytesIO(b"x" * 1024), "big.png")},
        content_type="multipart/form-data",
    )
    assert resp.status_code == 413
    assert list((tmp_path / "uploads").iterdir()) == []
