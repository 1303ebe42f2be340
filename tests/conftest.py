import pytest

from meshchat.hub import ChatHub
from meshchat.server import create_app
from tests.helpers import StepClock


@pytest.fixture
def hub():
    return ChatHub(clock=StepClock())


@pytest.fixture
def registered(hub):
    """Registers each name on connection ``c-<name>``."""
    def _register(*names):
        for name in names:
            hub.register(f"c-{name}", name)
    return _register


@pytest.fixture
def server(tmp_path):
    app, socketio = create_app({
        "ASYNC_MODE": "threading",
        "UPLOAD_DIR": str(tmp_path / "uploads"),
        "TESTING": True,
    })
    return app, socketio


@pytest.fixture
def connect(server):
    app, socketio = server
    clients = []

    def _connect(username=None):
        client = socketio.test_client(app)
        if username is not None:
            client.emit("register", username)
        clients.append(client)
        return client

    yield _connect
    for client in clients:
        if client.is_connected():
            client.disconnect()
