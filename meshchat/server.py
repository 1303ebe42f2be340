import logging

from flask import Flask, request, jsonify, send_from_directory, url_for
from flask_socketio import SocketIO

from . import envelopes as ev
from .blobstore import LocalBlobStore
from .config import Config
from .hub import ChatHub

logger = logging.getLogger(__name__)


def deliver(socketio, outbound):
    for msg in outbound:
        if msg.to is None:
            socketio.emit(msg.event, msg.payload)
        else:
            socketio.emit(msg.event, msg.payload, to=msg.to)


def create_app(overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    hub = ChatHub()
    blobs = LocalBlobStore(app.config["UPLOAD_DIR"])
    socketio = SocketIO(
        app,
        cors_allowed_origins=app.config["CORS_ALLOWED_ORIGINS"],
        async_mode=app.config["ASYNC_MODE"],
    )
    app.extensions["meshchat"] = hub

    register_routes(app, hub, blobs)
    register_handlers(socketio, hub)
    return app, socketio


# ------------ HTTP routes ------------
def register_routes(app, hub, blobs):
    @app.get("/")
    def index():
        return "Chat server is running."

    @app.get("/users")
    def users():
        return jsonify(hub.list_users())

    @app.post("/upload")
    def upload():
        f = request.files.get("image")
        if f is None or not f.filename:
            return jsonify(error="No file uploaded"), 400
        name = blobs.store(f.read(), f.filename)
        return jsonify(url=url_for("uploaded_file", filename=name, _external=True))

    @app.get("/uploads/<path:filename>")
    def uploaded_file(filename):
        return send_from_directory(blobs.directory, filename)


# ------------ Socket.IO (rooms / calls / signaling) ------------
def register_handlers(socketio, hub):
    def dispatch(operation, *args):
        deliver(socketio, operation(request.sid, *args))

    @socketio.on("connect")
    def sock_connect(auth=None):
        # a connection is anonymous until it sends 'register'
        logger.debug("connection opened: %s", request.sid)

    @socketio.on("disconnect")
    def sock_disconnect(reason=None):
        dispatch(hub.disconnect)

    @socketio.on(ev.REGISTER)
    def register(username):
        dispatch(hub.register, username)

    @socketio.on(ev.CREATE_ROOM)
    def create_room(data):
        dispatch(hub.create_room, data)

    @socketio.on(ev.JOIN_ROOM)
    def join_room(room_id):
        dispatch(hub.join_room, room_id)

    @socketio.on(ev.SEND_MESSAGE)
    def send_message(data):
        dispatch(hub.send_message, data)

    @socketio.on(ev.SEND_IMAGE_MESSAGE)
    def send_image_message(data):
        dispatch(hub.send_image_message, data)

    @socketio.on(ev.READ_ROOM)
    def read_room(room_id):
        dispatch(hub.read_room, room_id)

    # ---- Calling flow (mesh WebRTC, scoped to a chat room) ----
    @socketio.on(ev.JOIN_CALL)
    def join_call(data):
        dispatch(hub.join_call, data)

    @socketio.on(ev.REJECT_CALL)
    def reject_call(target_user):
        dispatch(hub.reject_call, target_user)

    @socketio.on(ev.LEAVE_CALL)
    def leave_call(room_id):
        dispatch(hub.leave_call, room_id)

    # --- WebRTC signaling passthrough (peer -> named peer) ---
    @socketio.on(ev.SEND_OFFER)
    def send_offer(data):
        dispatch(hub.send_offer, data)

    @socketio.on(ev.SEND_ANSWER)
    def send_answer(data):
        dispatch(hub.send_answer, data)

    @socketio.on(ev.SEND_ICE_CANDIDATE)
    def send_candidate(data):
        dispatch(hub.send_candidate, data)

    @socketio.on_error_default
    def on_error(e):
        logger.exception("error handling %s from %s", request.event["message"], request.sid)


def main():
    app, socketio = create_app()
    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("listening on http://%s:%s", app.config["HOST"], app.config["PORT"])
    socketio.run(app, host=app.config["HOST"], port=app.config["PORT"])


if __name__ == "__main__":
    main()
