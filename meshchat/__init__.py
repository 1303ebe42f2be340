"""Room chat with mesh WebRTC call signaling."""

__version__ = "0.1.0"
