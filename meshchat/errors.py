class MeshChatError(Exception):
    """Base class for meshchat errors."""


class MediaCaptureError(MeshChatError):
    """Local audio/video capture was denied or failed."""
