import os

from dotenv import load_dotenv

load_dotenv()


def _env_int(name, default):
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


class Config:
    SECRET_KEY = os.getenv("MESHCHAT_SECRET_KEY", "dev-secret-change-me")
    CORS_ALLOWED_ORIGINS = os.getenv("MESHCHAT_CORS_ORIGINS", "*")
    ASYNC_MODE = os.getenv("MESHCHAT_ASYNC_MODE", "eventlet")
    UPLOAD_DIR = os.getenv("MESHCHAT_UPLOAD_DIR", os.path.join(os.getcwd(), "uploads"))
    MAX_CONTENT_LENGTH = _env_int("MESHCHAT_MAX_UPLOAD_BYTES", 10 * 1024 * 1024)
    HOST = os.getenv("MESHCHAT_HOST", "0.0.0.0")
    PORT = _env_int("MESHCHAT_PORT", 4000)
    LOG_LEVEL = os.getenv("MESHCHAT_LOG_LEVEL", "INFO")
    STUN_URL = os.getenv("MESHCHAT_STUN_URL", "stun:stun.l.google.com:19302")


class ClientConfig:
    """Options for the headless participant runtime."""

    def __init__(self, server_url=None, stun_url=None, media_source=None, media_format=None):
        self.server_url = server_url or os.getenv("MESHCHAT_SERVER_URL", "http://127.0.0.1:4000")
        self.stun_url = stun_url or Config.STUN_URL
        # e.g. "/dev/video0" with format "v4l2", or a media file path
        self.media_source = media_source or os.getenv("MESHCHAT_MEDIA_SOURCE")
        self.media_format = media_format or os.getenv("MESHCHAT_MEDIA_FORMAT")
