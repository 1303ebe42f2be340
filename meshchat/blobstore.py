import logging
import os
import time
import uuid

from werkzeug.utils import secure_filename

logger = logging.getLogger(__name__)


class LocalBlobStore:
    """Stores uploaded images on disk; names are unique and safe to serve."""

    def __init__(self, directory):
        self.directory = directory
        os.makedirs(directory, exist_ok=True)

    def store(self, data: bytes, original_name: str = "") -> str:
        safe = secure_filename(original_name or "") or uuid.uuid4().hex[:8]
        name = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}-{safe}"
        with open(os.path.join(self.directory, name), "wb") as fh:
            fh.write(data)
        logger.info("stored blob %s (%d bytes)", name, len(data))
        return name
