"""
Image storage for project pictures.

The tree operations only rely on exists/delete/store; LocalImageStorage
writes under the upload directory served at /uploads, while
InMemoryImageStorage keeps blobs in a dict for tests.
"""
import os
import uuid
from pathlib import Path
from typing import Dict, Optional, Protocol

from logger import get_logger

logger = get_logger(__name__)

URL_PREFIX = "/uploads/"


class ImageStorage(Protocol):
    def store(self, data: bytes, filename: str) -> str:
        ...

    def exists(self, path: str) -> bool:
        ...

    def delete(self, path: str) -> None:
        ...


def _stored_name(filename: str) -> str:
    # Sanitize filename to prevent path traversal
    ext = Path(filename or "").suffix.lower()
    return f"image-{uuid.uuid4().hex}{ext}"


class LocalImageStorage:
    def __init__(self, root: str):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Optional[Path]:
        name = Path(path).name
        if not name:
            return None
        return self.root / name

    def store(self, data: bytes, filename: str) -> str:
        name = _stored_name(filename)
        with open(self.root / name, "wb") as out_file:
            out_file.write(data)
        logger.info("Stored image %s (%d bytes)", name, len(data))
        return f"{URL_PREFIX}{name}"

    def exists(self, path: str) -> bool:
        target = self._resolve(path)
        return target is not None and target.is_file()

    def delete(self, path: str) -> None:
        target = self._resolve(path)
        if target is not None and target.is_file():
            os.unlink(target)
            logger.info("Removed image %s", target.name)


class InMemoryImageStorage:
    def __init__(self):
        self.blobs: Dict[str, bytes] = {}

    def store(self, data: bytes, filename: str) -> str:
        path = f"{URL_PREFIX}{_stored_name(filename)}"
        self.blobs[path] = data
        return path

    def exists(self, path: str) -> bool:
        return path in self.blobs

    def delete(self, path: str) -> None:
        self.blobs.pop(path, None)
