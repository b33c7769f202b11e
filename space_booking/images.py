from __future__ import annotations

from pathlib import Path
import base64
import binascii
import mimetypes
import re
from uuid import uuid4

from .errors import StorageError, ValidationError

IMAGE_DIR_NAME = "imagenes"
_DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<payload>.*)$", re.DOTALL)
_SIGNATURES = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
)
_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/gif": ".gif",
    "image/webp": ".webp",
}


def decode_image(encoded: str, field: str = "imagen") -> tuple[bytes, str]:
    """Decode raw base64 or a ``data:<mime>;base64,`` URI into ``(bytes, mime)``."""
    text = encoded.strip()
    declared_mime = None
    match = _DATA_URI_RE.match(text)
    if match:
        declared_mime = match.group("mime").lower()
        text = match.group("payload")

    try:
        content = base64.b64decode("".join(text.split()), validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError(field, "La imagen no es un base64 válido.") from None
    if not content:
        raise ValidationError(field, "La imagen está vacía.")

    return content, declared_mime or sniff_mime(content)


def sniff_mime(content: bytes) -> str:
    for signature, mime in _SIGNATURES:
        if content.startswith(signature):
            return mime
    if content[:4] == b"RIFF" and content[8:12] == b"WEBP":
        return "image/webp"
    return "application/octet-stream"


class ImageBlobStore:
    """Space images kept as files under ``<base_dir>/imagenes``."""

    def __init__(self, base_dir: str | Path = "data") -> None:
        self.root = Path(base_dir) / IMAGE_DIR_NAME
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, name: str) -> Path:
        path = self.root / name
        if path.parent != self.root:
            raise ValueError(f"invalid image name: {name!r}")
        return path

    def save_base64(self, encoded: str) -> str:
        content, mime = decode_image(encoded)
        return self.save_bytes(content, mime)

    def save_bytes(self, content: bytes, mime: str) -> str:
        extension = _EXTENSIONS.get(mime) or mimetypes.guess_extension(mime) or ".bin"
        name = f"{uuid4().hex}{extension}"
        try:
            self._path(name).write_bytes(content)
        except OSError as error:
            raise StorageError(f"Failed to store image: {name}") from error
        return name

    def exists(self, name: str) -> bool:
        return self._path(name).is_file()

    def read_bytes(self, name: str) -> bytes:
        try:
            return self._path(name).read_bytes()
        except OSError as error:
            raise StorageError(f"Failed to read image: {name}") from error

    def delete(self, name: str) -> bool:
        path = self._path(name)
        if not path.exists():
            return False
        try:
            path.unlink()
        except OSError as error:
            raise StorageError(f"Failed to delete image: {name}") from error
        return True

    def to_data_uri(self, name: str) -> str:
        mime = mimetypes.guess_type(name)[0] or "application/octet-stream"
        encoded = base64.b64encode(self.read_bytes(name)).decode("ascii")
        return f"data:{mime};base64,{encoded}"
