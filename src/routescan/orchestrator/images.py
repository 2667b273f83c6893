"""Turn image sources (files, data URLs, payloads) into ImagePayload objects."""

from __future__ import annotations

import base64
import binascii
import mimetypes
import os
import re
from dataclasses import dataclass
from typing import Any

from ..domain.models import ImagePayload
from ..logging import get_logger
from .errors import InvalidImageFormat

LOG = get_logger("images")

_DATA_URL = re.compile(r"^data:([^;,]+);base64,(.+)$", re.DOTALL)

_EXT_FALLBACK = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".jpe": "image/jpeg",
    ".jfif": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".heic": "image/heic",
    ".gif": "image/gif",
}


def guess_image_mime(path: str) -> str:
    mime, _ = mimetypes.guess_type(path)
    if not mime:
        mime = _EXT_FALLBACK.get(os.path.splitext(path)[1].lower())
    if not mime or not mime.startswith("image/"):
        raise InvalidImageFormat("Unsupported image type.", {"path": path, "mime_type": mime})
    return mime


def parse_data_url(name: str, data_url: str) -> ImagePayload:
    """Split a ``data:<mime>;base64,<data>`` URL into an ImagePayload."""
    m = _DATA_URL.match((data_url or "").strip())
    if not m:
        raise InvalidImageFormat("Invalid image format.", {"name": name})
    mime_type, b64 = m.group(1).strip(), m.group(2)
    if not mime_type.startswith("image/"):
        raise InvalidImageFormat("Unsupported image type.", {"name": name, "mime_type": mime_type})
    try:
        data = base64.b64decode(b64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidImageFormat("Invalid image format.", {"name": name}) from exc
    if not data:
        raise InvalidImageFormat("Image payload is empty.", {"name": name})
    return ImagePayload(name=name, mime_type=mime_type, data=data)


@dataclass(frozen=True)
class ImageFile:
    path: str

    @property
    def name(self) -> str:
        return os.path.basename(self.path)

    def load(self) -> ImagePayload:
        mime = guess_image_mime(self.path)
        try:
            with open(self.path, "rb") as f:
                data = f.read()
        except OSError as exc:
            raise InvalidImageFormat("Image file could not be read.", {"path": self.path}) from exc
        if not data:
            raise InvalidImageFormat("Image payload is empty.", {"path": self.path})
        LOG.debug(f"Loaded {len(data)} bytes ({mime}) from {self.path}")
        return ImagePayload(name=self.name, mime_type=mime, data=data)


@dataclass(frozen=True)
class DataUrlImage:
    name: str
    data_url: str

    def load(self) -> ImagePayload:
        return parse_data_url(self.name, self.data_url)


def as_image_source(source: Any) -> Any:
    """Wrap filesystem paths as ImageFile; anything with ``load()`` passes through."""
    if isinstance(source, (str, os.PathLike)):
        return ImageFile(os.fspath(source))
    if not callable(getattr(source, "load", None)):
        raise TypeError(f"Unsupported image source: {source!r}")
    return source


def source_name(source: Any) -> str:
    if isinstance(source, (str, os.PathLike)):
        return os.path.basename(os.fspath(source))
    return str(getattr(source, "name", None) or repr(source))
