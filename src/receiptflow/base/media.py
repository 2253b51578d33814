from __future__ import annotations

import mimetypes
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from receiptflow.base.exceptions import ValidationRejection

MediaKind = Literal["image", "video"]

IMAGE_EXTS = {".jpeg", ".jpg", ".png", ".heic"}
VIDEO_EXTS = {".mp4"}

_IMAGE_MIME_PATTERN = re.compile(r"image/(jpeg|jpg|png|heic)", re.IGNORECASE)
_VIDEO_MIME = "video/mp4"


@dataclass
class MediaFile:
    """A submitted file held in memory.

    Attributes:
        name: Original file name, used as the record's source label
        data: Raw file contents
        content_type: MIME type reported by the client, may be empty
    """

    name: str
    data: bytes = field(repr=False)
    content_type: str = ""

    @classmethod
    def from_path(cls, path: str | Path) -> MediaFile:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Media file not found: {path}")
        content_type, _ = mimetypes.guess_type(path.name)
        return cls(name=path.name, data=path.read_bytes(), content_type=content_type or "")

    @property
    def suffix(self) -> str:
        return Path(self.name).suffix.lower()

    @property
    def kind(self) -> MediaKind | None:
        """Classify by MIME type or extension; None when the file is not accepted."""
        if self.content_type.lower() == _VIDEO_MIME or self.suffix in VIDEO_EXTS:
            return "video"
        if _IMAGE_MIME_PATTERN.fullmatch(self.content_type) or self.suffix in IMAGE_EXTS:
            return "image"
        return None

    @property
    def is_video(self) -> bool:
        return self.kind == "video"


def split_accepted(files: list[MediaFile]) -> tuple[list[MediaFile], ValidationRejection | None]:
    """Separate accepted files from rejected ones.

    Valid files keep their order and proceed; a single rejection describing every
    dropped file is returned so it can be surfaced once.
    """
    accepted = [f for f in files if f.kind is not None]
    rejected = [f.name for f in files if f.kind is None]
    return accepted, ValidationRejection(rejected) if rejected else None
