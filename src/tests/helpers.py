import asyncio
import io

import numpy as np
from PIL import Image

from receiptflow.base.exceptions import VideoDecodeError
from receiptflow.base.media import MediaFile
from receiptflow.base.video import VideoDecoder, VideoHandle, VideoMetadata


def make_image_bytes(width: int = 640, height: int = 480, format: str = "JPEG", color=(200, 180, 160)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format=format)
    return buffer.getvalue()


def image_size(data: bytes) -> tuple[int, int]:
    with Image.open(io.BytesIO(data)) as image:
        return image.size


def make_video_file(name: str = "wallet.mp4") -> MediaFile:
    return MediaFile(name=name, data=b"\x00\x00\x00\x18ftypmp42", content_type="video/mp4")


class FakeVideoHandle(VideoHandle):
    """Draws solid frames; offsets listed in ``failing`` raise, offsets in ``slow`` hang."""

    def __init__(self, metadata: VideoMetadata, failing=(), slow=(), delay: float = 1.0):
        self.metadata = metadata
        self.failing = set(failing)
        self.slow = set(slow)
        self.delay = delay
        self.reads: list[tuple[float, tuple[int, int]]] = []

    async def read_frame(self, offset: float, size: tuple[int, int]) -> np.ndarray:
        self.reads.append((offset, size))
        if offset in self.slow:
            await asyncio.sleep(self.delay)
        if offset in self.failing:
            raise VideoDecodeError(f"cannot seek to {offset}")
        width, height = size
        return np.full((height, width, 3), int(offset * 10) % 256, dtype=np.uint8)


class FakeVideoDecoder(VideoDecoder):
    def __init__(
        self,
        width: int = 1920,
        height: int = 1080,
        duration: float = 10.0,
        failing=(),
        slow=(),
        delay: float = 1.0,
        broken: bool = False,
    ):
        self.metadata = VideoMetadata(width=width, height=height, duration=duration)
        self.failing = failing
        self.slow = slow
        self.delay = delay
        self.broken = broken
        self.acquired = 0
        self.released = 0
        self.handles: list[FakeVideoHandle] = []

    async def acquire(self, video: MediaFile) -> FakeVideoHandle:
        if self.broken:
            raise VideoDecodeError(f"Cannot decode {video.name}")
        self.acquired += 1
        handle = FakeVideoHandle(self.metadata, self.failing, self.slow, self.delay)
        self.handles.append(handle)
        return handle

    async def release(self, handle: VideoHandle) -> None:
        self.released += 1


class FakeAnalyzer:
    """Analysis service returning canned responses keyed by call order."""

    def __init__(self, image_results=(), video_results=()):
        self.image_results = list(image_results)
        self.video_results = list(video_results)
        self.image_calls: list[bytes] = []
        self.video_calls: list[str] = []
        self.on_image = None

    async def analyze_image(self, image: bytes, mime_type: str = "image/jpeg"):
        self.image_calls.append(image)
        if self.on_image is not None:
            self.on_image(len(self.image_calls))
        result = self.image_results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    async def analyze_video(self, video: MediaFile):
        self.video_calls.append(video.name)
        result = self.video_results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result
