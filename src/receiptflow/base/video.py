from __future__ import annotations

import abc
import asyncio
import json
import logging
import math
import os
import tempfile
from contextlib import aclosing, asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator

import numpy as np

from receiptflow.base.exceptions import ExtractionError, ExtractionTimeout, MediaError, VideoDecodeError
from receiptflow.base.image import encode_jpeg, scaled_size
from receiptflow.base.media import MediaFile

logger = logging.getLogger(__name__)

# Sampling pass: many lightweight frames for the analysis service
SAMPLE_INTERVAL_SECONDS = 1.0
SAMPLE_MAX_FRAMES = 45
SAMPLE_MAX_DIMENSION = 800
SAMPLE_JPEG_QUALITY = 60
SAMPLE_FRAME_TIMEOUT = 20.0

# Archival capture: one higher quality frame per confirmed receipt
ARCHIVAL_MAX_DIMENSION = 600
ARCHIVAL_JPEG_QUALITY = 80
ARCHIVAL_SEEK_TIMEOUT = 20.0
ARCHIVAL_SETTLE_DELAY = 0.5

PROBE_TIMEOUT = 20.0
# Seeks this close to the end may land past the last frame
END_OF_STREAM_WINDOW = 1.0


def sample_offsets(duration: float, interval: float) -> list[float]:
    """Offsets ``0, interval, 2*interval, ...`` strictly before ``duration``."""
    if interval <= 0:
        raise ValueError("interval must be positive")
    count = math.ceil(duration / interval) if duration > 0 else 0
    return [round(i * interval, 3) for i in range(count) if i * interval < duration]


@dataclass
class VideoMetadata:
    """Display geometry and duration of a video."""

    width: int
    height: int
    duration: float

    def __str__(self) -> str:
        return f"{self.width}x{self.height}, {self.duration} seconds"

    @classmethod
    def from_probe(cls, probe_data: dict) -> VideoMetadata:
        """Creates VideoMetadata from parsed ffprobe JSON output."""
        try:
            stream_info = probe_data["streams"][0]
            width = int(stream_info["width"])
            height = int(stream_info["height"])
            duration = float(probe_data["format"]["duration"])
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise VideoDecodeError(f"Missing or invalid video metadata: {e}") from e

        if width <= 0 or height <= 0 or not math.isfinite(duration) or duration <= 0:
            raise VideoDecodeError(f"Unusable video metadata: {width}x{height}, {duration}s")

        # ffmpeg auto-rotates decoded frames, so report the displayed geometry
        if abs(_rotation_degrees(stream_info)) % 180 == 90:
            width, height = height, width

        return cls(width=width, height=height, duration=duration)


@dataclass
class SampledFrame:
    """One lightweight frame from the sampling pass.

    Attributes:
        offset: Position in the source video in seconds
        data: JPEG bytes
        width: Frame width in pixels
        height: Frame height in pixels
    """

    offset: float
    data: bytes = field(repr=False)
    width: int
    height: int


class VideoHandle(abc.ABC):
    """An acquired, seekable video. Obtained from and returned to a VideoDecoder."""

    metadata: VideoMetadata

    @abc.abstractmethod
    async def read_frame(self, offset: float, size: tuple[int, int]) -> np.ndarray:
        """Seek to ``offset`` seconds and draw the current frame at ``size`` (width, height).

        Returns:
            RGB frame as numpy array of shape (height, width, 3)
        """

    async def read_frames(
        self, interval: float, size: tuple[int, int], frame_timeout: float
    ) -> AsyncIterator[tuple[float, np.ndarray]]:
        """Yield ``(offset, frame)`` pairs at ``0, interval, 2*interval, ...`` until the end of the video.

        This implementation seeks once per offset and skips frames that fail or take longer than
        ``frame_timeout``. Decoders that can stream a whole pass should override it.
        """
        for offset in sample_offsets(self.metadata.duration, interval):
            try:
                frame = await asyncio.wait_for(self.read_frame(offset, size), timeout=frame_timeout)
            except (asyncio.TimeoutError, MediaError, OSError, ValueError) as e:
                logger.debug("Skipping frame at %.1fs: %s", offset, e)
                continue
            yield offset, frame


class VideoDecoder(abc.ABC):
    """Media decode capability: turns submitted videos into seekable handles.

    Every ``acquire`` must be matched by exactly one ``release``; use ``opened_video``.
    """

    @abc.abstractmethod
    async def acquire(self, video: MediaFile) -> VideoHandle:
        """Open the video. Raises VideoDecodeError if it cannot be decoded at all."""

    @abc.abstractmethod
    async def release(self, handle: VideoHandle) -> None:
        """Free every resource held by the handle."""


@asynccontextmanager
async def opened_video(decoder: VideoDecoder, video: MediaFile) -> AsyncIterator[VideoHandle]:
    """Acquire a video handle and release it on every exit path."""
    handle = await decoder.acquire(video)
    try:
        yield handle
    finally:
        await decoder.release(handle)


class FfmpegVideoHandle(VideoHandle):
    def __init__(self, path: Path, metadata: VideoMetadata):
        self.path = path
        self.metadata = metadata
        self.released = False

    def _decode_cmd(self, video_filter: str, input_args: list[str], output_args: list[str]) -> list[str]:
        return [
            "ffmpeg",
            "-v",
            "error",
            "-nostdin",
            *input_args,
            "-i",
            str(self.path),
            "-an",
            "-vf",
            video_filter,
            *output_args,
            "-f",
            "rawvideo",
            "-pix_fmt",
            "rgb24",
            "pipe:1",
        ]

    async def read_frame(self, offset: float, size: tuple[int, int]) -> np.ndarray:
        width, height = size
        frame_size = width * height * 3
        scale = f"scale={width}:{height}:flags=lanczos"

        # Seek before input for fast keyframe seeking
        stdout, stderr = await _run_process(self._decode_cmd(scale, ["-ss", f"{offset:.3f}"], ["-frames:v", "1"]))
        if len(stdout) < frame_size and offset >= self.metadata.duration - END_OF_STREAM_WINDOW:
            # Past the last frame: decode the final second and keep its last frame
            tail, _ = await _run_process(self._decode_cmd(scale, ["-sseof", f"-{END_OF_STREAM_WINDOW:g}"], []))
            complete = len(tail) // frame_size
            if complete:
                stdout = tail[(complete - 1) * frame_size : complete * frame_size]

        if len(stdout) < frame_size:
            raise VideoDecodeError(
                f"No frame decoded at {offset:.1f}s: {stderr.decode(errors='replace').strip() or 'empty output'}"
            )
        return np.frombuffer(stdout[:frame_size], dtype=np.uint8).reshape(height, width, 3)

    async def read_frames(
        self, interval: float, size: tuple[int, int], frame_timeout: float
    ) -> AsyncIterator[tuple[float, np.ndarray]]:
        """Decode the whole pass in a single ffmpeg run with the ``fps`` filter."""
        offsets = sample_offsets(self.metadata.duration, interval)
        if not offsets:
            return
        width, height = size
        frame_size = width * height * 3
        video_filter = f"fps={1 / interval:.6g},scale={width}:{height}:flags=lanczos"
        cmd = self._decode_cmd(video_filter, [], ["-frames:v", str(len(offsets))])

        process = await _spawn(cmd, stderr=asyncio.subprocess.DEVNULL)
        delivered = 0
        try:
            assert process.stdout is not None
            for offset in offsets:
                try:
                    chunk = await asyncio.wait_for(process.stdout.readexactly(frame_size), timeout=frame_timeout)
                except asyncio.IncompleteReadError:
                    break
                except asyncio.TimeoutError:
                    logger.warning("Decoding stalled at %.1fs of %s, ending the pass", offset, self.path.name)
                    break
                delivered += 1
                yield offset, np.frombuffer(chunk, dtype=np.uint8).reshape(height, width, 3)

            if not delivered:
                returncode = await asyncio.wait_for(process.wait(), timeout=frame_timeout)
                if returncode != 0:
                    raise VideoDecodeError(f"ffmpeg could not decode {self.path.name} (exit code {returncode})")
        finally:
            await _terminate(process)


class FfmpegVideoDecoder(VideoDecoder):
    """Decodes videos with the ffmpeg/ffprobe command line tools.

    The submitted bytes are spooled to a temporary file for the lifetime of the handle.
    """

    def __init__(self, probe_timeout: float = PROBE_TIMEOUT):
        self.probe_timeout = probe_timeout

    async def acquire(self, video: MediaFile) -> FfmpegVideoHandle:
        fd, name = tempfile.mkstemp(prefix="receiptflow-", suffix=video.suffix or ".mp4")
        path = Path(name)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(video.data)
            try:
                probe = await asyncio.wait_for(self._run_ffprobe(path), timeout=self.probe_timeout)
            except asyncio.TimeoutError as e:
                raise VideoDecodeError(
                    f"ffprobe did not finish within {self.probe_timeout:g}s for {video.name}"
                ) from e
            metadata = VideoMetadata.from_probe(probe)
        except BaseException:
            path.unlink(missing_ok=True)
            raise
        logger.debug("Opened %s: %s", video.name, metadata)
        return FfmpegVideoHandle(path, metadata)

    async def release(self, handle: VideoHandle) -> None:
        if not isinstance(handle, FfmpegVideoHandle) or handle.released:
            return
        handle.released = True
        handle.path.unlink(missing_ok=True)

    @staticmethod
    async def _run_ffprobe(video_path: Path) -> dict:
        """Run ffprobe and return parsed JSON output."""
        cmd = [
            "ffprobe",
            "-v",
            "error",
            "-select_streams",
            "v:0",
            "-show_entries",
            "stream=width,height:stream_tags=rotate:stream_side_data=rotation",
            "-show_entries",
            "format=duration",
            "-print_format",
            "json",
            str(video_path),
        ]
        try:
            stdout, _ = await _run_process(cmd)
            return json.loads(stdout)
        except json.JSONDecodeError as e:
            raise VideoDecodeError(f"Error parsing FFprobe output: {e}") from e


class VideoFrameSampler:
    """Extracts a bounded, timestamped sequence of lightweight frames from a video.

    Frames are taken at ``0, interval, 2*interval, ...`` until the end of the video or
    until ``max_frames`` frames are collected. A frame that cannot be decoded is skipped,
    so every SampledFrame carries its own offset.
    """

    def __init__(
        self,
        decoder: VideoDecoder | None = None,
        interval: float = SAMPLE_INTERVAL_SECONDS,
        max_frames: int = SAMPLE_MAX_FRAMES,
        max_dimension: int = SAMPLE_MAX_DIMENSION,
        quality: int = SAMPLE_JPEG_QUALITY,
        frame_timeout: float = SAMPLE_FRAME_TIMEOUT,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        if max_frames <= 0:
            raise ValueError("max_frames must be positive")
        self.decoder = decoder or FfmpegVideoDecoder()
        self.interval = interval
        self.max_frames = max_frames
        self.max_dimension = max_dimension
        self.quality = quality
        self.frame_timeout = frame_timeout

    def plan_offsets(self, duration: float, interval: float | None = None) -> list[float]:
        """Offsets a sampling pass may visit over a video of the given duration.

        The pass stops early once ``max_frames`` frames have been collected.
        """
        return sample_offsets(duration, self.interval if interval is None else interval)

    async def sample(self, video: MediaFile, interval: float | None = None) -> list[SampledFrame]:
        """Run one sampling pass.

        Args:
            video: Video file to sample
            interval: Seconds between samples, defaults to the sampler's interval

        Returns:
            Frames in offset order, at most ``max_frames``

        Raises:
            VideoDecodeError: If the video cannot be opened or decoded at all.
        """
        interval = self.interval if interval is None else interval
        if interval <= 0:
            raise ValueError("interval must be positive")
        frames: list[SampledFrame] = []

        async with opened_video(self.decoder, video) as handle:
            metadata = handle.metadata
            size = scaled_size(metadata.width, metadata.height, self.max_dimension)
            planned = len(self.plan_offsets(metadata.duration, interval))

            async with aclosing(handle.read_frames(interval, size, self.frame_timeout)) as stream:
                async for offset, pixels in stream:
                    try:
                        data = encode_jpeg(pixels, self.quality)
                    except (OSError, ValueError) as e:
                        logger.debug("Skipping frame at %.1fs of %s: %s", offset, video.name, e)
                        continue
                    frames.append(SampledFrame(offset=offset, data=data, width=size[0], height=size[1]))
                    if len(frames) >= self.max_frames:
                        break

        logger.info("Sampled %d/%d frames from %s", len(frames), planned, video.name)
        return frames


class FrameExtractor:
    """Captures one higher quality archival frame at a known offset."""

    def __init__(
        self,
        decoder: VideoDecoder | None = None,
        max_dimension: int = ARCHIVAL_MAX_DIMENSION,
        quality: int = ARCHIVAL_JPEG_QUALITY,
        timeout: float = ARCHIVAL_SEEK_TIMEOUT,
        settle_delay: float = ARCHIVAL_SETTLE_DELAY,
    ):
        self.decoder = decoder or FfmpegVideoDecoder()
        self.max_dimension = max_dimension
        self.quality = quality
        self.timeout = timeout
        self.settle_delay = settle_delay

    async def extract(self, video: MediaFile, offset: float) -> bytes:
        """Capture the frame at ``offset`` seconds, clamped to the video duration.

        An offset at or past the end yields the last frame of the video.

        Raises:
            ExtractionTimeout: If the seek does not complete within ``timeout``.
            ExtractionError: If the video or frame cannot be decoded or encoded.
        """
        try:
            async with opened_video(self.decoder, video) as handle:
                metadata = handle.metadata
                target = min(max(0.0, float(offset)), metadata.duration)
                size = scaled_size(metadata.width, metadata.height, self.max_dimension)

                try:
                    pixels = await asyncio.wait_for(handle.read_frame(target, size), timeout=self.timeout)
                except asyncio.TimeoutError as e:
                    raise ExtractionTimeout(target, self.timeout) from e

                # Let late frame delivery settle before capturing
                await asyncio.sleep(self.settle_delay)
                return encode_jpeg(pixels, self.quality)
        except ExtractionError:
            raise
        except (MediaError, OSError, ValueError) as e:
            raise ExtractionError(f"Could not extract frame at {offset}s from {video.name}: {e}") from e


async def _spawn(cmd: list[str], stderr: int = asyncio.subprocess.PIPE) -> asyncio.subprocess.Process:
    try:
        return await asyncio.create_subprocess_exec(*cmd, stdout=asyncio.subprocess.PIPE, stderr=stderr)
    except FileNotFoundError as e:
        raise VideoDecodeError(f"{cmd[0]} is not installed") from e


async def _terminate(process: asyncio.subprocess.Process) -> None:
    """Kill the process if it is still running and reap it."""
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()


async def _run_process(cmd: list[str]) -> tuple[bytes, bytes]:
    """Run a command, killing it if the awaiting task is cancelled or times out."""
    process = await _spawn(cmd)
    try:
        stdout, stderr = await process.communicate()
    finally:
        await _terminate(process)

    if process.returncode != 0:
        raise VideoDecodeError(f"{cmd[0]} error: {stderr.decode(errors='replace').strip()}")
    return stdout, stderr


def _rotation_degrees(stream_info: dict) -> int:
    for side_data in stream_info.get("side_data_list") or []:
        if "rotation" in side_data:
            try:
                return int(float(side_data["rotation"]))
            except (TypeError, ValueError):
                return 0
    try:
        return int(stream_info.get("tags", {}).get("rotate", 0))
    except (TypeError, ValueError):
        return 0
