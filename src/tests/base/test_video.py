import asyncio
import shutil
import subprocess

import pytest

from receiptflow.base.exceptions import ExtractionError, ExtractionTimeout, VideoDecodeError
from receiptflow.base.media import MediaFile
from receiptflow.base.video import (
    FfmpegVideoDecoder,
    FrameExtractor,
    VideoFrameSampler,
    VideoMetadata,
    opened_video,
    sample_offsets,
)

from tests.helpers import FakeVideoDecoder, image_size, make_video_file


class TestVideoMetadata:
    def test_from_probe(self):
        probe = {"streams": [{"width": 1920, "height": 1080}], "format": {"duration": "12.5"}}
        assert VideoMetadata.from_probe(probe) == VideoMetadata(width=1920, height=1080, duration=12.5)

    @pytest.mark.parametrize(
        "stream",
        [
            {"width": 1920, "height": 1080, "side_data_list": [{"rotation": -90}]},
            {"width": 1920, "height": 1080, "tags": {"rotate": "90"}},
        ],
    )
    def test_from_probe_reports_displayed_geometry(self, stream):
        metadata = VideoMetadata.from_probe({"streams": [stream], "format": {"duration": "3"}})
        assert (metadata.width, metadata.height) == (1080, 1920)

    @pytest.mark.parametrize(
        "probe",
        [
            {"streams": [], "format": {"duration": "3"}},
            {"streams": [{"width": 640, "height": 480}], "format": {}},
            {"streams": [{"width": 640, "height": 480}], "format": {"duration": "N/A"}},
            {"streams": [{"width": 0, "height": 480}], "format": {"duration": "3"}},
        ],
    )
    def test_from_probe_rejects_unusable_metadata(self, probe):
        with pytest.raises(VideoDecodeError):
            VideoMetadata.from_probe(probe)


def test_opened_video_releases_on_error(fake_decoder):
    async def use():
        async with opened_video(fake_decoder, make_video_file()):
            raise RuntimeError("consumer failed")

    with pytest.raises(RuntimeError):
        asyncio.run(use())
    assert fake_decoder.acquired == fake_decoder.released == 1


class TestVideoFrameSampler:
    def test_plan_offsets(self):
        sampler = VideoFrameSampler(decoder=FakeVideoDecoder())
        assert sampler.plan_offsets(3.5) == [0.0, 1.0, 2.0, 3.0]
        assert sampler.plan_offsets(3.0) == [0.0, 1.0, 2.0]
        assert sampler.plan_offsets(1.0, interval=0.25) == [0.0, 0.25, 0.5, 0.75]
        assert sampler.plan_offsets(0) == []

    def test_sample_offsets(self):
        assert sample_offsets(2.5, 1.0) == [0.0, 1.0, 2.0]
        assert sample_offsets(1.0, 0.4) == [0.0, 0.4, 0.8]
        with pytest.raises(ValueError):
            sample_offsets(3.0, 0)

    def test_sample_short_video(self):
        decoder = FakeVideoDecoder(duration=10.5)
        frames = asyncio.run(VideoFrameSampler(decoder=decoder).sample(make_video_file()))

        assert len(frames) == 11
        assert [f.offset for f in frames] == [float(i) for i in range(11)]
        assert decoder.acquired == decoder.released == 1

    def test_sample_caps_frame_count(self):
        decoder = FakeVideoDecoder(duration=600.0)
        frames = asyncio.run(VideoFrameSampler(decoder=decoder).sample(make_video_file()))

        assert len(frames) == 45
        assert frames[-1].offset == 44.0
        assert len(decoder.handles[0].reads) == 45

    def test_frames_are_lightweight(self):
        decoder = FakeVideoDecoder(width=1920, height=1080, duration=2.0)
        frames = asyncio.run(VideoFrameSampler(decoder=decoder).sample(make_video_file()))

        for frame in frames:
            assert (frame.width, frame.height) == (800, 450)
            assert image_size(frame.data) == (800, 450)
            assert frame.data[:2] == b"\xff\xd8"

    def test_failed_frames_are_skipped_without_shifting_offsets(self):
        decoder = FakeVideoDecoder(duration=5.0, failing={1.0, 3.0})
        frames = asyncio.run(VideoFrameSampler(decoder=decoder).sample(make_video_file()))

        assert [f.offset for f in frames] == [0.0, 2.0, 4.0]

    def test_skipped_frames_do_not_count_towards_cap(self):
        decoder = FakeVideoDecoder(duration=60.0, failing={0.0, 1.0})
        frames = asyncio.run(VideoFrameSampler(decoder=decoder, max_frames=5).sample(make_video_file()))

        assert [f.offset for f in frames] == [2.0, 3.0, 4.0, 5.0, 6.0]

    def test_slow_frame_is_skipped(self):
        decoder = FakeVideoDecoder(duration=3.0, slow={1.0}, delay=1.0)
        sampler = VideoFrameSampler(decoder=decoder, frame_timeout=0.05)

        frames = asyncio.run(sampler.sample(make_video_file()))

        assert [f.offset for f in frames] == [0.0, 2.0]

    def test_custom_interval(self):
        decoder = FakeVideoDecoder(duration=2.0)
        frames = asyncio.run(VideoFrameSampler(decoder=decoder).sample(make_video_file(), interval=0.5))
        assert [f.offset for f in frames] == [0.0, 0.5, 1.0, 1.5]

    def test_undecodable_video_raises(self):
        decoder = FakeVideoDecoder(broken=True)
        with pytest.raises(VideoDecodeError):
            asyncio.run(VideoFrameSampler(decoder=decoder).sample(make_video_file()))
        assert decoder.released == 0

    def test_invalid_parameters(self):
        with pytest.raises(ValueError):
            VideoFrameSampler(decoder=FakeVideoDecoder(), interval=0)
        with pytest.raises(ValueError):
            VideoFrameSampler(decoder=FakeVideoDecoder(), max_frames=0)


class TestFrameExtractor:
    def _extractor(self, decoder, **kwargs):
        return FrameExtractor(decoder=decoder, settle_delay=0, **kwargs)

    def test_extract_bounded_jpeg(self):
        decoder = FakeVideoDecoder(width=1080, height=1920)
        data = asyncio.run(self._extractor(decoder).extract(make_video_file(), 4.2))

        assert data[:2] == b"\xff\xd8"
        assert image_size(data) == (338, 600)
        assert decoder.handles[0].reads == [(4.2, (338, 600))]
        assert decoder.acquired == decoder.released == 1

    @pytest.mark.parametrize("offset, target", [(25.0, 10.0), (-3.0, 0.0)])
    def test_offset_is_clamped(self, offset, target):
        decoder = FakeVideoDecoder(duration=10.0)
        asyncio.run(self._extractor(decoder).extract(make_video_file(), offset))
        assert decoder.handles[0].reads[0][0] == target

    def test_timeout(self):
        decoder = FakeVideoDecoder(slow={2.0}, delay=1.0)
        extractor = self._extractor(decoder, timeout=0.05)

        with pytest.raises(ExtractionTimeout):
            asyncio.run(extractor.extract(make_video_file(), 2.0))
        assert decoder.released == 1

    def test_decode_failure(self):
        decoder = FakeVideoDecoder(failing={2.0})
        with pytest.raises(ExtractionError, match="Could not extract frame"):
            asyncio.run(self._extractor(decoder).extract(make_video_file(), 2.0))
        assert decoder.acquired == decoder.released == 1

    def test_undecodable_video(self):
        with pytest.raises(ExtractionError):
            asyncio.run(self._extractor(FakeVideoDecoder(broken=True)).extract(make_video_file(), 1.0))


def test_ffprobe_timeout_removes_spooled_file(monkeypatch):
    spooled = []

    async def hanging_ffprobe(path):
        spooled.append(path)
        await asyncio.sleep(1.0)

    monkeypatch.setattr(FfmpegVideoDecoder, "_run_ffprobe", staticmethod(hanging_ffprobe))
    decoder = FfmpegVideoDecoder(probe_timeout=0.05)

    with pytest.raises(VideoDecodeError, match="ffprobe did not finish"):
        asyncio.run(decoder.acquire(make_video_file()))
    assert len(spooled) == 1
    assert not spooled[0].exists()


def _make_video(path, size: str, seconds: int, rate: int, *extra: str) -> MediaFile:
    subprocess.run(
        [
            "ffmpeg",
            "-v",
            "error",
            "-f",
            "lavfi",
            "-i",
            f"testsrc=size={size}:rate={rate}",
            "-t",
            str(seconds),
            "-pix_fmt",
            "yuv420p",
            *extra,
            str(path),
        ],
        check=True,
    )
    return MediaFile.from_path(path)


@pytest.fixture(scope="module")
def real_video(tmp_path_factory):
    return _make_video(tmp_path_factory.mktemp("video") / "receipts.mp4", "320x240", 3, 10)


@pytest.fixture(scope="module")
def phone_video(tmp_path_factory):
    # Full HD with a single keyframe, so every seek has to decode from the start
    path = tmp_path_factory.mktemp("video") / "wallet.mp4"
    return _make_video(path, "1920x1080", 12, 30, "-g", "1000")


@pytest.mark.ffmpeg
@pytest.mark.skipif(shutil.which("ffmpeg") is None or shutil.which("ffprobe") is None, reason="ffmpeg not installed")
class TestFfmpegVideoDecoder:
    def test_sample_and_extract(self, real_video):
        frames = asyncio.run(VideoFrameSampler().sample(real_video))

        assert [f.offset for f in frames] == [0.0, 1.0, 2.0]
        assert all(image_size(f.data) == (320, 240) for f in frames)

        data = asyncio.run(FrameExtractor(settle_delay=0).extract(real_video, 1.5))
        assert image_size(data) == (320, 240)

    def test_sample_keeps_every_frame_of_long_gop_video(self, phone_video):
        frames = asyncio.run(VideoFrameSampler().sample(phone_video))

        assert [f.offset for f in frames] == [float(i) for i in range(12)]
        assert all(image_size(f.data) == (800, 450) for f in frames)

    @pytest.mark.parametrize("offset", [3.0, 3.4])
    def test_extract_at_or_past_the_end_returns_last_frame(self, real_video, offset):
        data = asyncio.run(FrameExtractor(settle_delay=0).extract(real_video, offset))

        assert data[:2] == b"\xff\xd8"
        assert image_size(data) == (320, 240)

    def test_garbage_video(self):
        with pytest.raises(VideoDecodeError):
            asyncio.run(VideoFrameSampler().sample(MediaFile("broken.mp4", b"not a video")))
