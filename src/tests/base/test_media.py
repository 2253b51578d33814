import pytest

from receiptflow.base.exceptions import ValidationRejection
from receiptflow.base.media import MediaFile, split_accepted


@pytest.mark.parametrize(
    "name, content_type, kind",
    [
        ("receipt.jpg", "image/jpeg", "image"),
        ("receipt.JPEG", "", "image"),
        ("scan.png", "image/png", "image"),
        ("IMG_0001.HEIC", "", "image"),
        ("upload", "image/heic", "image"),
        ("wallet.mp4", "video/mp4", "video"),
        ("wallet.MP4", "", "video"),
        ("notes.txt", "text/plain", None),
        ("clip.mov", "video/quicktime", None),
        ("receipt.pdf", "application/pdf", None),
        ("upload", "image/pngfoo", None),
        ("upload", "x-image/jpeg-like", None),
        ("upload", "IMAGE/PNG", "image"),
    ],
)
def test_kind(name, content_type, kind):
    assert MediaFile(name=name, data=b"", content_type=content_type).kind == kind


def test_split_accepted_keeps_order_and_reports_rejections():
    files = [
        MediaFile("a.jpg", b""),
        MediaFile("notes.txt", b""),
        MediaFile("b.mp4", b""),
        MediaFile("c.gif", b""),
    ]

    accepted, rejection = split_accepted(files)

    assert [f.name for f in accepted] == ["a.jpg", "b.mp4"]
    assert isinstance(rejection, ValidationRejection)
    assert rejection.names == ["notes.txt", "c.gif"]
    assert "Rejected: notes.txt, c.gif" in str(rejection)


def test_split_accepted_without_rejections():
    accepted, rejection = split_accepted([MediaFile("a.png", b"")])
    assert len(accepted) == 1
    assert rejection is None


def test_from_path(tmp_path):
    path = tmp_path / "lunch.png"
    path.write_bytes(b"png-bytes")

    media = MediaFile.from_path(path)

    assert media.name == "lunch.png"
    assert media.data == b"png-bytes"
    assert media.content_type == "image/png"
    assert not media.is_video


def test_from_path_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        MediaFile.from_path(tmp_path / "missing.jpg")
