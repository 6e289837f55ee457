from __future__ import annotations

import base64
from pathlib import Path

import pytest

from stagesmart.errors import MalformedImageError
from stagesmart.image import ImagePayload, decode, encode, guess_media_type, load_image

from conftest import PNG_BYTES


def _data_url(media_type: str, raw: bytes) -> str:
    return f"data:{media_type};base64,{base64.b64encode(raw).decode('ascii')}"


def test_decode_extracts_media_type_and_bytes() -> None:
    payload = decode(_data_url("image/png", PNG_BYTES))

    assert payload.media_type == "image/png"
    assert payload.data == PNG_BYTES
    assert encode(payload) == _data_url("image/png", PNG_BYTES)


def test_decode_normalises_jpg_alias_and_whitespace() -> None:
    encoded = base64.b64encode(b"\xff\xd8\xff" * 10).decode("ascii")
    wire = f"  data:IMAGE/JPG;base64,{encoded[:8]}\n{encoded[8:]}  "

    payload = decode(wire)

    assert payload.media_type == "image/jpeg"
    assert payload.data == b"\xff\xd8\xff" * 10


@pytest.mark.parametrize(
    "wire",
    [
        "",
        "not a data url",
        "data:image/png,AAAA",
        "data:image/png;base64,",
        "data:image/png;base64,@@@not-base64@@@",
        _data_url("text/plain", b"hello"),
        _data_url("image/svg+xml", b"<svg/>"),
    ],
)
def test_decode_rejects_malformed_input(wire: str) -> None:
    with pytest.raises(MalformedImageError):
        decode(wire)


def test_decode_rejects_non_string() -> None:
    with pytest.raises(MalformedImageError):
        decode(b"data:image/png;base64,AAAA")  # type: ignore[arg-type]


def test_payload_rejects_empty_bytes_and_unknown_type() -> None:
    with pytest.raises(MalformedImageError):
        ImagePayload(data=b"", media_type="image/png")
    with pytest.raises(MalformedImageError):
        ImagePayload(data=b"abc", media_type="image/bmp")


def test_payload_converts_bytearray() -> None:
    payload = ImagePayload(data=bytearray(b"abc"), media_type="image/gif")
    assert isinstance(payload.data, bytes)
    assert payload.size == 3
    assert "size=3" in repr(payload)


def test_load_image_infers_media_type(tmp_path: Path) -> None:
    path = tmp_path / "room.JPEG"
    path.write_bytes(b"\xff\xd8\xff\xe0data")

    payload = load_image(path)

    assert payload.media_type == "image/jpeg"
    assert payload.data.startswith(b"\xff\xd8")


def test_guess_media_type_rejects_unknown_suffix() -> None:
    with pytest.raises(MalformedImageError):
        guess_media_type(Path("scan.tiff"))


@pytest.mark.parametrize("media_type", ["image/jpeg", "image/png", "image/webp", "image/gif"])
@pytest.mark.parametrize(
    "raw",
    [
        b"\x00",  # "==" padding
        b"\xff\xfe",  # "=" padding
        b"\x01\x02\x03",  # no padding
        bytes(range(256)),
    ],
)
def test_encode_then_decode_preserves_payload(media_type: str, raw: bytes) -> None:
    payload = ImagePayload(data=raw, media_type=media_type)

    wire = encode(payload)

    assert decode(wire) == payload


def test_encoded_padding_variants_are_emitted() -> None:
    assert encode(ImagePayload(data=b"\x00", media_type="image/png")).endswith("==")
    assert encode(ImagePayload(data=b"\xff\xfe", media_type="image/png")).endswith("=")
