"""Tests for the Pillow-backed image compression adapter."""

from __future__ import annotations

import base64
import io

import pytest
from PIL import Image

from cardshuffle.services.compression import (
    ImageCompressor,
    decode_data_url,
    file_to_data_url,
    is_raw_image,
)
from cardshuffle.shared.errors import CompressionFailure, ErrorCode


def _open(data_url: str) -> Image.Image:
    img = Image.open(io.BytesIO(decode_data_url(data_url)))
    img.load()
    return img


class TestIsRawImage:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("data:image/png;base64,AAAA", True),
            ("https://img.example/cat.jpg", False),
            ("", False),
            (None, False),
        ],
    )
    def test_detection(self, value, expected):
        assert is_raw_image(value) is expected


class TestImageCompressor:
    """Test the compression policy."""

    def test_wide_image_is_scaled_to_max_width(self, image_factory):
        """Images wider than max_width keep their aspect ratio."""
        compressor = ImageCompressor(quality=0.7, max_width=32)

        result = compressor.compress(image_factory(width=128, height=64))

        assert result.startswith("data:image/jpeg;base64,")
        img = _open(result)
        assert img.format == "JPEG"
        assert img.size == (32, 16)

    def test_narrow_image_keeps_size(self, image_factory):
        compressor = ImageCompressor(quality=0.7, max_width=800)

        img = _open(compressor.compress(image_factory(width=40, height=30)))

        assert img.size == (40, 30)

    def test_alpha_channel_is_flattened(self, image_factory):
        """Transparent PNGs are converted to RGB JPEGs."""
        compressor = ImageCompressor()

        img = _open(compressor.compress(image_factory(mode="RGBA")))

        assert img.mode == "RGB"

    def test_lower_quality_gives_smaller_output(self):
        noisy = Image.effect_noise((200, 200), 64).convert("RGB")
        buffer = io.BytesIO()
        noisy.save(buffer, format="PNG")
        source = "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode()

        high = ImageCompressor(quality=0.95, max_width=800).compress(source)
        low = ImageCompressor(quality=0.1, max_width=800).compress(source)

        assert len(low) < len(high)

    def test_invalid_base64(self):
        with pytest.raises(CompressionFailure) as exc_info:
            ImageCompressor().compress("data:image/png;base64,@@@not-base64@@@")
        assert exc_info.value.code == ErrorCode.INVALID_IMAGE

    def test_not_a_data_url(self):
        with pytest.raises(CompressionFailure):
            ImageCompressor().compress("https://img.example/cat.jpg")

    def test_undecodable_image(self):
        """Valid base64 that is not an image fails with COMPRESSION_FAILURE."""
        with pytest.raises(CompressionFailure) as exc_info:
            ImageCompressor().compress("data:image/png;base64,aGVsbG8gd29ybGQ=")
        assert exc_info.value.code == ErrorCode.COMPRESSION_FAILURE

    def test_oversized_image_header(self, oversized_image):
        """A tiny payload declaring a huge image is rejected, not decoded."""
        with pytest.raises(CompressionFailure) as exc_info:
            ImageCompressor().compress(oversized_image)
        assert exc_info.value.code == ErrorCode.COMPRESSION_FAILURE
        assert isinstance(exc_info.value.original_error, Image.DecompressionBombError)

    @pytest.mark.parametrize(("quality", "max_width"), [(0, 800), (1.5, 800), (0.7, 0)])
    def test_invalid_policy(self, quality, max_width):
        with pytest.raises(ValueError):
            ImageCompressor(quality=quality, max_width=max_width)

    @pytest.mark.asyncio
    async def test_compress_async(self, image_factory):
        result = await ImageCompressor(max_width=16).compress_async(image_factory())
        assert _open(result).size == (16, 8)


def test_file_to_data_url(tmp_path):
    path = tmp_path / "cat.png"
    Image.new("RGB", (4, 4)).save(path)

    data_url = file_to_data_url(path)

    assert data_url.startswith("data:image/png;base64,")
    assert is_raw_image(data_url)
    assert decode_data_url(data_url) == path.read_bytes()
