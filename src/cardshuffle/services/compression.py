"""Image compression adapter.

Turns a raw ``data:image/...`` payload into a bounded-size JPEG data URL
before it is sent to the collection API. The policy (quality factor and
maximum width) is fixed per controller; images narrower than the limit
keep their size.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import io
import logging
import mimetypes
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from cardshuffle.shared.constants import CompressionConfig
from cardshuffle.shared.errors import CompressionFailure, ErrorCode, ErrorContext

logger = logging.getLogger(__name__)


def is_raw_image(image_ref: str | None) -> bool:
    """True when ``image_ref`` is an embedded, not yet compressed, image."""
    return bool(image_ref) and image_ref.startswith(CompressionConfig.RAW_IMAGE_PREFIX)


def decode_data_url(data_url: str) -> bytes:
    """Return the binary content of a base64 ``data:`` URL.

    Raises:
        CompressionFailure: If the URL is not a base64 data URL
    """
    header, sep, encoded = data_url.partition(",")
    if not sep or not header.startswith("data:") or not header.endswith(";base64"):
        raise CompressionFailure(
            "Image payload is not a base64 data URL",
            ErrorCode.INVALID_IMAGE,
            ErrorContext(operation="decode_data_url"),
        )
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CompressionFailure(
            "Image payload has invalid base64 content",
            ErrorCode.INVALID_IMAGE,
            ErrorContext(operation="decode_data_url"),
            original_error=e,
        ) from e


def encode_data_url(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def file_to_data_url(path: Path | str) -> str:
    """Read an image file into a raw data URL for ingestion."""
    path = Path(path)
    mime_type, _ = mimetypes.guess_type(path.name)
    if not mime_type or not mime_type.startswith("image/"):
        mime_type = "image/png"
    return encode_data_url(path.read_bytes(), mime_type)


class ImageCompressor:
    """Pillow-backed compressor with a fixed quality/size policy.

    Args:
        quality: Encoder quality factor in (0, 1].
        max_width: Images wider than this are scaled down proportionally.
    """

    def __init__(
        self,
        quality: float = CompressionConfig.DEFAULT_QUALITY,
        max_width: int = CompressionConfig.DEFAULT_MAX_WIDTH,
    ) -> None:
        if not 0 < quality <= 1:
            raise ValueError(f"quality must be in (0, 1], got {quality}")
        if max_width <= 0:
            raise ValueError(f"max_width must be positive, got {max_width}")
        self.quality = quality
        self.max_width = max_width

    def compress(self, data_url: str) -> str:
        """Compress a raw data URL into a JPEG data URL.

        Raises:
            CompressionFailure: If the payload cannot be decoded or encoded
        """
        raw = decode_data_url(data_url)
        context = ErrorContext(
            operation="compress_image",
            additional_data={
                "input_bytes": len(raw),
                "quality": self.quality,
                "max_width": self.max_width,
            },
        )

        try:
            with Image.open(io.BytesIO(raw)) as img:
                img.load()
                width, height = img.size
                if width > self.max_width:
                    height = int(height * (self.max_width / width))
                    width = self.max_width
                    img = img.resize((width, max(1, height)), Image.Resampling.LANCZOS)

                # JPEG has no alpha channel
                if img.mode != "RGB":
                    img = img.convert("RGB")

                out = io.BytesIO()
                img.save(
                    out,
                    format=CompressionConfig.OUTPUT_FORMAT,
                    quality=round(self.quality * 100),
                    optimize=True,
                )
        except (
            UnidentifiedImageError,
            Image.DecompressionBombError,
            OSError,
            ValueError,
        ) as e:
            raise CompressionFailure(
                f"Failed to compress image: {e!s}",
                context=context,
                original_error=e,
            ) from e

        encoded = out.getvalue()
        logger.debug(
            "Compressed image %d -> %d bytes (%dx%d)",
            len(raw),
            len(encoded),
            width,
            height,
        )
        return encode_data_url(encoded, CompressionConfig.OUTPUT_MIME)

    async def compress_async(self, data_url: str) -> str:
        """Run ``compress`` off the event loop."""
        return await asyncio.to_thread(self.compress, data_url)
