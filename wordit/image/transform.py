"""Image decoding and re-encoding for embedding."""

import io
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

from wordit.config.constants import DEFAULT_JPEG_QUALITY, DEFAULT_MAX_IMAGE_DIMENSION, EMBEDDABLE_IMAGE_FORMATS
from wordit.exceptions import ImageFailureError
from wordit.image.jobs import ResolvedImage
from wordit.utils.logging import get_logger

log = get_logger(__name__)


@dataclass
class TransformConfig:
    """Configuration for image transformation."""

    max_dimension: int = DEFAULT_MAX_IMAGE_DIMENSION  # Maximum width or height
    jpeg_quality: int = DEFAULT_JPEG_QUALITY


class ImageTransformer:
    """Decode, bound and re-encode images into formats Word can embed."""

    def __init__(self, config: TransformConfig | None = None) -> None:
        self.config = config or TransformConfig()

    def transform(self, data: bytes, url: str = "") -> ResolvedImage:
        """Make an image embeddable.

        Embeddable images within bounds are passed through untouched; oversized
        images are downscaled and other formats are converted to PNG.

        Args:
            data: Raw image bytes
            url: Reference, for error reporting

        Returns:
            Embeddable image

        Raises:
            ImageFailureError: If the payload is not a decodable image
        """
        if not data:
            raise ImageFailureError(url, "empty payload")

        try:
            img = Image.open(io.BytesIO(data))
            img.load()
        except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
            raise ImageFailureError(url, f"undecodable image: {e}") from e

        fmt = (img.format or "").upper()
        width, height = img.size
        oversized = max(width, height) > self.config.max_dimension

        if fmt in EMBEDDABLE_IMAGE_FORMATS and not oversized:
            return ResolvedImage(data=data, format=fmt, width=width, height=height, original_size=len(data))

        if oversized:
            img = self._resize(img)

        target = "JPEG" if fmt == "JPEG" else "PNG"
        encoded = self._encode(img, target)
        log.debug(
            "Image transformed",
            url=url[:120],
            source_format=fmt or "unknown",
            target_format=target,
            original=f"{width}x{height}",
            new=f"{img.size[0]}x{img.size[1]}",
        )
        return ResolvedImage(
            data=encoded,
            format=target,
            width=img.size[0],
            height=img.size[1],
            original_size=len(data),
        )

    def _resize(self, img: Image.Image) -> Image.Image:
        """Resize to fit ``max_dimension``, keeping the aspect ratio."""
        width, height = img.size
        max_dim = self.config.max_dimension

        if width > height:
            new_width = max_dim
            new_height = max(1, int(height * (max_dim / width)))
        else:
            new_height = max_dim
            new_width = max(1, int(width * (max_dim / height)))

        if img.mode not in ("RGB", "RGBA", "L", "LA"):
            img = img.convert("RGBA")
        return img.resize((new_width, new_height), Image.Resampling.LANCZOS)

    def _encode(self, img: Image.Image, fmt: str) -> bytes:
        output = io.BytesIO()
        if fmt == "JPEG":
            # JPEG has no alpha channel
            if img.mode not in ("RGB", "L"):
                img = img.convert("RGB")
            img.save(output, format="JPEG", quality=self.config.jpeg_quality, optimize=True)
        else:
            if img.mode not in ("RGB", "RGBA", "L", "LA", "P", "1"):
                img = img.convert("RGBA")
            img.save(output, format="PNG", optimize=True)
        return output.getvalue()
