"""Image previews rendered in memory with Pillow."""
from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Literal

from PIL import Image, ImageOps, UnidentifiedImageError

logger = logging.getLogger(__name__)

MAX_PREVIEW_SIZE = 2048
DEFAULT_QUALITY = 80
SUPPORTED_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp")

PreviewFit = Literal["inside", "cover"]
PreviewFormat = Literal["jpeg", "webp", "png"]

_MEDIA_TYPES = {
    "jpeg": "image/jpeg",
    "webp": "image/webp",
    "png": "image/png",
}


class PreviewError(Exception):
    """The source could not be decoded or encoded as an image."""


@dataclass(frozen=True)
class PreviewOptions:
    width: int | None = None
    height: int | None = None
    quality: int = DEFAULT_QUALITY
    fit: PreviewFit = "inside"
    format: PreviewFormat = "jpeg"


def is_previewable(filename: str) -> bool:
    return filename.lower().endswith(SUPPORTED_EXTENSIONS)


def _resize(img: Image.Image, options: PreviewOptions) -> Image.Image:
    """Shrink ``img`` to the requested box; never enlarges."""
    width, height = options.width, options.height
    if not width and not height:
        return img
    src_w, src_h = img.size
    if options.fit == "cover" and width and height:
        if src_w < width or src_h < height:
            return img
        return ImageOps.fit(img, (width, height), Image.Resampling.LANCZOS)
    box = (width or src_w, height or src_h)
    if src_w <= box[0] and src_h <= box[1]:
        return img
    img = img.copy()
    img.thumbnail(box, Image.Resampling.LANCZOS)
    return img


def _prepare_mode(img: Image.Image, format: PreviewFormat) -> Image.Image:
    if format == "jpeg":
        if img.mode not in ("RGB", "L"):
            return img.convert("RGB")
        return img
    if img.mode not in ("RGB", "RGBA", "L", "LA"):
        has_alpha = "A" in img.mode or "transparency" in img.info
        return img.convert("RGBA" if has_alpha else "RGB")
    return img


def render_preview(data: bytes, options: PreviewOptions) -> tuple[bytes, str]:
    """Decode ``data``, apply EXIF orientation and resize.

    Blocking; callers run it in a worker thread.

    Returns:
        (encoded bytes, media type)

    Raises:
        PreviewError: the input is not a decodable image
    """
    try:
        with Image.open(io.BytesIO(data)) as src:
            img = ImageOps.exif_transpose(src)
            img = _resize(img, options)
            img = _prepare_mode(img, options.format)
            out = io.BytesIO()
            if options.format == "jpeg":
                img.save(out, format="JPEG", quality=options.quality)
            elif options.format == "webp":
                img.save(out, format="WEBP", quality=options.quality)
            else:
                img.save(out, format="PNG")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise PreviewError(str(exc)) from exc
    return out.getvalue(), _MEDIA_TYPES[options.format]
