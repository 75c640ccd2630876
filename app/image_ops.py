# app/image_ops.py
"""
Image operations on in-memory uploads.

Helpers raise ValueError for bad parameters (HTTP 400 at the route) and
RuntimeError when Pillow or the background-removal model fails (HTTP 500).
"""
import logging
from dataclasses import dataclass, field
from typing import Optional, Tuple

from PIL import Image

from app.config import MAX_OUTPUT_MEGAPIXELS, MAX_OUTPUT_PIXELS
from app.helpers import derive_name
from app.transforms import (
    FLIP_DIRECTIONS,
    ROTATIONS,
    ColorAdjustments,
    Encoded,
    adjust_colors,
    encode,
    flip,
    is_svg,
    load_image,
    resolve_format,
    rotate,
    run_pipeline,
    source_format,
)
from app.uploads import UploadedFile

logger = logging.getLogger(__name__)

CONVERT_FORMATS = ("jpg", "jpeg", "png", "webp", "gif", "bmp", "tiff")
CONVERT_QUALITY = 0.9


@dataclass
class ImageResult:
    data: bytes
    mime_type: str
    file_name: str
    width: int
    height: int
    extra: dict = field(default_factory=dict)


def _result(encoded: Encoded, file_name: str, **extra) -> ImageResult:
    return ImageResult(
        data=encoded.data,
        mime_type=encoded.mime_type,
        file_name=file_name,
        width=encoded.width,
        height=encoded.height,
        extra=extra,
    )


def validate_quality(quality: float) -> None:
    if not 0.1 <= quality <= 1.0:
        raise ValueError("Quality must be between 0.1 and 1.0")


# ----------------------------
# Compress / resize / crop / convert
# ----------------------------
def compress_image(file: UploadedFile, quality: float = 0.8) -> ImageResult:
    validate_quality(quality)
    img = load_image(file.data)
    src = source_format(img)

    has_alpha = img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info)
    if src == "PNG" and has_alpha:
        fmt, options = "PNG", {"optimize": True, "compress_level": 9}
    elif src == "WEBP":
        fmt, options = "WEBP", {"method": 6}
    else:
        fmt, options = "JPEG", {"optimize": True, "progressive": True}

    encoded = encode(img, fmt, quality, **options)
    return _result(encoded, derive_name(file.name, "-compressed", encoded.ext))


def fit_inside(src_w: int, src_h: int, width: int, height: int) -> Tuple[int, int]:
    """Largest size with the source aspect ratio that fits width x height."""
    aspect = src_w / src_h
    if aspect > width / height:
        return width, max(1, round(width / aspect))
    return max(1, round(height * aspect)), height


def resize_image(file: UploadedFile, width: int, height: int, maintain_aspect_ratio: bool = True) -> ImageResult:
    if width <= 0 or height <= 0:
        raise ValueError("Dimensions must be positive")

    img = load_image(file.data)
    fmt = source_format(img)
    original = (img.width, img.height)

    if maintain_aspect_ratio:
        width, height = fit_inside(img.width, img.height, width, height)
    if width * height > MAX_OUTPUT_PIXELS:
        raise ValueError(f"Output size must not exceed {MAX_OUTPUT_MEGAPIXELS} megapixels")

    resized = img.resize((width, height), Image.Resampling.LANCZOS)
    encoded = encode(resized, fmt)
    return _result(
        encoded,
        derive_name(file.name, f"-resized-{width}x{height}", encoded.ext),
        original_width=original[0],
        original_height=original[1],
    )


def crop_image(file: UploadedFile, x: int, y: int, width: int, height: int) -> ImageResult:
    if x < 0 or y < 0 or width <= 0 or height <= 0:
        raise ValueError("Crop parameters must be positive")

    img = load_image(file.data)
    if x + width > img.width or y + height > img.height:
        raise ValueError("Crop area exceeds image boundaries")

    cropped = img.crop((x, y, x + width, y + height))
    encoded = encode(cropped, source_format(img))
    return _result(encoded, derive_name(file.name, f"-cropped-{width}x{height}", encoded.ext))


def convert_image(file: UploadedFile, target_format: str) -> ImageResult:
    target = (target_format or "").strip().lower()
    if target not in CONVERT_FORMATS:
        raise ValueError(f"Unsupported format. Supported formats: {', '.join(CONVERT_FORMATS)}")

    img = load_image(file.data)
    original_format = source_format(img).lower()
    encoded = encode(img, resolve_format(target), CONVERT_QUALITY)
    return _result(
        encoded,
        derive_name(file.name, "", target),
        original_format=original_format,
        new_format=target,
    )


# ----------------------------
# Rotate / flip / color adjust (transform pipeline)
# ----------------------------
def rotate_image(file: UploadedFile, degrees: int, output_format: Optional[str] = None, preview: bool = False) -> ImageResult:
    if degrees not in ROTATIONS:
        raise ValueError("Degrees must be 90, 180, or 270")
    encoded = run_pipeline(file.data, lambda img: rotate(img, degrees), output_format, preview)
    return _result(encoded, derive_name(file.name, f"_rotated_{degrees}deg", encoded.ext))


def flip_image(file: UploadedFile, direction: str, output_format: Optional[str] = None, preview: bool = False) -> ImageResult:
    if direction not in FLIP_DIRECTIONS:
        raise ValueError("Direction must be horizontal or vertical")
    encoded = run_pipeline(file.data, lambda img: flip(img, direction), output_format, preview)
    return _result(encoded, derive_name(file.name, f"_flipped_{direction}", encoded.ext))


def adjust_image_colors(
    file: UploadedFile,
    adjustments: ColorAdjustments,
    output_format: Optional[str] = None,
    preview: bool = False,
) -> ImageResult:
    adjustments.validate()
    encoded = run_pipeline(file.data, lambda img: adjust_colors(img, adjustments), output_format, preview)
    return _result(encoded, derive_name(file.name, "_color-adjusted", encoded.ext))


# ----------------------------
# Background removal
# ----------------------------
def _rembg_remove(data: bytes) -> bytes:
    # imported lazily: pulls in onnxruntime and the model on first use
    from rembg import remove

    return remove(data)


def remove_background(file: UploadedFile) -> ImageResult:
    src = load_image(file.data)  # undecodable input fails before the model runs
    data = encode(src, "PNG").data if is_svg(file.data) else file.data
    try:
        output = _rembg_remove(data)
    except Exception as e:
        raise RuntimeError(f"Background removal failed: {e}") from e

    img = load_image(output)
    encoded = encode(img, "PNG", optimize=True)
    return _result(encoded, derive_name(file.name, "-no-background", "png"))
