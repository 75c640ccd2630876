# app/transforms.py
"""
Load -> transform -> encode pipeline for the geometric and color tools.

An image is decoded into a Pillow bitmap, one transform is applied (flip,
rotate or color adjust) and the result is re-encoded at a fixed quality:
EXPORT_QUALITY for downloads, PREVIEW_QUALITY for previews.
"""
import io
import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional

from PIL import Image, ImageEnhance, UnidentifiedImageError

from app.config import EXPORT_QUALITY, PREVIEW_QUALITY

logger = logging.getLogger(__name__)

FORMAT_MIME = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
    "GIF": "image/gif",
    "BMP": "image/bmp",
    "TIFF": "image/tiff",
}

FORMAT_EXT = {
    "JPEG": "jpg",
    "PNG": "png",
    "WEBP": "webp",
    "GIF": "gif",
    "BMP": "bmp",
    "TIFF": "tiff",
}

# user-facing names -> Pillow format names
FORMAT_ALIASES = {
    "jpg": "JPEG",
    "jpeg": "JPEG",
    "png": "PNG",
    "webp": "WEBP",
    "gif": "GIF",
    "bmp": "BMP",
    "tiff": "TIFF",
    "tif": "TIFF",
}

# Multi-picture JPEGs from phones decode as MPO
SOURCE_ALIASES = {"MPO": "JPEG"}

NO_ALPHA_FORMATS = {"JPEG", "BMP"}

FLIP_DIRECTIONS = ("horizontal", "vertical")
ROTATIONS = (90, 180, 270)

# clockwise degrees -> Pillow transpose (Pillow's ROTATE_* are counter-clockwise)
_ROTATE_TRANSPOSE = {
    90: Image.Transpose.ROTATE_270,
    180: Image.Transpose.ROTATE_180,
    270: Image.Transpose.ROTATE_90,
}


@dataclass(frozen=True)
class ColorAdjustments:
    brightness: float = 0  # -100..100
    contrast: float = 0  # -100..100
    saturation: float = 0  # -100..100
    hue: float = 0  # -180..180 degrees

    def is_identity(self) -> bool:
        return not (self.brightness or self.contrast or self.saturation or self.hue)

    def validate(self) -> None:
        for name in ("brightness", "contrast", "saturation"):
            value = getattr(self, name)
            if not -100 <= value <= 100:
                raise ValueError(f"{name.capitalize()} must be between -100 and 100")
        if not -180 <= self.hue <= 180:
            raise ValueError("Hue must be between -180 and 180")

    def as_dict(self) -> dict:
        return {
            "brightness": self.brightness,
            "contrast": self.contrast,
            "saturation": self.saturation,
            "hue": self.hue,
        }


@dataclass
class Encoded:
    data: bytes
    format: str
    width: int
    height: int

    @property
    def mime_type(self) -> str:
        return FORMAT_MIME[self.format]

    @property
    def ext(self) -> str:
        return FORMAT_EXT[self.format]


# ----------------------------
# Load / encode
# ----------------------------
def is_svg(data: bytes) -> bool:
    head = data[:1024].lstrip()
    return (head.startswith(b"<?xml") or head.startswith(b"<svg")) and b"<svg" in data[:4096]


def _render_svg(data: bytes) -> bytes:
    # cairosvg pulls in libcairo; only load it for SVG uploads
    from cairosvg import svg2png

    return svg2png(bytestring=data)


def load_image(data: bytes) -> Image.Image:
    """Decodes raster bytes with Pillow; SVG is rasterized to PNG first."""
    if is_svg(data):
        try:
            data = _render_svg(data)
        except Exception as e:
            raise RuntimeError(f"Could not render SVG: {e}") from e

    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise RuntimeError(f"Could not decode image: {e}") from e
    return img


def source_format(img: Image.Image) -> str:
    fmt = SOURCE_ALIASES.get(img.format or "", img.format or "")
    return fmt if fmt in FORMAT_MIME else "PNG"


def resolve_format(name: str) -> str:
    fmt = FORMAT_ALIASES.get((name or "").strip().lower())
    if fmt is None:
        raise ValueError(f"Unsupported format: {name}")
    return fmt


def flatten(img: Image.Image, background=(255, 255, 255)) -> Image.Image:
    """Composite transparency onto a solid background; returns RGB."""
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        base = Image.new("RGB", rgba.size, background)
        base.paste(rgba, mask=rgba.getchannel("A"))
        return base
    if img.mode != "RGB":
        return img.convert("RGB")
    return img


def encode(img: Image.Image, fmt: str, quality: float = EXPORT_QUALITY, **options) -> Encoded:
    q = max(1, min(100, round(quality * 100)))
    out = img
    params = dict(options)

    if fmt in NO_ALPHA_FORMATS:
        out = flatten(img)
    elif fmt in ("PNG", "WEBP", "TIFF") and img.mode not in ("1", "L", "LA", "P", "RGB", "RGBA"):
        out = img.convert("RGBA" if "A" in img.getbands() else "RGB")

    if fmt in ("JPEG", "WEBP"):
        params.setdefault("quality", q)
    if fmt == "TIFF":
        params.setdefault("compression", "tiff_lzw")

    buf = io.BytesIO()
    try:
        out.save(buf, format=fmt, **params)
    except (OSError, ValueError, KeyError) as e:
        raise RuntimeError(f"Could not encode image as {fmt}: {e}") from e
    return Encoded(data=buf.getvalue(), format=fmt, width=out.width, height=out.height)


# ----------------------------
# Transforms
# ----------------------------
def flip(img: Image.Image, direction: str) -> Image.Image:
    if direction == "horizontal":
        return img.transpose(Image.Transpose.FLIP_LEFT_RIGHT)
    if direction == "vertical":
        return img.transpose(Image.Transpose.FLIP_TOP_BOTTOM)
    raise ValueError("Direction must be horizontal or vertical")


def rotate(img: Image.Image, degrees: int) -> Image.Image:
    """Clockwise rotation by a quarter turn multiple; 90/270 swap width and height."""
    try:
        return img.transpose(_ROTATE_TRANSPOSE[degrees])
    except KeyError:
        raise ValueError("Degrees must be 90, 180, or 270")


def _lut(fn: Callable[[int], float]) -> list:
    return [max(0, min(255, int(round(fn(i))))) for i in range(256)]


def _hue_matrix(degrees: float) -> tuple:
    # same coefficients as the CSS hue-rotate() filter
    rad = math.radians(degrees)
    c, s = math.cos(rad), math.sin(rad)
    return (
        0.213 + c * 0.787 - s * 0.213, 0.715 - c * 0.715 - s * 0.715, 0.072 - c * 0.072 + s * 0.928, 0,
        0.213 - c * 0.213 + s * 0.143, 0.715 + c * 0.285 + s * 0.140, 0.072 - c * 0.072 - s * 0.283, 0,
        0.213 - c * 0.213 - s * 0.787, 0.715 - c * 0.715 + s * 0.715, 0.072 + c * 0.928 + s * 0.072, 0,
    )


def adjust_colors(img: Image.Image, adjustments: ColorAdjustments) -> Image.Image:
    """
    Applies brightness, contrast, saturation and hue rotation in that order.
    Factors are 1 + value/100; contrast pivots around 128.
    Identity adjustments return the image untouched.
    """
    if adjustments.is_identity():
        return img

    alpha = None
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        alpha = rgba.getchannel("A")
        rgb = rgba.convert("RGB")
    else:
        rgb = img.convert("RGB")

    if adjustments.brightness:
        b = 1 + adjustments.brightness / 100
        rgb = rgb.point(_lut(lambda v: v * b) * 3)

    if adjustments.contrast:
        c = 1 + adjustments.contrast / 100
        rgb = rgb.point(_lut(lambda v: (v - 128) * c + 128) * 3)

    if adjustments.saturation:
        rgb = ImageEnhance.Color(rgb).enhance(1 + adjustments.saturation / 100)

    if adjustments.hue:
        rgb = rgb.convert("RGB", _hue_matrix(adjustments.hue))

    if alpha is not None:
        rgb.putalpha(alpha)
    return rgb


# ----------------------------
# Pipeline
# ----------------------------
def run_pipeline(
    data: bytes,
    transform: Callable[[Image.Image], Image.Image],
    output_format: Optional[str] = None,
    preview: bool = False,
) -> Encoded:
    img = load_image(data)
    fmt = resolve_format(output_format) if output_format else source_format(img)
    result = transform(img)
    quality = PREVIEW_QUALITY if preview else EXPORT_QUALITY
    logger.debug("pipeline %s -> %s (%dx%d, q=%.2f)", img.format, fmt, result.width, result.height, quality)
    return encode(result, fmt, quality)
