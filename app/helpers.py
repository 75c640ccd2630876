# app/helpers.py
import base64
import binascii
import re
from pathlib import Path
from typing import Tuple


BASE64_RE = re.compile(r"^[A-Za-z0-9+/]*={0,2}$")


def to_data_url(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def strip_data_url(value: str) -> str:
    """Return the base64 payload of a data URL, or the value unchanged."""
    value = (value or "").strip()
    if value.startswith("data:"):
        comma = value.find(",")
        if comma != -1:
            return value[comma + 1:]
    return value


def decode_base64(value: str) -> bytes:
    payload = "".join(strip_data_url(value).split())
    if not BASE64_RE.match(payload):
        raise ValueError("Invalid Base64 string format")
    try:
        return base64.b64decode(payload, validate=True)
    except binascii.Error:
        raise ValueError("Invalid Base64 string format")


def split_name(filename: str) -> Tuple[str, str]:
    """('photo.final', 'jpg') for 'photo.final.jpg'; ('photo', '') when there is no extension."""
    name = Path(filename or "").name
    if "." in name.lstrip("."):
        stem, ext = name.rsplit(".", 1)
        return stem, ext.lower()
    return name, ""


def derive_name(filename: str, suffix: str, ext: str) -> str:
    stem, _ = split_name(filename)
    return f"{safe_stem(stem)}{suffix}.{ext}"


def safe_stem(name: str) -> str:
    return "".join(c for c in name if c.isalnum() or c in ("-", "_", " ", ".")).strip() or "output"


def format_file_size(size: int) -> str:
    if size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    i = 0
    while size >= 1024 ** (i + 1) and i < len(units) - 1:
        i += 1
    value = round(size / (1024 ** i), 2)
    return f"{value:g} {units[i]}"


def compression_ratio(original: int, compressed: int) -> float:
    if original <= 0:
        return 0.0
    return (original - compressed) / original * 100
