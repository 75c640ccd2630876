# app/uploads.py
"""
Upload boundary: declared MIME type and size checks, and reading an
UploadFile into memory without ever holding more than the limit.
"""
import mimetypes
from dataclasses import dataclass
from typing import FrozenSet, Optional

from fastapi import HTTPException, UploadFile

from app.config import (
    MAX_AUDIO_BYTES,
    MAX_AUDIO_MB,
    MAX_IMAGE_BYTES,
    MAX_IMAGE_MB,
    MAX_PDF_BYTES,
    MAX_PDF_MB,
    MAX_VIDEO_BYTES,
    MAX_VIDEO_MB,
)

CHUNK_SIZE = 1024 * 1024  # 1MB chunks

# Some clients label everything this way; fall back to the filename then.
GENERIC_MIME = {"", "application/octet-stream"}


@dataclass(frozen=True)
class FileKind:
    label: str
    mime_types: FrozenSet[str]
    max_bytes: int
    max_mb: int
    type_error: str

    @property
    def size_error(self) -> str:
        return f"File size must be less than {self.max_mb}MB"


IMAGE = FileKind(
    label="image",
    mime_types=frozenset({
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/webp",
        "image/gif",
        "image/bmp",
        "image/tiff",
        "image/svg+xml",
    }),
    max_bytes=MAX_IMAGE_BYTES,
    max_mb=MAX_IMAGE_MB,
    type_error="Unsupported file type. Please upload a valid image file.",
)

PDF = FileKind(
    label="PDF",
    mime_types=frozenset({"application/pdf"}),
    max_bytes=MAX_PDF_BYTES,
    max_mb=MAX_PDF_MB,
    type_error="File must be a PDF",
)

AUDIO = FileKind(
    label="audio",
    mime_types=frozenset({
        "audio/mpeg",
        "audio/mp3",
        "audio/wav",
        "audio/flac",
        "audio/aac",
        "audio/ogg",
        "audio/m4a",
        "audio/wma",
        "audio/aiff",
        "audio/x-m4a",
        "audio/vnd.wave",
    }),
    max_bytes=MAX_AUDIO_BYTES,
    max_mb=MAX_AUDIO_MB,
    type_error="Unsupported file type. Please upload a valid audio file.",
)

VIDEO = FileKind(
    label="video",
    mime_types=frozenset({
        "video/mp4",
        "video/avi",
        "video/quicktime",
        "video/x-msvideo",
        "video/webm",
        "video/x-matroska",
        "video/x-flv",
        "video/x-ms-wmv",
        "video/x-m4v",
    }),
    max_bytes=MAX_VIDEO_BYTES,
    max_mb=MAX_VIDEO_MB,
    type_error="Unsupported file type. Please upload a valid video file.",
)


@dataclass
class UploadedFile:
    name: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


def resolve_content_type(content_type: Optional[str], filename: Optional[str]) -> str:
    ct = (content_type or "").split(";", 1)[0].strip().lower()
    if ct in GENERIC_MIME and filename:
        guessed, _ = mimetypes.guess_type(filename)
        if guessed:
            return guessed.lower()
    return ct


def validate_file(kind: FileKind, content_type: str, size: int) -> None:
    if content_type not in kind.mime_types:
        raise HTTPException(400, kind.type_error)
    if size > kind.max_bytes:
        raise HTTPException(400, kind.size_error)


def validate_image_file(content_type: str, size: int) -> None:
    validate_file(IMAGE, content_type, size)


def validate_pdf_file(content_type: str, size: int) -> None:
    validate_file(PDF, content_type, size)


def validate_audio_file(content_type: str, size: int) -> None:
    validate_file(AUDIO, content_type, size)


def validate_video_file(content_type: str, size: int) -> None:
    validate_file(VIDEO, content_type, size)


async def read_upload_limited(file: UploadFile, max_bytes: int, too_large: str) -> bytes:
    """
    Reads UploadFile into memory and enforces max size while reading.
    Stops as soon as the limit is crossed.
    """
    chunks = []
    total = 0
    try:
        while True:
            chunk = await file.read(CHUNK_SIZE)
            if not chunk:
                break
            total += len(chunk)
            if total > max_bytes:
                raise HTTPException(400, too_large)
            chunks.append(chunk)
    finally:
        await file.close()
    return b"".join(chunks)


async def read_validated(file: Optional[UploadFile], kind: FileKind, missing: str) -> UploadedFile:
    """Type check, then size check while reading; nothing is processed before both pass."""
    if file is None or not file.filename:
        raise HTTPException(400, missing)

    content_type = resolve_content_type(file.content_type, file.filename)
    # declared size when the server already knows it, else enforced while reading
    validate_file(kind, content_type, file.size or 0)

    data = await read_upload_limited(file, kind.max_bytes, kind.size_error)
    if not data:
        raise HTTPException(400, f"Uploaded {kind.label} file is empty")
    return UploadedFile(name=file.filename, content_type=content_type, data=data)
