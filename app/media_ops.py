# app/media_ops.py
"""
Audio and video "conversion".

No transcoding happens here: the output bytes are an unmodified copy of the
input, relabelled with the target format's MIME type and extension.
"""
from dataclasses import dataclass

from app.helpers import derive_name, split_name
from app.uploads import UploadedFile

AUDIO_FORMATS = ("mp3", "wav", "flac", "aac", "ogg", "m4a", "wma", "aiff")
VIDEO_FORMATS = ("mp4", "avi", "mov", "webm", "mkv", "flv", "wmv", "m4v")


@dataclass
class MediaResult:
    data: bytes
    mime_type: str
    file_name: str
    original_format: str
    new_format: str


def _convert(file: UploadedFile, target_format: str, supported, media: str) -> MediaResult:
    fmt = (target_format or "").strip().lower()
    if fmt not in supported:
        raise ValueError(f"Unsupported format. Supported formats: {', '.join(supported)}")
    return MediaResult(
        data=bytes(file.data),
        mime_type=f"{media}/{fmt}",
        file_name=derive_name(file.name, "", fmt),
        original_format=split_name(file.name)[1],
        new_format=fmt,
    )


def convert_audio(file: UploadedFile, target_format: str) -> MediaResult:
    return _convert(file, target_format, AUDIO_FORMATS, "audio")


def convert_video(file: UploadedFile, target_format: str) -> MediaResult:
    return _convert(file, target_format, VIDEO_FORMATS, "video")
