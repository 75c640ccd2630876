# app/pdf_ops.py
import io
import logging
import time
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import fitz  # PyMuPDF
from PIL import Image, UnidentifiedImageError
from PyPDF2 import PdfReader, PdfWriter

from app.config import MAX_PDF_BYTES, MAX_PDF_MB
from app.helpers import decode_base64, derive_name, split_name, safe_stem, to_data_url
from app.uploads import UploadedFile

logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"
PDF_HEADER = b"%PDF"


@dataclass
class PdfResult:
    data: bytes
    file_name: str
    page_count: int


@dataclass
class SplitPart:
    data: bytes
    file_name: str
    page_range: str
    page_count: int


# ----------------------------
# Reading / writing
# ----------------------------
def read_pdf(file: UploadedFile) -> PdfReader:
    try:
        reader = PdfReader(io.BytesIO(file.data))
        pages = len(reader.pages)
    except Exception as e:
        raise RuntimeError(f"Could not read PDF {file.name}: {e}") from e
    if pages == 0:
        raise ValueError(f"PDF {file.name} has 0 pages")
    return reader


def write_pdf(writer: PdfWriter) -> bytes:
    buf = io.BytesIO()
    writer.write(buf)
    return buf.getvalue()


def page_count(data: bytes) -> int:
    return len(PdfReader(io.BytesIO(data)).pages)


# ----------------------------
# Page ranges
# ----------------------------
def parse_page_ranges(rng: str, total_pages: int) -> List[int]:
    """
    Flat, de-duplicated, sorted 1-based page list for "1-3,5,7-9".
    Entries that are malformed or outside 1..total_pages are ignored.
    """
    out = set()
    for part in (rng or "").split(","):
        part = part.strip()
        if not part:
            continue
        try:
            if "-" in part:
                a, b = (int(x) for x in part.split("-", 1))
                if 1 <= a <= b <= total_pages:
                    out.update(range(a, b + 1))
            else:
                p = int(part)
                if 1 <= p <= total_pages:
                    out.add(p)
        except ValueError:
            continue
    return sorted(out)


def parse_range_segments(rng: str, total_pages: int) -> List[Tuple[str, List[int]]]:
    """
    Strict parse: one (label, zero-based page indexes) per comma-separated segment.
    Raises ValueError on malformed, reversed or out-of-range segments.
    """
    segments = []
    for part in (rng or "").replace(" ", "").split(","):
        if not part:
            continue
        try:
            if "-" in part:
                a, b = (int(x) for x in part.split("-", 1))
            else:
                a = b = int(part)
        except ValueError:
            raise ValueError(f"Invalid page range: {part}")
        if a <= 0 or b <= 0:
            raise ValueError("Pages start from 1")
        if a > b:
            raise ValueError(f"Invalid page range: {part}")
        if b > total_pages:
            raise ValueError(f"Page range {part} exceeds document length ({total_pages} pages)")
        segments.append((part, list(range(a - 1, b))))
    if not segments:
        raise ValueError("Range is empty")
    return segments


# ----------------------------
# Merge / split
# ----------------------------
def merge_pdfs(files: Sequence[UploadedFile]) -> PdfResult:
    if len(files) < 2:
        raise ValueError("At least 2 PDF files are required for merging")

    writer = PdfWriter()
    for f in files:
        reader = read_pdf(f)
        for page in reader.pages:
            writer.add_page(page)

    total = len(writer.pages)
    data = write_pdf(writer)
    logger.debug("merged %d files into %d pages", len(files), total)
    return PdfResult(data=data, file_name=f"merged-{int(time.time() * 1000)}.pdf", page_count=total)


def split_pdf(file: UploadedFile, page_ranges: Sequence[str]) -> List[SplitPart]:
    if not page_ranges:
        raise ValueError("Page ranges are required")

    reader = read_pdf(file)
    total = len(reader.pages)

    segments = []
    for rng in page_ranges:
        if not isinstance(rng, str):
            raise ValueError("Page ranges must be strings")
        segments.extend(parse_range_segments(rng, total))

    stem = safe_stem(split_name(file.name)[0])
    parts = []
    for n, (label, indexes) in enumerate(segments, start=1):
        w = PdfWriter()
        for idx in indexes:
            w.add_page(reader.pages[idx])
        parts.append(SplitPart(
            data=write_pdf(w),
            file_name=f"{stem}-part-{n}.pdf",
            page_range=label,
            page_count=len(indexes),
        ))
    return parts


# ----------------------------
# Compress
# ----------------------------
def _recompress_image(raw: bytes, quality: float) -> bytes:
    img = Image.open(io.BytesIO(raw))
    if img.mode not in ("RGB", "L"):
        img = img.convert("RGB")
    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=max(1, round(quality * 100)), optimize=True)
    return buf.getvalue()


def compress_pdf(file: UploadedFile, quality: float = 0.8) -> PdfResult:
    """
    Re-encodes embedded raster images as JPEG at the given quality, then
    garbage-collects and deflates the document. Never returns a larger file.
    """
    if not 0.1 <= quality <= 1.0:
        raise ValueError("Quality must be between 0.1 and 1.0")

    try:
        doc = fitz.open(stream=file.data, filetype="pdf")
    except Exception as e:
        raise RuntimeError(f"Could not open PDF {file.name}: {e}") from e

    try:
        pages = doc.page_count
        if pages == 0:
            raise ValueError(f"PDF {file.name} has 0 pages")

        seen = set()
        for page in doc:
            for info in page.get_images(full=True):
                xref, smask = info[0], info[1]
                # soft-masked images would lose transparency as JPEG
                if xref in seen or smask:
                    continue
                seen.add(xref)
                extracted = doc.extract_image(xref)
                if not extracted:
                    continue
                try:
                    smaller = _recompress_image(extracted["image"], quality)
                except (UnidentifiedImageError, OSError) as e:
                    logger.debug("skipping image xref=%d: %s", xref, e)
                    continue
                if len(smaller) < len(extracted["image"]):
                    page.replace_image(xref, stream=smaller)

        out = doc.tobytes(garbage=4, deflate=True, clean=True)
    except ValueError:
        raise
    except Exception as e:
        raise RuntimeError(f"Compression failed: {e}") from e
    finally:
        doc.close()

    if len(out) >= len(file.data):
        out = file.data
    return PdfResult(data=out, file_name=derive_name(file.name, "-compressed", "pdf"), page_count=pages)


# ----------------------------
# Base64
# ----------------------------
def pdf_to_base64(file: UploadedFile) -> str:
    return to_data_url(file.data, PDF_MIME)


def base64_to_pdf(value: str) -> bytes:
    if not value or not value.strip():
        raise ValueError("No Base64 string provided")
    data = decode_base64(value)
    if data[:4] != PDF_HEADER:
        raise ValueError("Base64 string does not contain valid PDF data")
    if len(data) > MAX_PDF_BYTES:
        raise ValueError(f"PDF file size must be less than {MAX_PDF_MB}MB")
    return data
