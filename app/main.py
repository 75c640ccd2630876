# app/main.py
import asyncio
import json
import logging
from typing import List, Optional

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from app import image_ops, media_ops, pdf_ops
from app.config import (
    HOST,
    LOG_LEVEL,
    MAX_AUDIO_MB,
    MAX_IMAGE_MB,
    MAX_PDF_MB,
    MAX_VIDEO_MB,
    PORT,
    STATIC_DIR,
)
from app.helpers import compression_ratio, to_data_url
from app.transforms import ColorAdjustments
from app.uploads import AUDIO, IMAGE, PDF, VIDEO, read_validated


# ----------------------------
# Logging
# ----------------------------
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# ----------------------------
# App
# ----------------------------
app = FastAPI(title="File Tools")
app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")

TOOLS = {
    "pdf": ["merge", "split", "compress", "to-base64", "from-base64"],
    "image": [
        "compress",
        "resize",
        "crop",
        "rotate",
        "flip",
        "convert",
        "color-adjust",
        "background-removal",
    ],
    "audio": ["convert"],
    "video": ["convert"],
}


def _truthy(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


# ----------------------------
# Error responses
# ----------------------------
@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    msg = "Invalid request"
    if errors:
        field = ".".join(str(p) for p in errors[0].get("loc", ()) if p not in ("body", "query"))
        msg = f"Invalid value for {field}: {errors[0].get('msg')}" if field else errors[0].get("msg", msg)
    return JSONResponse(status_code=400, content={"success": False, "error": msg})


@app.exception_handler(Exception)
async def unexpected_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})


async def run_op(failure: str, fn, *args, **kwargs):
    """
    Runs a blocking operation in a worker thread so the event loop stays free.
    ValueError -> 400 with its message; RuntimeError -> logged, 500 with `failure`.
    """
    try:
        return await asyncio.to_thread(fn, *args, **kwargs)
    except ValueError as e:
        raise HTTPException(400, str(e))
    except RuntimeError:
        logger.exception("%s (%s)", failure, getattr(fn, "__name__", fn))
        raise HTTPException(500, failure)


# ----------------------------
# Static HTML serving
# ----------------------------
def serve_static_html(filename: str):
    p = STATIC_DIR / filename
    if not p.exists():
        raise HTTPException(404, f"{filename} not found")
    return FileResponse(str(p), media_type="text/html")


# ----------------------------
# Health
# ----------------------------
@app.get("/health")
def health():
    return {
        "ok": True,
        "limits_mb": {
            "image": MAX_IMAGE_MB,
            "pdf": MAX_PDF_MB,
            "audio": MAX_AUDIO_MB,
            "video": MAX_VIDEO_MB,
        },
    }


# ----------------------------
# UI Routes
# ----------------------------
@app.get("/")
def home():
    return serve_static_html("index.html")


@app.get("/api/tools")
def list_tools():
    return {"tools": TOOLS}


@app.get("/tool/{group}/{name}")
def tool_page(group: str, name: str):
    if name not in TOOLS.get(group, []):
        raise HTTPException(404, f"Unknown tool: {group}/{name}")
    return serve_static_html("tool.html")


# ----------------------------
# Image APIs
# ----------------------------
@app.post("/api/image/compress")
async def image_compress(file: Optional[UploadFile] = File(None), quality: float = Form(0.8)):
    upload = await read_validated(file, IMAGE, "No image file provided")
    result = await run_op("Failed to compress image", image_ops.compress_image, upload, quality)

    compressed = len(result.data)
    return {
        "success": True,
        "dataUrl": to_data_url(result.data, result.mime_type),
        "fileName": result.file_name,
        "originalSize": upload.size,
        "compressedSize": compressed,
        "compressionRatio": compression_ratio(upload.size, compressed),
    }


@app.post("/api/image/resize")
async def image_resize(
    file: Optional[UploadFile] = File(None),
    width: int = Form(...),
    height: int = Form(...),
    maintain_aspect_ratio: str = Form("false", alias="maintainAspectRatio"),
):
    upload = await read_validated(file, IMAGE, "No image file provided")
    result = await run_op(
        "Failed to resize image",
        image_ops.resize_image,
        upload,
        width,
        height,
        _truthy(maintain_aspect_ratio),
    )
    return {
        "success": True,
        "dataUrl": to_data_url(result.data, result.mime_type),
        "fileName": result.file_name,
        "originalDimensions": {
            "width": result.extra["original_width"],
            "height": result.extra["original_height"],
        },
        "newDimensions": {"width": result.width, "height": result.height},
    }


@app.post("/api/image/crop")
async def image_crop(
    file: Optional[UploadFile] = File(None),
    x: int = Form(...),
    y: int = Form(...),
    width: int = Form(...),
    height: int = Form(...),
):
    upload = await read_validated(file, IMAGE, "No image file provided")
    result = await run_op("Failed to crop image", image_ops.crop_image, upload, x, y, width, height)
    return {
        "success": True,
        "dataUrl": to_data_url(result.data, result.mime_type),
        "fileName": result.file_name,
        "cropArea": {"x": x, "y": y, "width": width, "height": height},
    }


@app.post("/api/image/rotate")
async def image_rotate(
    file: Optional[UploadFile] = File(None),
    degrees: int = Form(90),
    preview: str = Form("false"),
    output_format: Optional[str] = Form(None, alias="outputFormat"),
):
    upload = await read_validated(file, IMAGE, "No image file provided")
    result = await run_op(
        "Failed to rotate image",
        image_ops.rotate_image,
        upload,
        degrees,
        output_format,
        _truthy(preview),
    )
    return {
        "success": True,
        "dataUrl": to_data_url(result.data, result.mime_type),
        "fileName": result.file_name,
        "degrees": degrees,
        "dimensions": {"width": result.width, "height": result.height},
    }


@app.post("/api/image/flip")
async def image_flip(
    file: Optional[UploadFile] = File(None),
    direction: str = Form(""),
    preview: str = Form("false"),
    output_format: Optional[str] = Form(None, alias="outputFormat"),
):
    upload = await read_validated(file, IMAGE, "No image file provided")
    result = await run_op(
        "Failed to flip image",
        image_ops.flip_image,
        upload,
        direction,
        output_format,
        _truthy(preview),
    )
    return {
        "success": True,
        "dataUrl": to_data_url(result.data, result.mime_type),
        "fileName": result.file_name,
        "direction": direction,
    }


@app.post("/api/image/color-adjust")
async def image_color_adjust(
    file: Optional[UploadFile] = File(None),
    brightness: float = Form(0),
    contrast: float = Form(0),
    saturation: float = Form(0),
    hue: float = Form(0),
    preview: str = Form("false"),
    output_format: Optional[str] = Form(None, alias="outputFormat"),
):
    upload = await read_validated(file, IMAGE, "No image file provided")
    adjustments = ColorAdjustments(brightness=brightness, contrast=contrast, saturation=saturation, hue=hue)
    result = await run_op(
        "Failed to adjust image colors",
        image_ops.adjust_image_colors,
        upload,
        adjustments,
        output_format,
        _truthy(preview),
    )
    return {
        "success": True,
        "dataUrl": to_data_url(result.data, result.mime_type),
        "fileName": result.file_name,
        "adjustments": adjustments.as_dict(),
    }


@app.post("/api/image/convert")
async def image_convert(file: Optional[UploadFile] = File(None), target_format: str = Form("", alias="format")):
    upload = await read_validated(file, IMAGE, "No image file provided")
    result = await run_op("Failed to convert image", image_ops.convert_image, upload, target_format)
    return {
        "success": True,
        "dataUrl": to_data_url(result.data, result.mime_type),
        "fileName": result.file_name,
        "originalFormat": result.extra["original_format"],
        "newFormat": result.extra["new_format"],
    }


@app.post("/api/image/background-removal")
async def image_background_removal(file: Optional[UploadFile] = File(None)):
    upload = await read_validated(file, IMAGE, "No image file provided")
    result = await run_op("Failed to remove background", image_ops.remove_background, upload)
    return {
        "success": True,
        "dataUrl": to_data_url(result.data, result.mime_type),
        "fileName": result.file_name,
    }


# ----------------------------
# PDF APIs
# ----------------------------
@app.post("/api/pdf/merge")
async def pdf_merge(files: Optional[List[UploadFile]] = File(None)):
    files = [f for f in (files or []) if f.filename]
    if len(files) < 2:
        raise HTTPException(400, "At least 2 PDF files are required for merging")

    uploads = [await read_validated(f, PDF, "No PDF file provided") for f in files]
    result = await run_op("Failed to merge PDF files", pdf_ops.merge_pdfs, uploads)
    return {
        "success": True,
        "dataUrl": to_data_url(result.data, pdf_ops.PDF_MIME),
        "fileName": result.file_name,
        "fileSize": len(result.data),
        "pageCount": result.page_count,
    }


def _page_ranges_field(raw: Optional[str]) -> List:
    """JSON array of range strings; a JSON string or bare non-JSON value is one range string."""
    if raw is None or not raw.strip():
        raise HTTPException(400, "Page ranges are required")
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        value = [raw]
    if isinstance(value, str):
        value = [value]
    elif not isinstance(value, list):
        value = [raw]
    if not value:
        raise HTTPException(400, "Page ranges are required")
    return value


@app.post("/api/pdf/split")
async def pdf_split(file: Optional[UploadFile] = File(None), page_ranges: Optional[str] = Form(None, alias="pageRanges")):
    upload = await read_validated(file, PDF, "No PDF file provided")
    ranges = _page_ranges_field(page_ranges)
    parts = await run_op("Failed to split PDF file", pdf_ops.split_pdf, upload, ranges)
    return {
        "success": True,
        "splitPdfs": [
            {
                "dataUrl": to_data_url(p.data, pdf_ops.PDF_MIME),
                "fileName": p.file_name,
                "pageRange": p.page_range,
                "pageCount": p.page_count,
            }
            for p in parts
        ],
    }


@app.post("/api/pdf/compress")
async def pdf_compress(file: Optional[UploadFile] = File(None), quality: float = Form(0.8)):
    upload = await read_validated(file, PDF, "No PDF file provided")
    result = await run_op("Failed to compress PDF file", pdf_ops.compress_pdf, upload, quality)

    compressed = len(result.data)
    return {
        "success": True,
        "dataUrl": to_data_url(result.data, pdf_ops.PDF_MIME),
        "fileName": result.file_name,
        "originalSize": upload.size,
        "compressedSize": compressed,
        "compressionRatio": compression_ratio(upload.size, compressed),
    }


@app.post("/api/pdf/to-base64")
async def pdf_to_base64(file: Optional[UploadFile] = File(None)):
    upload = await read_validated(file, PDF, "No file provided")
    encoded = await run_op("Failed to convert PDF to Base64", pdf_ops.pdf_to_base64, upload)
    return {
        "success": True,
        "base64": encoded,
        "fileName": upload.name,
        "fileSize": upload.size,
        "mimeType": pdf_ops.PDF_MIME,
    }


class Base64Payload(BaseModel):
    base64: Optional[str] = None


@app.post("/api/pdf/from-base64")
async def pdf_from_base64(payload: Base64Payload):
    data = await run_op("Failed to convert Base64 to PDF", pdf_ops.base64_to_pdf, payload.base64 or "")
    return {
        "success": True,
        "dataUrl": to_data_url(data, pdf_ops.PDF_MIME),
        "fileSize": len(data),
        "mimeType": pdf_ops.PDF_MIME,
    }


# ----------------------------
# Audio / Video APIs
# ----------------------------
@app.post("/api/audio/convert")
async def audio_convert(file: Optional[UploadFile] = File(None), target_format: str = Form("", alias="targetFormat")):
    upload = await read_validated(file, AUDIO, "No audio file provided")
    result = await run_op("Failed to convert audio", media_ops.convert_audio, upload, target_format)
    return _media_response(result)


@app.post("/api/video/convert")
async def video_convert(file: Optional[UploadFile] = File(None), target_format: str = Form("", alias="targetFormat")):
    upload = await read_validated(file, VIDEO, "No video file provided")
    result = await run_op("Failed to convert video", media_ops.convert_video, upload, target_format)
    return _media_response(result)


def _media_response(result: media_ops.MediaResult) -> dict:
    return {
        "success": True,
        "dataUrl": to_data_url(result.data, result.mime_type),
        "fileName": result.file_name,
        "originalFormat": result.original_format,
        "newFormat": result.new_format,
    }


def run() -> None:
    """Development server on HOST:PORT (default 0.0.0.0:8000)."""
    import uvicorn

    uvicorn.run("app.main:app", host=HOST, port=PORT)
