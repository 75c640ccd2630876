# app/config.py
import os
from pathlib import Path


# ----------------------------
# Paths
# ----------------------------
BASE_DIR = Path(__file__).resolve().parent  # .../app
STATIC_DIR = BASE_DIR / "static"


# ----------------------------
# Upload limits (checked before any processing)
# ----------------------------
MB = 1024 * 1024

MAX_IMAGE_MB = int(os.environ.get("MAX_IMAGE_MB", "10"))
MAX_PDF_MB = int(os.environ.get("MAX_PDF_MB", "10"))
MAX_AUDIO_MB = int(os.environ.get("MAX_AUDIO_MB", "100"))
MAX_VIDEO_MB = int(os.environ.get("MAX_VIDEO_MB", "500"))

MAX_IMAGE_BYTES = MAX_IMAGE_MB * MB
MAX_PDF_BYTES = MAX_PDF_MB * MB
MAX_AUDIO_BYTES = MAX_AUDIO_MB * MB
MAX_VIDEO_BYTES = MAX_VIDEO_MB * MB


# ----------------------------
# Encoding
# ----------------------------
EXPORT_QUALITY = float(os.environ.get("EXPORT_QUALITY", "0.9"))
PREVIEW_QUALITY = float(os.environ.get("PREVIEW_QUALITY", "0.8"))

# largest bitmap a resize may produce
MAX_OUTPUT_MEGAPIXELS = int(os.environ.get("MAX_OUTPUT_MEGAPIXELS", "50"))
MAX_OUTPUT_PIXELS = MAX_OUTPUT_MEGAPIXELS * 1_000_000



# ----------------------------
# Logging / dev server
# ----------------------------
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "8000"))
