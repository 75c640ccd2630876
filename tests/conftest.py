import base64
import io
import random

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from PyPDF2 import PdfWriter

from app.main import app


@pytest.fixture
def client():
    return TestClient(app)


def make_image(width=40, height=20, fmt="PNG", mode="RGB", color=None) -> bytes:
    """Image whose pixels all differ, so geometric transforms are observable."""
    if color is not None:
        img = Image.new(mode, (width, height), color)
    else:
        img = Image.new("RGB", (width, height))
        img.putdata([((x * 7) % 256, (y * 11) % 256, (x + y) % 256) for y in range(height) for x in range(width)])
        if mode != "RGB":
            img = img.convert(mode)
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


def make_noise_image(width=300, height=300, seed=0) -> Image.Image:
    rnd = random.Random(seed)
    data = bytes(rnd.getrandbits(8) for _ in range(width * height * 3))
    return Image.frombytes("RGB", (width, height), data)


def make_pdf(pages=1) -> bytes:
    w = PdfWriter()
    for _ in range(pages):
        w.add_blank_page(width=200, height=200)
    buf = io.BytesIO()
    w.write(buf)
    return buf.getvalue()


def decode_data_url(url: str):
    header, payload = url.split(",", 1)
    assert header.startswith("data:") and header.endswith(";base64")
    return header[5:-7], base64.b64decode(payload)


def open_data_url(url: str) -> Image.Image:
    _, data = decode_data_url(url)
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


@pytest.fixture
def png_bytes():
    return make_image()


@pytest.fixture
def jpeg_bytes():
    return make_image(fmt="JPEG")
