"""
Tests for PDF operations and endpoints.
"""

import io
import json

import pytest
from PyPDF2 import PdfReader

from app.pdf_ops import base64_to_pdf, page_count, parse_page_ranges, parse_range_segments

from conftest import decode_data_url, make_noise_image, make_pdf


def pdf_upload(data, name="doc.pdf"):
    return ("file", (name, data, "application/pdf"))


class TestPageRanges:

    def test_parse_page_ranges_flattens_and_sorts(self):
        assert parse_page_ranges("7-9, 1-3,5,2", 10) == [1, 2, 3, 5, 7, 8, 9]

    def test_parse_page_ranges_ignores_out_of_range(self):
        assert parse_page_ranges("0,4-2,9-12,abc,3", 10) == [3]

    def test_segments(self):
        segments = parse_range_segments("1-3,5", 10)
        assert segments == [("1-3", [0, 1, 2]), ("5", [4])]

    @pytest.mark.parametrize("rng", ["11", "9-11", "3-1", "0", "a-b", ""])
    def test_segments_reject_bad_input(self, rng):
        with pytest.raises(ValueError):
            parse_range_segments(rng, 10)


class TestMerge:

    def test_page_count_is_sum_of_inputs(self, client):
        files = [
            ("files", ("a.pdf", make_pdf(1), "application/pdf")),
            ("files", ("b.pdf", make_pdf(2), "application/pdf")),
            ("files", ("c.pdf", make_pdf(3), "application/pdf")),
        ]
        r = client.post("/api/pdf/merge", files=files)
        assert r.status_code == 200
        body = r.json()
        mime, data = decode_data_url(body["dataUrl"])
        assert mime == "application/pdf"
        assert page_count(data) == 6
        assert body["pageCount"] == 6
        assert body["fileSize"] == len(data)
        assert body["fileName"].startswith("merged-") and body["fileName"].endswith(".pdf")

    def test_single_file_rejected(self, client):
        r = client.post("/api/pdf/merge", files=[("files", ("a.pdf", make_pdf(1), "application/pdf"))])
        assert r.status_code == 400
        assert r.json()["error"] == "At least 2 PDF files are required for merging"

    def test_no_files_rejected(self, client):
        r = client.post("/api/pdf/merge")
        assert r.status_code == 400

    def test_non_pdf_rejected(self, client):
        files = [
            ("files", ("a.pdf", make_pdf(1), "application/pdf")),
            ("files", ("b.png", b"\x89PNG", "image/png")),
        ]
        r = client.post("/api/pdf/merge", files=files)
        assert r.status_code == 400
        assert r.json()["error"] == "File must be a PDF"

    def test_corrupt_pdf_is_500(self, client):
        files = [
            ("files", ("a.pdf", make_pdf(1), "application/pdf")),
            ("files", ("b.pdf", b"%PDF-1.4 garbage", "application/pdf")),
        ]
        r = client.post("/api/pdf/merge", files=files)
        assert r.status_code == 500
        assert r.json() == {"success": False, "error": "Failed to merge PDF files"}


class TestSplit:

    def test_one_document_per_segment(self, client):
        r = client.post(
            "/api/pdf/split",
            files=[pdf_upload(make_pdf(10), "report.pdf")],
            data={"pageRanges": json.dumps(["1-3,5"])},
        )
        assert r.status_code == 200
        parts = r.json()["splitPdfs"]
        assert len(parts) == 2
        assert [page_count(decode_data_url(p["dataUrl"])[1]) for p in parts] == [3, 1]
        assert [p["pageCount"] for p in parts] == [3, 1]
        assert [p["pageRange"] for p in parts] == ["1-3", "5"]
        assert [p["fileName"] for p in parts] == ["report-part-1.pdf", "report-part-2.pdf"]

    def test_multiple_range_strings(self, client):
        r = client.post(
            "/api/pdf/split",
            files=[pdf_upload(make_pdf(4))],
            data={"pageRanges": json.dumps(["1", "2-4"])},
        )
        assert [p["pageCount"] for p in r.json()["splitPdfs"]] == [1, 3]

    def test_plain_string_accepted(self, client):
        r = client.post("/api/pdf/split", files=[pdf_upload(make_pdf(4))], data={"pageRanges": "2-3"})
        assert r.status_code == 200
        assert r.json()["splitPdfs"][0]["pageCount"] == 2

    def test_json_string_accepted(self, client):
        r = client.post("/api/pdf/split", files=[pdf_upload(make_pdf(4))], data={"pageRanges": json.dumps("1-3")})
        assert r.status_code == 200
        parts = r.json()["splitPdfs"]
        assert [p["pageRange"] for p in parts] == ["1-3"]
        assert parts[0]["pageCount"] == 3

    def test_range_beyond_document(self, client):
        r = client.post("/api/pdf/split", files=[pdf_upload(make_pdf(3))], data={"pageRanges": json.dumps(["2-5"])})
        assert r.status_code == 400
        assert "exceeds document length" in r.json()["error"]

    @pytest.mark.parametrize("value", [None, "[]", "   "])
    def test_missing_ranges(self, client, value):
        data = {} if value is None else {"pageRanges": value}
        r = client.post("/api/pdf/split", files=[pdf_upload(make_pdf(3))], data=data)
        assert r.status_code == 400
        assert r.json()["error"] == "Page ranges are required"


class TestCompress:

    def test_blank_pdf_never_grows(self, client):
        original = make_pdf(3)
        r = client.post("/api/pdf/compress", files=[pdf_upload(original)], data={"quality": "0.5"})
        assert r.status_code == 200
        body = r.json()
        _, data = decode_data_url(body["dataUrl"])
        assert body["originalSize"] == len(original)
        assert body["compressedSize"] == len(data) <= len(original)
        assert body["compressionRatio"] >= 0
        assert page_count(data) == 3
        assert body["fileName"] == "doc-compressed.pdf"

    def test_images_are_recompressed(self, client):
        buf = io.BytesIO()
        make_noise_image().save(buf, format="PDF", quality=95)
        original = buf.getvalue()

        r = client.post("/api/pdf/compress", files=[pdf_upload(original)], data={"quality": "0.1"})
        assert r.status_code == 200
        body = r.json()
        assert body["compressedSize"] < body["originalSize"]
        assert body["compressionRatio"] > 0
        assert len(PdfReader(io.BytesIO(decode_data_url(body["dataUrl"])[1])).pages) == 1

    def test_quality_out_of_range(self, client):
        r = client.post("/api/pdf/compress", files=[pdf_upload(make_pdf(1))], data={"quality": "0"})
        assert r.status_code == 400
        assert r.json()["error"] == "Quality must be between 0.1 and 1.0"


class TestBase64:

    def test_round_trip_is_byte_identical(self, client):
        original = make_pdf(2)
        r = client.post("/api/pdf/to-base64", files=[pdf_upload(original, "a.pdf")])
        assert r.status_code == 200
        body = r.json()
        assert body["base64"].startswith("data:application/pdf;base64,")
        assert body["fileName"] == "a.pdf"
        assert body["fileSize"] == len(original)
        assert body["mimeType"] == "application/pdf"

        back = client.post("/api/pdf/from-base64", json={"base64": body["base64"]})
        assert back.status_code == 200
        _, data = decode_data_url(back.json()["dataUrl"])
        assert data == original
        assert back.json()["fileSize"] == len(original)

    def test_raw_base64_without_prefix(self):
        original = make_pdf(1)
        import base64

        assert base64_to_pdf(base64.b64encode(original).decode()) == original

    def test_to_base64_rejects_non_pdf(self, client):
        r = client.post("/api/pdf/to-base64", files=[("file", ("a.png", b"\x89PNG", "image/png"))])
        assert r.status_code == 400
        assert r.json()["error"] == "File must be a PDF"

    @pytest.mark.parametrize("value,message", [
        ("", "No Base64 string provided"),
        ("not base64!!", "Invalid Base64 string format"),
        ("aGVsbG8gd29ybGQ=", "Base64 string does not contain valid PDF data"),
    ])
    def test_from_base64_rejects(self, client, value, message):
        r = client.post("/api/pdf/from-base64", json={"base64": value})
        assert r.status_code == 400
        assert r.json()["error"] == message
