"""Tests for the multipart encoder and data-URI attachment decoding."""
import base64
import re

from genproxy.services.generation import multipart
from genproxy.services.generation.base import MultipartPart

BARE_LF = re.compile(rb"(?<!\r)\n")


def _data_uri(mime: str, raw: bytes) -> str:
    return f"data:{mime};base64,{base64.b64encode(raw).decode('ascii')}"


class TestEncode:
    def test_exact_bytes(self):
        part = MultipartPart(name="image", content=b"\x89PNG", filename="image_0.png", content_type="image/png")
        boundary, body = multipart.encode({"model": "m"}, [part], boundary="XYZ")
        assert boundary == "XYZ"
        assert body == (
            b'--XYZ\r\nContent-Disposition: form-data; name="model"\r\n\r\nm\r\n'
            b'--XYZ\r\nContent-Disposition: form-data; name="image"; filename="image_0.png"\r\n'
            b"Content-Type: image/png\r\n\r\n\x89PNG\r\n"
            b"--XYZ--\r\n"
        )

    def test_fields_keep_order_and_skip_none(self):
        _, body = multipart.encode({"model": "a", "prompt": None, "size": "16:9"}, boundary="B")
        assert b'name="prompt"' not in body
        assert body.index(b'name="model"') < body.index(b'name="size"')

    def test_ends_with_closing_delimiter(self):
        boundary, body = multipart.encode({"model": "m"})
        assert body.endswith(b"--" + boundary.encode() + b"--\r\n")

    def test_every_line_break_is_crlf(self):
        fields = {"model": "m", "prompt": "line one\nline two\r\nline three\rfour", "size": "1:1"}
        part = MultipartPart(name="image", content=b"abc\r\ndef", filename="a.png", content_type="image/png")
        _, body = multipart.encode(fields, [part])
        assert BARE_LF.search(body) is None
        assert b"line one\r\nline two\r\nline three\r\nfour\r\n" in body

    def test_binary_payload_is_untouched(self):
        raw = bytes(range(256)) * 4
        part = MultipartPart(name="image", content=raw, filename="x.bin", content_type="application/octet-stream")
        _, body = multipart.encode({}, [part], boundary="B")
        assert b"\r\n\r\n" + raw + b"\r\n--B--\r\n" in body

    def test_length_matches_buffer(self):
        raw = b"\x00\xff" * 1000
        parts = [MultipartPart(name="image", content=raw, filename="a.png", content_type="image/png")]
        boundary, body = multipart.encode({"model": "m", "prompt": "pé"}, parts)
        expected = (
            len(f"--{boundary}\r\n".encode()) * 3
            + len(b'Content-Disposition: form-data; name="model"\r\n\r\nm\r\n')
            + len('Content-Disposition: form-data; name="prompt"\r\n\r\npé\r\n'.encode())
            + len(b'Content-Disposition: form-data; name="image"; filename="a.png"\r\n')
            + len(b"Content-Type: image/png\r\n\r\n")
            + len(raw) + 2
            + len(f"--{boundary}--\r\n".encode())
        )
        assert len(body) == expected

    def test_boundaries_differ_between_calls(self):
        assert multipart.new_boundary() != multipart.new_boundary()

    def test_content_type_header(self):
        assert multipart.content_type_header("B") == "multipart/form-data; boundary=B"


class TestDataUri:
    def test_round_trip_reproduces_bytes(self):
        raw = bytes(range(256))
        decoded = multipart.decode_data_uri(_data_uri("image/jpeg", raw))
        assert decoded == ("image/jpeg", raw)

    def test_image_parts_filename_and_type(self):
        raw = b"\x89PNG\r\n\x1a\n"
        parts = multipart.image_parts([_data_uri("image/webp", raw)])
        assert parts == [MultipartPart(name="image", content=raw, filename="image_0.webp", content_type="image/webp")]

    def test_malformed_uris_are_skipped(self):
        good = _data_uri("image/png", b"ok")
        images = [
            "not a data uri",
            "data:image/png,plain",
            42,
            "data:image/png;base64,abc",
            good,
        ]
        parts = multipart.image_parts(images, field_name="file")
        assert len(parts) == 1
        assert parts[0].name == "file"
        assert parts[0].filename == "image_4.png"
        assert parts[0].content == b"ok"

    def test_extension_defaults_to_png(self):
        assert multipart.extension_for("image") == "png"
        assert multipart.extension_for("image/") == "png"
        assert multipart.extension_for("image/jpeg") == "jpeg"

    def test_decoded_attachment_survives_encoding(self):
        raw = bytes(range(255, -1, -1))
        parts = multipart.image_parts([_data_uri("image/png", raw)])
        _, body = multipart.encode({"model": "m"}, parts, boundary="B")
        start = body.index(b"Content-Type: image/png\r\n\r\n") + len(b"Content-Type: image/png\r\n\r\n")
        assert body[start:start + len(raw)] == raw

    def test_header_breaking_mime_is_skipped(self):
        injected = 'data:image/png\r\nX-Injected: yes;base64,YWJj'
        quoted = 'data:image/png"; name="evil;base64,YWJj'
        bare_lf = "data:image/png\nX-Injected: yes;base64,YWJj"
        good = _data_uri("image/png", b"ok")
        parts = multipart.image_parts([injected, quoted, bare_lf, good])
        assert [p.filename for p in parts] == ["image_3.png"]

        _, body = multipart.encode({"model": "m"}, parts, boundary="B")
        assert b"X-Injected" not in body
        assert BARE_LF.search(body) is None

    def test_payload_with_non_alphabet_characters_is_rejected(self):
        assert multipart.decode_data_uri("data:image/png;base64,!!!!") is None
        assert multipart.decode_data_uri("data:image/png;base64,YW Jj") is None
        assert multipart.decode_data_uri("data:image/png;base64,YWJj") == ("image/png", b"abc")
