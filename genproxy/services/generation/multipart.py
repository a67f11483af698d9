"""
Byte-exact multipart/form-data encoder for the async task upstream.

The upstream parser rejects bodies with bare LF line breaks and fails with premature EOF
when Content-Length is missing or wrong, so the body is built in memory and its exact
length is sent. File payloads are appended as raw bytes, never via str.

Boundary tokens are timestamp + random suffix. A collision with part content is possible
in theory and accepted; content is not adversarial.
"""
import base64
import binascii
import logging
import re
import secrets
import time
from typing import Iterable, Mapping

from genproxy.services.generation.base import MultipartPart

logger = logging.getLogger(__name__)

CRLF = b"\r\n"
DEFAULT_IMAGE_EXT = "png"
# MIME must be a bare type[/subtype] token; anything else (CR, LF, quotes) is malformed
DATA_URI_RE = re.compile(r"^data:([\w.+-]+(?:/[\w.+-]*)?);base64,([A-Za-z0-9+/=]+)\Z")


def new_boundary() -> str:
    return f"----FormBoundary{time.time_ns():x}{secrets.token_hex(6)}"


def _to_bytes(value: object) -> bytes:
    return str(value).encode("utf-8")


def _normalize_breaks(value: str) -> str:
    """Every line break in a text field becomes CRLF."""
    return value.replace("\r\n", "\n").replace("\r", "\n").replace("\n", "\r\n")


def encode(
    fields: Mapping[str, object],
    files: Iterable[MultipartPart] = (),
    boundary: str | None = None,
) -> tuple[str, bytes]:
    """
    Encode text fields (in mapping order, None values skipped) followed by file parts.
    Returns (boundary, body); len(body) is the Content-Length to send.
    """
    boundary = boundary or new_boundary()
    delimiter = b"--" + boundary.encode("ascii") + CRLF
    chunks: list[bytes] = []

    for key, value in fields.items():
        if value is None:
            continue
        chunks.append(delimiter)
        chunks.append(b'Content-Disposition: form-data; name="' + _to_bytes(key) + b'"' + CRLF + CRLF)
        chunks.append(_to_bytes(_normalize_breaks(str(value))) + CRLF)

    for part in files:
        filename = part.filename or f"{part.name}.{DEFAULT_IMAGE_EXT}"
        content_type = part.content_type or f"image/{DEFAULT_IMAGE_EXT}"
        chunks.append(delimiter)
        chunks.append(
            b'Content-Disposition: form-data; name="' + _to_bytes(part.name)
            + b'"; filename="' + _to_bytes(filename) + b'"' + CRLF
        )
        chunks.append(b"Content-Type: " + _to_bytes(content_type) + CRLF + CRLF)
        chunks.append(bytes(part.content))
        chunks.append(CRLF)

    chunks.append(b"--" + boundary.encode("ascii") + b"--" + CRLF)
    return boundary, b"".join(chunks)


def content_type_header(boundary: str) -> str:
    return f"multipart/form-data; boundary={boundary}"


def extension_for(mime_type: str) -> str:
    """Subtype of the MIME type as file extension; png when absent."""
    _, _, subtype = mime_type.partition("/")
    return subtype.strip() or DEFAULT_IMAGE_EXT


def decode_data_uri(value: object) -> tuple[str, bytes] | None:
    """Parse data:<mime>;base64,<payload>. Returns (mime, raw bytes) or None if malformed."""
    if not isinstance(value, str) or not value.startswith("data:"):
        return None
    match = DATA_URI_RE.match(value)
    if not match:
        return None
    mime_type, payload = match.group(1).strip(), match.group(2)
    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        return None
    return mime_type, raw


def image_parts(images: Iterable[object], field_name: str = "image") -> list[MultipartPart]:
    """Turn data-URI images into file parts named image_<index>.<ext>; malformed ones are skipped."""
    parts: list[MultipartPart] = []
    for index, value in enumerate(images):
        decoded = decode_data_uri(value)
        if decoded is None:
            logger.warning("image_attachment_skipped", extra={"error": f"malformed data uri at index {index}"})
            continue
        mime_type, raw = decoded
        parts.append(
            MultipartPart(
                name=field_name,
                content=raw,
                filename=f"image_{index}.{extension_for(mime_type)}",
                content_type=mime_type,
            )
        )
    return parts
