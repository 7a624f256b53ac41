from __future__ import annotations
import base64
import re
from typing import Optional

import requests

from app import logger

log = logger.get_logger(__name__)

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w/+.-]+);base64,(?P<b64>.+)$", re.IGNORECASE | re.DOTALL)

def sniff_mime(data: bytes) -> str:
    # PNG
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    # JPEG
    if data.startswith(b"\xff\xd8"):
        return "image/jpeg"
    # GIF87a / GIF89a
    if data.startswith(b"GIF87a") or data.startswith(b"GIF89a"):
        return "image/gif"
    # WEBP: RIFF....WEBP
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return "image/png"  # gpt-image-1 default output

def is_data_url(s: str) -> bool:
    return bool(s) and s.startswith("data:") and ";base64," in s

def to_data_url(b64: str) -> str:
    """Wrap a raw base64 image payload as a data URL, sniffing the MIME type from the bytes."""
    payload = "".join(b64.split())
    data = base64.b64decode(payload)
    return f"data:{sniff_mime(data)};base64,{payload}"

def decode_data_url(data_url: str) -> tuple[bytes, str]:
    """Returns (bytes, content_type) for a 'data:<mime>;base64,...' string."""
    m = _DATA_URL_RE.match(data_url.strip())
    if not m:
        raise ValueError("not a base64 data URL")
    b64 = "".join(m.group("b64").split())
    missing_padding = (-len(b64)) % 4
    if missing_padding:
        b64 += "=" * missing_padding
    return base64.b64decode(b64), m.group("mime").lower()

def fetch_image_bytes(image_url: Optional[str], *, timeout: float = 30) -> Optional[bytes]:
    """
    Resolve a page illustration reference to raw bytes:
    - data URL: decode in place
    - http(s) URL (fallback placeholders): download
    Returns None when the reference is missing or cannot be resolved.
    """
    if not image_url:
        return None
    try:
        if is_data_url(image_url):
            data, _ = decode_data_url(image_url)
            return data or None
        if image_url.startswith("http://") or image_url.startswith("https://"):
            r = requests.get(image_url, timeout=timeout)
            r.raise_for_status()
            return r.content or None
    except (ValueError, requests.RequestException) as e:
        log.warning(f"failed to resolve illustration {image_url[:64]!r}: {e}")
        return None
    log.warning(f"unsupported illustration reference: {image_url[:64]!r}")
    return None
