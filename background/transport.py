"""
background/transport.py

Retrieval and decoding of background image bytes.

These functions block and are meant to run on a worker thread; failures are
raised as BackgroundError subclasses for the worker to turn into signals.
"""

from __future__ import annotations

from io import BytesIO
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import parse_qs, unquote, urlparse

import requests
from PIL import Image

CHUNK_SIZE = 64 * 1024


class BackgroundError(Exception):
    """Base class for background fetch failures."""


class TransportFailure(BackgroundError):
    """The bytes could not be retrieved (network, HTTP status, file IO)."""


class DecodeFailure(BackgroundError):
    """The retrieved bytes are not a decodable image."""


class FetchCancelled(BackgroundError):
    """The fetch was superseded while the transport was still reading."""


def image_url(url: str) -> str:
    """Unwrap image-search result links to the image they point at.

    Search engines wrap the real image in an ``imgurl`` query parameter
    (``https://www.google.com/imgres?imgurl=https%3A%2F%2F...&imgrefurl=...``).
    Any other URL is returned unchanged.
    """
    query = urlparse(url).query
    if query:
        values = parse_qs(query).get("imgurl")
        # parse_qs has already percent-decoded the value
        if values and values[0]:
            return values[0]
    return url


def http_fetch(url: str, timeout: float = 15.0, is_cancelled: Optional[Callable[[], bool]] = None) -> bytes:
    """Retrieve the bytes at *url*.

    ``http``/``https`` URLs go through requests and are streamed so a
    cancelled fetch stops reading early; ``file`` URLs are read from disk.

    Args:
        url: Absolute URL of the image.
        timeout: Connect/read timeout in seconds.
        is_cancelled: Polled between chunks; returning True aborts the read.

    Raises:
        TransportFailure: on any network, HTTP status or file error.
        FetchCancelled: if ``is_cancelled`` reported True mid-read.
    """
    parsed = urlparse(url)
    if parsed.scheme == "file":
        try:
            return Path(unquote(parsed.path)).read_bytes()
        except OSError as e:
            raise TransportFailure(f"Cannot read {url}: {e}") from e
    if parsed.scheme not in ("http", "https"):
        raise TransportFailure(f"Unsupported URL scheme: {parsed.scheme or '(none)'}")

    try:
        with requests.get(url, timeout=timeout, stream=True) as response:
            response.raise_for_status()
            buf = BytesIO()
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                if is_cancelled is not None and is_cancelled():
                    raise FetchCancelled(url)
                buf.write(chunk)
            return buf.getvalue()
    except requests.RequestException as e:
        raise TransportFailure(f"Request for {url} failed: {e}") from e


def decode_image(data: bytes) -> Image.Image:
    """Decode image bytes into a fully loaded RGBA Pillow image.

    Raises:
        DecodeFailure: if Pillow cannot identify or decode the data.
    """
    if not data:
        raise DecodeFailure("No image data")
    try:
        img = Image.open(BytesIO(data))
        img.load()
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise DecodeFailure(f"Cannot decode image: {e}") from e
    return img.convert("RGBA")
