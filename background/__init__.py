"""
background package

Asynchronous, cancellable loading of the document's background image.
"""

from background.fetcher import BackgroundAsset, BackgroundFetcher, FetchState, FetchWorker
from background.transport import (
    BackgroundError,
    DecodeFailure,
    FetchCancelled,
    TransportFailure,
    decode_image,
    http_fetch,
    image_url,
)

__all__ = [
    "BackgroundAsset",
    "BackgroundError",
    "BackgroundFetcher",
    "DecodeFailure",
    "FetchCancelled",
    "FetchState",
    "FetchWorker",
    "TransportFailure",
    "decode_image",
    "http_fetch",
    "image_url",
]
