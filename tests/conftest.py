"""
Shared fixtures for EmojiArt tests.

Qt runs on the offscreen platform; ``qapp``/``qtbot`` come from pytest-qt.
"""
from __future__ import annotations

import os
import sys

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

# Ensure project root is on sys.path so imports work
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from PIL import Image

from background.fetcher import BackgroundFetcher
from session import EmojiArtSession
from settings import AppSettings


class ManualFetcher(BackgroundFetcher):
    """Fetcher that records fetch starts instead of spawning threads.

    Tests complete fetches by calling ``complete``/``fail`` with the
    generation recorded in ``started``.
    """

    def __init__(self, parent=None):
        super().__init__(transport=lambda *a: b"", parent=parent)
        self.started = []  # (generation, url)

    def _start_fetch(self, generation, url):
        self.started.append((generation, url))

    def complete(self, generation, url, image):
        self._on_fetch_finished(generation, url, image)

    def fail(self, generation, url, message="TransportFailure: boom"):
        self._on_fetch_failed(generation, url, message)


def make_image(width: int, height: int) -> Image.Image:
    return Image.new("RGBA", (width, height), (200, 40, 40, 255))


@pytest.fixture()
def app_settings():
    """Default settings, independent of the user's settings file."""
    return AppSettings()


@pytest.fixture()
def fetcher(qapp):
    return ManualFetcher()


@pytest.fixture()
def session(qapp, app_settings, fetcher):
    s = EmojiArtSession(settings=app_settings, fetcher=fetcher)
    yield s
    s.shutdown()
