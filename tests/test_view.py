"""Tests for canvas/view.py - input mapping on the offscreen platform."""
from __future__ import annotations

import pytest
from PyQt6.QtCore import QPoint, Qt
from PyQt6.QtWidgets import QApplication

from canvas.view import EmojiArtView, pil_to_qimage
from conftest import make_image
from models import Point, Size


@pytest.fixture()
def view(qtbot, session):
    v = EmojiArtView(session)
    qtbot.addWidget(v)
    v.resize(300, 300)
    v.show()
    qtbot.waitExposed(v)
    return v


def test_resize_updates_canvas_size(view, session):
    assert session.canvas_size == Size(300, 300)


def test_pil_to_qimage():
    qimg = pil_to_qimage(make_image(7, 5))
    assert (qimg.width(), qimg.height()) == (7, 5)
    assert qimg.pixelColor(0, 0).red() == 200


def test_click_toggles_selection(view, session, qtbot):
    eid = session.add_emoji("⭐", Point(0, 0), 40)
    qtbot.mouseClick(view, Qt.MouseButton.LeftButton, pos=QPoint(150, 150))
    assert session.selection == {eid}
    qtbot.mouseClick(view, Qt.MouseButton.LeftButton, pos=QPoint(150, 150))
    assert session.selection == set()


def test_click_background_clears(view, session, qtbot):
    eid = session.add_emoji("⭐", Point(0, 0), 40)
    session.selection = {eid}
    qtbot.mouseClick(view, Qt.MouseButton.LeftButton, pos=QPoint(10, 10))
    # the clear waits for the double-click interval to pass
    qtbot.waitUntil(lambda: session.selection == set(), timeout=3000)


def test_double_click_background_keeps_selection(view, session, qtbot):
    eid = session.add_emoji("⭐", Point(0, 0), 40)
    session.selection = {eid}
    qtbot.mouseDClick(view, Qt.MouseButton.LeftButton, pos=QPoint(10, 10))
    assert not view._background_tap_timer.isActive()
    qtbot.wait(QApplication.styleHints().mouseDoubleClickInterval() + 100)
    assert session.selection == {eid}


def test_double_click_background_fits(view, session, fetcher, qtbot):
    session.set_background_url("https://example.com/a.png")
    gen, url = fetcher.started[-1]
    fetcher.complete(gen, url, make_image(600, 300))
    assert session.engine.steady_zoom == pytest.approx(0.5)
    session.engine.state.steady_zoom = 3.0
    qtbot.mouseDClick(view, Qt.MouseButton.LeftButton, pos=QPoint(5, 5))
    assert session.engine.steady_zoom == pytest.approx(0.5)


def test_paints_loading_and_loaded_states(view, session, fetcher):
    session.add_emoji("🍎", Point(10, 10), 40)
    session.set_background_url("https://example.com/a.png")
    assert not view.grab().isNull()
    gen, url = fetcher.started[-1]
    fetcher.complete(gen, url, make_image(50, 50))
    assert not view.grab().isNull()


def test_palette_glyphs_keep_variation_selectors():
    from main import MainWindow

    assert MainWindow._palette_glyphs("⭐️🌨🍎 ⚾️") == ["⭐️", "🌨", "🍎", "⚾️"]
    assert MainWindow._palette_glyphs("\U0001F469\u200d\U0001F4BBx") == ["\U0001F469\u200d\U0001F4BB", "x"]
