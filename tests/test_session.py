"""Tests for session.py - intents, gesture routing and background write-back."""
from __future__ import annotations

import pytest

from conftest import ManualFetcher, make_image
from models import EmojiArt, Point, Size
from session import EmojiArtSession
from transform.router import (
    DoubleTap,
    DragEnd,
    DragScope,
    DragUpdate,
    Drop,
    LongPress,
    PinchEnd,
    PinchUpdate,
    Tap,
)


def _sizes(session):
    return {e.id: e.size for e in session.emojis}


def _positions(session):
    return {e.id: (e.x, e.y) for e in session.emojis}


@pytest.fixture()
def populated(session):
    a = session.add_emoji("⭐", Point(0, 0), 40)
    b = session.add_emoji("🍎", Point(10, 10), 20)
    c = session.add_emoji("🌏", Point(-10, 5), 30)
    return session, a, b, c


# ─────────────────────────────────────────────────────────
# Selection
# ─────────────────────────────────────────────────────────


class TestSelection:
    def test_tap_toggles(self, populated):
        s, a, b, _ = populated
        s.handle(Tap(a))
        assert s.selection == {a}
        assert s.is_selected(s.document.emoji(a))
        s.handle(Tap(a))
        assert s.selection == set()

    def test_tap_background_clears(self, populated):
        s, a, b, _ = populated
        s.handle(Tap(a))
        s.handle(Tap(b))
        s.handle(Tap(None))
        assert s.selection == set()

    def test_tap_unknown_id_is_ignored(self, populated):
        s, a, _, _ = populated
        s.handle(Tap(999))
        assert s.selection == set()

    def test_long_press_removes_and_deselects(self, populated):
        s, a, b, _ = populated
        s.handle(Tap(a))
        s.handle(LongPress(a))
        assert a not in s.document.ids()
        assert s.selection == set()

    def test_remove_intent_deselects(self, populated):
        s, a, _, _ = populated
        s.handle(Tap(a))
        assert s.remove_emoji(a)
        assert s.selection == set()
        assert s.remove_emoji(a) is False


# ─────────────────────────────────────────────────────────
# Pinch routing
# ─────────────────────────────────────────────────────────


class TestPinchRouting:
    def test_empty_selection_pinch_zooms_document(self, populated):
        s = populated[0]
        sizes = _sizes(s)
        s.handle(PinchUpdate(1.5))
        assert s.engine.effective_zoom == pytest.approx(1.5)
        assert s.engine.steady_zoom == 1.0
        s.handle(PinchEnd(2.0))
        assert s.engine.steady_zoom == pytest.approx(2.0)
        assert s.engine.effective_zoom == pytest.approx(2.0)
        assert _sizes(s) == sizes

    def test_selection_pinch_scales_only_selected(self, populated):
        s, a, b, c = populated
        s.handle(Tap(a))
        s.handle(Tap(c))
        s.handle(PinchUpdate(1.5))
        assert s.render_scale(s.document.emoji(a)) == pytest.approx(60)
        assert s.render_scale(s.document.emoji(b)) == pytest.approx(20)
        s.handle(PinchEnd(1.5))
        assert _sizes(s) == {a: 60, b: 20, c: 45}
        assert s.engine.steady_zoom == 1.0
        assert s.engine.state.live_selection_zoom == 1.0

    def test_branch_latched_at_start(self, populated):
        s, a, _, _ = populated
        s.handle(PinchUpdate(1.2))
        s.handle(Tap(a))  # selection changes mid-gesture
        s.handle(PinchEnd(2.0))
        assert s.engine.steady_zoom == pytest.approx(2.0)
        assert s.document.emoji(a).size == 40
        assert s.engine.pinch_target is None

    def test_next_gesture_reevaluates(self, populated):
        s, a, _, _ = populated
        s.handle(PinchEnd(2.0))
        s.handle(Tap(a))
        s.handle(PinchEnd(0.5))
        assert s.engine.steady_zoom == pytest.approx(2.0)
        assert s.document.emoji(a).size == 20


# ─────────────────────────────────────────────────────────
# Drags
# ─────────────────────────────────────────────────────────


class TestDrags:
    def test_canvas_pan_moves_no_emoji(self, populated):
        s = populated[0]
        positions = _positions(s)
        s.handle(DragUpdate(Point(30, 0), DragScope.CANVAS))
        assert s.engine.effective_pan == Point(30, 0)
        s.handle(DragEnd(Point(40, -10), DragScope.CANVAS))
        assert s.engine.steady_pan == Point(40, -10)
        assert s.engine.state.live_pan == Point(0, 0)
        assert _positions(s) == positions

    def test_selection_drag_moves_group_uniformly(self, populated):
        s, a, b, c = populated
        s.handle(Tap(a))
        s.handle(Tap(b))
        canvas = Size(200, 200)
        before_c = s.screen_position(s.document.emoji(c), canvas)
        s.handle(DragUpdate(Point(7, 3), DragScope.SELECTION))
        assert s.screen_position(s.document.emoji(a), canvas) == Point(107, 103)
        assert s.screen_position(s.document.emoji(c), canvas) == before_c
        # positions are not committed until the drag ends
        assert (s.document.emoji(a).x, s.document.emoji(a).y) == (0, 0)
        s.handle(DragEnd(Point(7.5, 2.5), DragScope.SELECTION))
        assert _positions(s) == {a: (8, 2), b: (18, 12), c: (-10, 5)}
        assert s.engine.state.live_selection_pan == Point(0, 0)

    def test_selection_drag_at_zoom(self, populated):
        s, a, _, _ = populated
        s.engine.state.steady_zoom = 2.0
        s.handle(Tap(a))
        s.handle(DragEnd(Point(20, -20), DragScope.SELECTION))
        assert (s.document.emoji(a).x, s.document.emoji(a).y) == (10, -10)


# ─────────────────────────────────────────────────────────
# Drops
# ─────────────────────────────────────────────────────────


class TestDrops:
    def test_drop_text_at_center(self, session):
        session.handle(Drop(Point(150, 150), Size(300, 300), text="🥨"))
        (e,) = session.emojis
        assert (e.text, e.x, e.y, e.size) == ("🥨", 0, 0, 40)

    def test_drop_url_sets_background_and_fetches(self, session, fetcher):
        session.handle(Drop(Point(0, 0), Size(300, 300), url="https://example.com/a.png"))
        assert session.background_url == "https://example.com/a.png"
        assert fetcher.started[-1][1] == "https://example.com/a.png"
        assert session.is_loading

    def test_drop_unwraps_image_search_url(self, session):
        url = "https://www.google.com/imgres?imgurl=https%3A%2F%2Fexample.com%2Fcat.jpg&imgrefurl=x"
        session.handle(Drop(Point(0, 0), Size(300, 300), url=url))
        assert session.background_url == "https://example.com/cat.jpg"


# ─────────────────────────────────────────────────────────
# Background
# ─────────────────────────────────────────────────────────


class TestBackground:
    def test_is_loading_until_decoded(self, session, fetcher):
        assert not session.is_loading
        session.set_background_url("https://example.com/a.png")
        assert session.is_loading
        gen, url = fetcher.started[-1]
        fetcher.complete(gen, url, make_image(10, 10))
        assert not session.is_loading
        assert session.background_image.size == (10, 10)

    def test_decoded_image_fits_to_canvas(self, session, fetcher):
        session.set_canvas_size(Size(100, 100))
        session.set_background_url("https://example.com/a.png")
        gen, url = fetcher.started[-1]
        fetcher.complete(gen, url, make_image(200, 100))
        assert session.engine.steady_zoom == pytest.approx(0.5)

    def test_double_tap_fits(self, session, fetcher):
        session.set_background_url("https://example.com/a.png")
        gen, url = fetcher.started[-1]
        fetcher.complete(gen, url, make_image(400, 100))
        session.engine.state.steady_zoom = 3.0
        session.handle(DoubleTap(Size(200, 200)))
        assert session.engine.steady_zoom == pytest.approx(0.5)

    def test_double_tap_without_image_is_noop(self, session):
        session.handle(DoubleTap(Size(200, 200)))
        assert session.engine.steady_zoom == 1.0

    def test_stale_response_is_discarded(self, session, fetcher):
        session.set_background_url("https://example.com/A.png")
        gen_a, url_a = fetcher.started[-1]
        session.set_background_url("https://example.com/B.png")
        gen_b, url_b = fetcher.started[-1]

        fetcher.complete(gen_a, url_a, make_image(1, 1))
        assert session.background_image is None
        assert session.is_loading

        fetcher.complete(gen_b, url_b, make_image(2, 2))
        assert session.background_image.size == (2, 2)

    def test_same_url_twice_refetches(self, session, fetcher):
        session.set_background_url("https://example.com/a.png")
        session.set_background_url("https://example.com/a.png")
        assert len(fetcher.started) == 2
        old_gen, url = fetcher.started[0]
        fetcher.complete(old_gen, url, make_image(3, 3))
        assert session.background_image is None

    def test_failure_clears_image_and_indicator(self, session, fetcher):
        session.set_background_url("https://example.com/a.png")
        gen, url = fetcher.started[-1]
        fetcher.complete(gen, url, make_image(5, 5))
        session.set_background_url("https://example.com/broken.png")
        gen, url = fetcher.started[-1]
        fetcher.fail(gen, url)
        assert session.background_image is None
        assert not session.is_loading
        assert session.background_url == "https://example.com/broken.png"

    def test_clear_background(self, session, fetcher):
        session.set_background_url("https://example.com/a.png")
        gen, url = fetcher.started[-1]
        session.set_background_url(None)
        assert session.background_url is None
        assert not session.is_loading
        fetcher.complete(gen, url, make_image(5, 5))
        assert session.background_image is None

    def test_loaded_document_starts_fetch(self, qapp, app_settings):
        fetcher = ManualFetcher()
        doc = EmojiArt(background_url="https://example.com/bg.png")
        s = EmojiArtSession(document=doc, settings=app_settings, fetcher=fetcher)
        assert fetcher.started == [(1, "https://example.com/bg.png")]
        assert s.is_loading


# ─────────────────────────────────────────────────────────
# Signals and snapshots
# ─────────────────────────────────────────────────────────


class TestNotifications:
    def test_document_mutations_emit_both_signals(self, session):
        changed, persisted = [], []
        session.changed.connect(lambda: changed.append(1))
        session.document_changed.connect(lambda: persisted.append(1))
        session.add_emoji("⭐", Point(0, 0), 40)
        assert changed and persisted

    def test_live_gestures_do_not_mark_document_dirty(self, populated):
        s = populated[0]
        changed, persisted = [], []
        s.changed.connect(lambda: changed.append(1))
        s.document_changed.connect(lambda: persisted.append(1))
        s.handle(DragUpdate(Point(3, 3)))
        s.handle(PinchUpdate(1.1))
        assert len(changed) == 2
        assert persisted == []

    def test_not_found_emits_nothing(self, session):
        changed = []
        session.changed.connect(lambda: changed.append(1))
        assert session.move_emoji(42, Point(1, 1)) is False
        assert changed == []


class TestSnapshots:
    def test_round_trip(self, populated, app_settings):
        s = populated[0]
        s.set_background_url("https://example.com/a.png")
        snap = s.snapshot()
        restored = EmojiArtSession.from_snapshot(snap, settings=app_settings, fetcher=ManualFetcher())
        assert restored.session_id == s.session_id
        assert [e.to_dict() for e in restored.emojis] == [e.to_dict() for e in s.emojis]
        assert restored.background_url == "https://example.com/a.png"

    def test_transform_not_persisted_by_default(self, session, app_settings):
        session.handle(PinchEnd(2.0))
        snap = session.snapshot()
        assert "transform" not in snap
        restored = EmojiArtSession.from_snapshot(snap, settings=app_settings, fetcher=ManualFetcher())
        assert restored.engine.steady_zoom == 1.0

    def test_transform_persisted_when_enabled(self, qapp, app_settings):
        app_settings.session.persist_transform = True
        s = EmojiArtSession(settings=app_settings, fetcher=ManualFetcher())
        persisted = []
        s.document_changed.connect(lambda: persisted.append(1))
        s.handle(PinchEnd(2.0))
        s.handle(DragEnd(Point(10, 0)))
        assert len(persisted) == 2
        restored = EmojiArtSession.from_snapshot(s.snapshot(), settings=app_settings, fetcher=ManualFetcher())
        assert restored.engine.steady_zoom == pytest.approx(2.0)
        assert restored.engine.steady_pan == Point(5, 0)

    def test_none_snapshot_starts_empty(self, qapp, app_settings):
        s = EmojiArtSession.from_snapshot(None, session_id="abc", settings=app_settings, fetcher=ManualFetcher())
        assert s.session_id == "abc"
        assert s.emojis == []


def test_emoji_at_hits_topmost(populated):
    s, a, b, c = populated
    canvas = Size(200, 200)
    # a (size 40) at (100, 100); b (size 20) at (110, 110) is on top
    assert s.emoji_at(Point(110, 110), canvas).id == b
    assert s.emoji_at(Point(115, 85), canvas).id == a
    assert s.emoji_at(Point(5, 5), canvas) is None


class TestRobustness:
    def test_non_finite_factor_is_a_noop(self, populated):
        s, a, _, _ = populated
        changed = []
        s.changed.connect(lambda: changed.append(1))
        assert s.scale_emoji(a, float("inf")) is False
        assert s.move_emoji(a, Point(float("nan"), 0)) is False
        assert changed == []
        s.handle(Tap(a))
        s.handle(PinchEnd(float("inf")))
        assert s.document.emoji(a).size == 40
        assert (s.document.emoji(a).x, s.document.emoji(a).y) == (0, 0)

    def test_malformed_snapshot_starts_empty(self, qapp, app_settings):
        s = EmojiArtSession.from_snapshot(
            {"id": "bad", "document": {"emojis": 7}}, settings=app_settings, fetcher=ManualFetcher(),
        )
        assert s.session_id == "bad"
        assert s.emojis == []


class TestFitPersistence:
    def _load_image(self, session, fetcher):
        session.set_canvas_size(Size(100, 100))
        session.set_background_url("https://example.com/a.png")
        persisted = []
        session.document_changed.connect(lambda: persisted.append(1))
        gen, url = fetcher.started[-1]
        fetcher.complete(gen, url, make_image(200, 100))
        return persisted

    def test_fit_on_load_marks_document_when_transform_persisted(self, session, fetcher):
        session.settings.session.persist_transform = True
        assert self._load_image(session, fetcher) == [1]
        assert session.snapshot()["transform"]["zoom"] == pytest.approx(0.5)

    def test_fit_on_load_leaves_document_clean_by_default(self, session, fetcher):
        assert self._load_image(session, fetcher) == []
