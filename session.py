"""
session.py

Editing session for one EmojiArt document.

The session owns the document value, its session id, the selection, the
transform engine and the background fetcher. Every intent is applied
synchronously on the caller's (GUI) thread and followed by change signals:

    changed            any visible state changed (redraw)
    document_changed   persisted state changed (autosave)
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, Iterable, List, Optional, Set

from PyQt6.QtCore import QObject, pyqtSignal

from background.fetcher import BackgroundAsset, BackgroundFetcher
from background.transport import image_url
from debug_trace import trace
from models import Emoji, EmojiArt, Point, Size
from settings import AppSettings, get_settings
from transform.engine import TransformEngine
from transform.router import (
    AddEmoji,
    BeginPinch,
    Command,
    CommitPan,
    CommitZoom,
    EndPinch,
    FitToCanvas,
    GestureEvent,
    MoveEmojis,
    RemoveEmoji,
    ScaleEmojis,
    SetBackgroundURL,
    SetLivePan,
    SetLiveSelectionPan,
    SetLiveSelectionZoom,
    SetLiveZoom,
    SetSelection,
    route_gesture,
)


class EmojiArtSession(QObject):
    """
    State container for one open document.

    Signals:
        changed(): emitted after every applied intent that changed anything
        document_changed(): emitted when the persisted snapshot changed

    Args:
        document: Document to edit (a new empty one if omitted).
        session_id: Opaque id used as the storage handle (random if omitted).
        settings: Application settings (the global ones if omitted).
        engine: Transform engine (identity transform if omitted).
        fetcher: Background fetcher (an HTTP one if omitted).
    """

    changed = pyqtSignal()
    document_changed = pyqtSignal()

    def __init__(
        self,
        document: Optional[EmojiArt] = None,
        session_id: Optional[str] = None,
        settings: Optional[AppSettings] = None,
        engine: Optional[TransformEngine] = None,
        fetcher: Optional[BackgroundFetcher] = None,
        parent=None,
    ):
        super().__init__(parent)
        self.settings = settings or get_settings().settings
        self.session_id = session_id or str(uuid.uuid4())
        self.document = document if document is not None else EmojiArt()
        self.selection: Set[int] = set()
        self.engine = engine or TransformEngine(selected_opacity=self.settings.canvas.selected_opacity)
        self.fetcher = fetcher or BackgroundFetcher(timeout=self.settings.background.timeout_seconds)
        self.fetcher.setParent(self)
        self.fetcher.asset_changed.connect(self._on_asset_changed)
        self.canvas_size: Optional[Size] = None

        if self.document.background_url:
            self.fetcher.set_url(self.document.background_url)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        """Serializable state for the persistence collaborator."""
        snap: Dict[str, Any] = {"id": self.session_id, "document": self.document.to_dict()}
        if self.settings.session.persist_transform:
            snap["transform"] = self.engine.to_dict()
        return snap

    @classmethod
    def from_snapshot(
        cls,
        snapshot: Optional[Dict[str, Any]],
        session_id: Optional[str] = None,
        settings: Optional[AppSettings] = None,
        fetcher: Optional[BackgroundFetcher] = None,
        parent=None,
    ) -> "EmojiArtSession":
        """Rebuild a session from :meth:`snapshot` output, or start empty for None."""
        settings = settings or get_settings().settings
        snapshot = snapshot if isinstance(snapshot, dict) else {}
        document = EmojiArt.from_dict(snapshot.get("document", {}))
        engine = None
        if settings.session.persist_transform and "transform" in snapshot:
            engine = TransformEngine.from_dict(snapshot["transform"], selected_opacity=settings.canvas.selected_opacity)
        sid = session_id or snapshot.get("id") or None
        return cls(document=document, session_id=sid, settings=settings, engine=engine, fetcher=fetcher, parent=parent)

    def shutdown(self):
        self.fetcher.shutdown()

    # ------------------------------------------------------------------
    # Per-frame reads
    # ------------------------------------------------------------------

    @property
    def emojis(self) -> List[Emoji]:
        return self.document.emojis

    @property
    def background_url(self) -> Optional[str]:
        return self.document.background_url

    @property
    def background_asset(self) -> BackgroundAsset:
        return self.fetcher.asset

    @property
    def background_image(self):
        return self.fetcher.asset.image

    @property
    def is_loading(self) -> bool:
        return self.fetcher.asset.is_loading

    def is_selected(self, emoji: Emoji) -> bool:
        return emoji.id in self.selection

    def screen_position(self, emoji: Emoji, canvas_size: Size) -> Point:
        return self.engine.screen_position(emoji, canvas_size, self.selection)

    def render_scale(self, emoji: Emoji) -> float:
        return self.engine.render_scale(emoji, self.selection)

    def opacity(self, emoji: Emoji) -> float:
        return self.engine.opacity(emoji, self.selection)

    def emoji_at(self, point: Point, canvas_size: Size) -> Optional[Emoji]:
        """Topmost emoji whose rendered square contains the screen *point*."""
        for emoji in reversed(self.document.emojis):
            center = self.screen_position(emoji, canvas_size)
            half = self.render_scale(emoji) / 2
            if abs(point[0] - center.x) <= half and abs(point[1] - center.y) <= half:
                return emoji
        return None

    # ------------------------------------------------------------------
    # Intents
    # ------------------------------------------------------------------

    def add_emoji(self, text: str, location: Point, size: float) -> int:
        emoji_id = self.document.add_emoji(text, location[0], location[1], size)
        self._notify(document=True)
        return emoji_id

    def move_emoji(self, emoji_id: int, offset: Point) -> bool:
        if self.document.move_emoji(emoji_id, offset[0], offset[1]):
            self._notify(document=True)
            return True
        return False

    def scale_emoji(self, emoji_id: int, factor: float) -> bool:
        if self.document.scale_emoji(emoji_id, factor):
            self._notify(document=True)
            return True
        return False

    def remove_emoji(self, emoji_id: int) -> bool:
        if self.document.remove_emoji(emoji_id):
            self.selection.discard(emoji_id)
            self._notify(document=True)
            return True
        return False

    def set_background_url(self, url: Optional[str]):
        """Replace the background URL and always restart the fetch."""
        url = image_url(url) if url else None
        self.document.background_url = url
        trace(f"set_background_url: {url}", "DOC")
        self._notify(document=True)
        self.fetcher.set_url(url)

    def set_canvas_size(self, canvas_size: Size):
        """Record the canvas size used for automatic fit on image load."""
        self.canvas_size = Size(canvas_size[0], canvas_size[1])

    def fit_to_canvas(self, canvas_size: Optional[Size] = None) -> bool:
        if canvas_size is not None:
            self.set_canvas_size(canvas_size)
        if self.engine.fit_to_canvas(self.fetcher.asset.size, self.canvas_size):
            self._notify(document=self.settings.session.persist_transform)
            return True
        return False

    def handle(self, event: GestureEvent):
        """Route a resolved gesture event and apply the resulting commands."""
        commands = route_gesture(event, self.selection, self.engine, self.settings.canvas.default_emoji_size)
        trace(f"{type(event).__name__} -> {[type(c).__name__ for c in commands]}", "FRAME")
        self.apply(commands)

    def apply(self, commands: Iterable[Command]):
        """Apply commands in order, then emit the change signals once."""
        changed = False
        document = False
        fetch_url = None
        start_fetch = False
        persist_transform = self.settings.session.persist_transform

        for cmd in commands:
            if isinstance(cmd, SetSelection):
                known = set(self.document.ids())
                for stale in cmd.ids - known:
                    trace(f"selection: no emoji with id {stale}", "WARN")
                self.selection = set(cmd.ids & known)
                changed = True
            elif isinstance(cmd, RemoveEmoji):
                if self.document.remove_emoji(cmd.emoji_id):
                    self.selection.discard(cmd.emoji_id)
                    changed = document = True
            elif isinstance(cmd, FitToCanvas):
                self.set_canvas_size(cmd.canvas_size)
                if self.engine.fit_to_canvas(self.fetcher.asset.size, self.canvas_size):
                    changed = True
                    document = document or persist_transform
            elif isinstance(cmd, SetLivePan):
                self.engine.set_live_pan(cmd.offset)
                changed = True
            elif isinstance(cmd, CommitPan):
                self.engine.commit_pan(cmd.offset)
                changed = True
                document = document or persist_transform
            elif isinstance(cmd, SetLiveSelectionPan):
                self.engine.set_live_selection_pan(cmd.offset)
                changed = True
            elif isinstance(cmd, MoveEmojis):
                for emoji_id in sorted(cmd.ids):
                    if self.document.move_emoji(emoji_id, cmd.offset[0], cmd.offset[1]):
                        changed = document = True
            elif isinstance(cmd, BeginPinch):
                self.engine.begin_pinch(cmd.target)
            elif isinstance(cmd, EndPinch):
                self.engine.end_pinch()
                changed = True
            elif isinstance(cmd, SetLiveZoom):
                self.engine.set_live_zoom(cmd.factor)
                changed = True
            elif isinstance(cmd, CommitZoom):
                self.engine.commit_zoom(cmd.factor)
                changed = True
                document = document or persist_transform
            elif isinstance(cmd, SetLiveSelectionZoom):
                self.engine.set_live_selection_zoom(cmd.factor)
                changed = True
            elif isinstance(cmd, ScaleEmojis):
                for emoji_id in sorted(cmd.ids):
                    if self.document.scale_emoji(emoji_id, cmd.factor):
                        changed = document = True
            elif isinstance(cmd, AddEmoji):
                self.document.add_emoji(cmd.text, cmd.location[0], cmd.location[1], cmd.size)
                changed = document = True
            elif isinstance(cmd, SetBackgroundURL):
                fetch_url = image_url(cmd.url) if cmd.url else None
                self.document.background_url = fetch_url
                start_fetch = changed = document = True
            else:
                trace(f"apply: unknown command {cmd!r}", "WARN")

        if changed:
            self._notify(document=document)
        if start_fetch:
            self.fetcher.set_url(fetch_url)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _on_asset_changed(self, asset: BackgroundAsset):
        fitted = asset.image is not None and self.engine.fit_to_canvas(asset.size, self.canvas_size)
        self._notify(document=fitted and self.settings.session.persist_transform)

    def _notify(self, document: bool):
        if document:
            self.document_changed.emit()
        self.changed.emit()
