"""
transform/engine.py

Composition of the steady pan/zoom with in-flight gesture deltas into the
single document <-> screen mapping used for rendering and hit placement.

Coordinate spaces:
    document: emoji x/y, origin at the canvas center, unscaled.
    screen:   widget pixels, origin at the top-left corner.

The pan offset is stored in document units but applied pre-multiplied by the
effective zoom, so a drag of N screen pixels moves the canvas N pixels at any
zoom level.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from typing import AbstractSet, Any, Dict, Optional

from debug_trace import trace
from models import SELECTED_OPACITY, Emoji, Point, Size


def _is_scale_factor(value: float) -> bool:
    return value > 0 and math.isfinite(value)


class PinchTarget(enum.Enum):
    """Which state a pinch gesture drives, latched when the gesture starts."""
    CANVAS = "canvas"
    SELECTION = "selection"


@dataclass
class TransformState:
    """Steady and live transform components.

    ``steady_*`` values are committed state; ``live_*`` values exist only
    while a gesture is active and are identity (zero offset, factor 1.0)
    otherwise.
    """
    steady_pan: Point = field(default_factory=Point)
    steady_zoom: float = 1.0
    live_pan: Point = field(default_factory=Point)
    live_zoom: float = 1.0
    live_selection_pan: Point = field(default_factory=Point)
    live_selection_zoom: float = 1.0
    pinch_target: Optional[PinchTarget] = None


class TransformEngine:
    """Pan/zoom state plus the position, scale and opacity of each emoji.

    ``selection`` arguments are the ids of the currently selected emojis;
    the engine itself does not own the selection.

    Args:
        state: Initial transform state (defaults to identity).
        selected_opacity: Opacity used to render selected emojis.
    """

    def __init__(self, state: Optional[TransformState] = None, selected_opacity: float = SELECTED_OPACITY):
        self.state = state or TransformState()
        self.selected_opacity = selected_opacity

    # ------------------------------------------------------------------
    # Effective transform
    # ------------------------------------------------------------------

    @property
    def steady_zoom(self) -> float:
        return self.state.steady_zoom

    @property
    def steady_pan(self) -> Point:
        return self.state.steady_pan

    @property
    def pinch_target(self) -> Optional[PinchTarget]:
        return self.state.pinch_target

    @property
    def effective_zoom(self) -> float:
        return self.state.steady_zoom * self.state.live_zoom

    @property
    def effective_pan(self) -> Point:
        """Pan offset in screen pixels."""
        return (self.state.steady_pan + self.state.live_pan) * self.effective_zoom

    # ------------------------------------------------------------------
    # Coordinate conversion
    # ------------------------------------------------------------------

    def document_to_screen(self, point: Point, canvas_size: Size) -> Point:
        # Live canvas zoom is carried by effective_pan and render_scale only;
        # positions scale with the steady zoom until the pinch is committed.
        p = Point(point[0], point[1]) * self.state.steady_zoom
        p = p + Point(canvas_size[0] / 2, canvas_size[1] / 2)
        return p + self.effective_pan

    def screen_to_document(self, point: Point, canvas_size: Size) -> Point:
        """Inverse of :meth:`document_to_screen`."""
        p = Point(point[0], point[1]) - Point(canvas_size[0] / 2, canvas_size[1] / 2)
        p = p - self.effective_pan
        return p / self.state.steady_zoom

    def screen_to_document_delta(self, translation: Point) -> Point:
        """Convert a gesture's screen translation into a document-space delta."""
        return Point(translation[0], translation[1]) / self.effective_zoom

    # ------------------------------------------------------------------
    # Per-emoji render values
    # ------------------------------------------------------------------

    def emoji_location(self, emoji: Emoji, selection: AbstractSet[int]) -> Point:
        """Document location, including the live drag preview when selected."""
        if emoji.id in selection:
            return emoji.location + self.state.live_selection_pan
        return emoji.location

    def screen_position(self, emoji: Emoji, canvas_size: Size, selection: AbstractSet[int]) -> Point:
        return self.document_to_screen(self.emoji_location(emoji, selection), canvas_size)

    def render_scale(self, emoji: Emoji, selection: AbstractSet[int]) -> float:
        """Font size to render *emoji* at this frame."""
        factor = self.state.live_selection_zoom if emoji.id in selection else 1.0
        return emoji.size * self.effective_zoom * factor

    def opacity(self, emoji: Emoji, selection: AbstractSet[int]) -> float:
        return self.selected_opacity if emoji.id in selection else 1.0

    # ------------------------------------------------------------------
    # Zoom to fit
    # ------------------------------------------------------------------

    def fit_to_canvas(self, image_size: Optional[Size], canvas_size: Optional[Size]) -> bool:
        """Zoom so the whole image fits inside the canvas.

        Returns:
            True if the steady zoom changed, False for missing or
            non-positive dimensions.
        """
        if image_size is None or canvas_size is None:
            return False
        iw, ih = image_size
        cw, ch = canvas_size
        if iw <= 0 or ih <= 0 or cw <= 0 or ch <= 0:
            trace(f"fit_to_canvas: invalid geometry image={tuple(image_size)} canvas={tuple(canvas_size)}", "WARN")
            return False
        self.state.steady_zoom = min(cw / iw, ch / ih)
        trace(f"fit_to_canvas: steady_zoom={self.state.steady_zoom:.4f}", "GESTURE")
        return True

    # ------------------------------------------------------------------
    # Live gesture state
    # ------------------------------------------------------------------

    def set_live_pan(self, offset: Point):
        self.state.live_pan = Point(offset[0], offset[1])

    def commit_pan(self, offset: Point):
        """Fold a finished canvas drag into the steady pan."""
        self.state.steady_pan = self.state.steady_pan + offset
        self.state.live_pan = Point()

    def set_live_selection_pan(self, offset: Point):
        self.state.live_selection_pan = Point(offset[0], offset[1])

    def begin_pinch(self, target: PinchTarget):
        self.state.pinch_target = target

    def end_pinch(self):
        self.state.pinch_target = None
        self.state.live_zoom = 1.0
        self.state.live_selection_zoom = 1.0

    def set_live_zoom(self, factor: float):
        if _is_scale_factor(factor):
            self.state.live_zoom = factor

    def commit_zoom(self, factor: float):
        """Fold a finished canvas pinch into the steady zoom."""
        zoom = self.state.steady_zoom * factor if _is_scale_factor(factor) else 0.0
        if _is_scale_factor(zoom):
            self.state.steady_zoom = zoom
        else:
            trace(f"commit_zoom: ignoring factor {factor}", "WARN")
        self.state.live_zoom = 1.0

    def set_live_selection_zoom(self, factor: float):
        if _is_scale_factor(factor):
            self.state.live_selection_zoom = factor

    # ------------------------------------------------------------------
    # Persistence of the steady state
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pan": [self.state.steady_pan.x, self.state.steady_pan.y],
            "zoom": self.state.steady_zoom,
        }

    @classmethod
    def from_dict(cls, d: Optional[Dict[str, Any]], selected_opacity: float = SELECTED_OPACITY) -> "TransformEngine":
        state = TransformState()
        if isinstance(d, dict):
            pan = d.get("pan")
            if isinstance(pan, (list, tuple)) and len(pan) == 2:
                try:
                    state.steady_pan = Point(float(pan[0]), float(pan[1]))
                except (TypeError, ValueError):
                    pass
            zoom = d.get("zoom")
            if isinstance(zoom, (int, float)) and _is_scale_factor(zoom):
                state.steady_zoom = float(zoom)
        return cls(state, selected_opacity=selected_opacity)
