"""
transform/router.py

Selection-aware routing of resolved gesture events.

``route_gesture`` looks at the event, the current selection and the current
transform state and returns the commands to apply. It never mutates anything,
so the routing rules can be exercised without a widget or an event loop.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import AbstractSet, FrozenSet, Optional, Tuple, Union

from models import Point, Size
from transform.engine import PinchTarget, TransformEngine


class DragScope(enum.Enum):
    """What a drag gesture was recognized on."""
    CANVAS = "canvas"
    SELECTION = "selection"


# ----------------------------
# Gesture events
# ----------------------------

@dataclass(frozen=True)
class Tap:
    target_id: Optional[int] = None  # None = empty canvas


@dataclass(frozen=True)
class LongPress:
    target_id: int


@dataclass(frozen=True)
class DoubleTap:
    canvas_size: Size


@dataclass(frozen=True)
class DragUpdate:
    translation: Point  # screen pixels since the drag started
    scope: DragScope = DragScope.CANVAS


@dataclass(frozen=True)
class DragEnd:
    translation: Point
    scope: DragScope = DragScope.CANVAS


@dataclass(frozen=True)
class PinchUpdate:
    factor: float  # cumulative magnification since the pinch started


@dataclass(frozen=True)
class PinchEnd:
    factor: float


@dataclass(frozen=True)
class Drop:
    location: Point  # screen pixels
    canvas_size: Size
    text: Optional[str] = None
    url: Optional[str] = None


GestureEvent = Union[Tap, LongPress, DoubleTap, DragUpdate, DragEnd, PinchUpdate, PinchEnd, Drop]


# ----------------------------
# Commands
# ----------------------------

@dataclass(frozen=True)
class SetSelection:
    ids: FrozenSet[int]


@dataclass(frozen=True)
class RemoveEmoji:
    emoji_id: int


@dataclass(frozen=True)
class FitToCanvas:
    canvas_size: Size


@dataclass(frozen=True)
class SetLivePan:
    offset: Point  # document units


@dataclass(frozen=True)
class CommitPan:
    offset: Point


@dataclass(frozen=True)
class SetLiveSelectionPan:
    offset: Point


@dataclass(frozen=True)
class MoveEmojis:
    ids: FrozenSet[int]
    offset: Point


@dataclass(frozen=True)
class BeginPinch:
    target: PinchTarget


@dataclass(frozen=True)
class EndPinch:
    """Clear the latched pinch branch and both live zoom factors."""


@dataclass(frozen=True)
class SetLiveZoom:
    factor: float


@dataclass(frozen=True)
class CommitZoom:
    factor: float


@dataclass(frozen=True)
class SetLiveSelectionZoom:
    factor: float


@dataclass(frozen=True)
class ScaleEmojis:
    ids: FrozenSet[int]
    factor: float


@dataclass(frozen=True)
class AddEmoji:
    text: str
    location: Point  # document units
    size: float


@dataclass(frozen=True)
class SetBackgroundURL:
    url: Optional[str]


Command = Union[
    SetSelection, RemoveEmoji, FitToCanvas, SetLivePan, CommitPan, SetLiveSelectionPan,
    MoveEmojis, BeginPinch, EndPinch, SetLiveZoom, CommitZoom, SetLiveSelectionZoom, ScaleEmojis,
    AddEmoji, SetBackgroundURL,
]


# ----------------------------
# Routing
# ----------------------------

def _pinch_target(selection: AbstractSet[int], engine: TransformEngine) -> Tuple[PinchTarget, Tuple[Command, ...]]:
    """Return the latched pinch branch, latching a new one if none is active."""
    if engine.pinch_target is not None:
        return engine.pinch_target, ()
    target = PinchTarget.SELECTION if selection else PinchTarget.CANVAS
    return target, (BeginPinch(target),)


def route_gesture(
    event: GestureEvent,
    selection: AbstractSet[int],
    engine: TransformEngine,
    default_emoji_size: float,
) -> Tuple[Command, ...]:
    """Decide what a resolved gesture does.

    Args:
        event: The gesture event from the recognizer.
        selection: Ids of the currently selected emojis.
        engine: Current transform state (read only).
        default_emoji_size: Screen size of a newly dropped emoji.

    Returns:
        Commands to apply in order. Empty when the event does nothing.
    """
    if isinstance(event, Tap):
        if event.target_id is None:
            return (SetSelection(frozenset()),)
        return (SetSelection(frozenset(selection) ^ {event.target_id}),)

    if isinstance(event, LongPress):
        commands: Tuple[Command, ...] = (RemoveEmoji(event.target_id),)
        if event.target_id in selection:
            commands += (SetSelection(frozenset(selection) - {event.target_id}),)
        return commands

    if isinstance(event, DoubleTap):
        return (FitToCanvas(event.canvas_size),)

    if isinstance(event, (DragUpdate, DragEnd)):
        delta = engine.screen_to_document_delta(event.translation)
        if event.scope is DragScope.SELECTION:
            if isinstance(event, DragUpdate):
                return (SetLiveSelectionPan(delta),) if selection else ()
            reset = SetLiveSelectionPan(Point())
            if not selection:
                return (reset,)
            return (MoveEmojis(frozenset(selection), delta), reset)
        if isinstance(event, DragUpdate):
            return (SetLivePan(delta),)
        return (CommitPan(delta),)

    if isinstance(event, PinchUpdate):
        target, begin = _pinch_target(selection, engine)
        if target is PinchTarget.CANVAS:
            return begin + (SetLiveZoom(event.factor),)
        return begin + (SetLiveSelectionZoom(event.factor),)

    if isinstance(event, PinchEnd):
        target, begin = _pinch_target(selection, engine)
        if target is PinchTarget.CANVAS:
            return begin + (CommitZoom(event.factor), EndPinch())
        return begin + (ScaleEmojis(frozenset(selection), event.factor), EndPinch())

    if isinstance(event, Drop):
        if event.url:
            return (SetBackgroundURL(event.url),)
        if event.text:
            location = engine.screen_to_document(event.location, event.canvas_size)
            return (AddEmoji(event.text, location, default_emoji_size / engine.effective_zoom),)
        return ()

    raise TypeError(f"Unknown gesture event: {event!r}")
