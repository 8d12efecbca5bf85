"""
models.py

Data models and constants for the EmojiArt editor.

The document is plain data: an ordered list of placed emojis plus an optional
background URL. Pan/zoom and selection live in the session, not here.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, NamedTuple, Optional

from debug_trace import trace
from settings import DEFAULT_EMOJI_SIZE, DEFAULT_PALETTE

SELECTED_OPACITY = 0.5

__all__ = [
    "DEFAULT_EMOJI_SIZE",
    "DEFAULT_PALETTE",
    "SELECTED_OPACITY",
    "Emoji",
    "EmojiArt",
    "Point",
    "Size",
    "round_half_even",
]


# ----------------------------
# Geometry values
# ----------------------------

class Point(NamedTuple):
    """A point or offset in either document or screen space."""
    x: float = 0.0
    y: float = 0.0

    def __add__(self, other):
        return Point(self.x + other[0], self.y + other[1])

    def __sub__(self, other):
        return Point(self.x - other[0], self.y - other[1])

    def __mul__(self, k):
        return Point(self.x * k, self.y * k)

    def __truediv__(self, k):
        return Point(self.x / k, self.y / k)

    def __neg__(self):
        return Point(-self.x, -self.y)


class Size(NamedTuple):
    """A width/height pair (canvas size, image size)."""
    width: float
    height: float

    @property
    def is_positive(self) -> bool:
        return self.width > 0 and self.height > 0


def round_half_even(value: float) -> int:
    """Round to the nearest integer, ties going to the even neighbour.

    Python's built-in ``round()`` already implements this rule; the helper
    exists so call sites name the policy they rely on.
    """
    return int(round(value))


# ----------------------------
# Document model
# ----------------------------

@dataclass
class Emoji:
    """A placed glyph.

    ``x``/``y`` are document-space offsets from the canvas center and
    ``size`` is the nominal font size at zoom 1.0.
    """
    id: int
    text: str
    x: int
    y: int
    size: int

    @property
    def location(self) -> Point:
        return Point(float(self.x), float(self.y))

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "text": self.text, "x": self.x, "y": self.y, "size": self.size}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Emoji":
        """Create an Emoji from a snapshot dict.

        Raises:
            KeyError, TypeError, ValueError: if a field is missing or has the
                wrong type.
        """
        return cls(
            id=int(d["id"]),
            text=str(d["text"]),
            x=int(d["x"]),
            y=int(d["y"]),
            size=int(d["size"]),
        )


@dataclass
class EmojiArt:
    """The document: placed emojis in z-order plus the background reference.

    All mutations are id-based. An id that is not in the document is reported
    through the trace log and the operation returns ``False`` without touching
    any state.
    """
    emojis: List[Emoji] = field(default_factory=list)
    background_url: Optional[str] = None
    _next_id: int = field(default=1, repr=False)

    def __post_init__(self):
        highest = max((e.id for e in self.emojis), default=0)
        self._next_id = max(self._next_id, highest + 1)

    # -- lookup --

    def _index(self, emoji_id: int) -> Optional[int]:
        for i, e in enumerate(self.emojis):
            if e.id == emoji_id:
                return i
        return None

    def emoji(self, emoji_id: int) -> Optional[Emoji]:
        """Return the emoji with *emoji_id*, or None."""
        idx = self._index(emoji_id)
        return self.emojis[idx] if idx is not None else None

    def ids(self) -> List[int]:
        return [e.id for e in self.emojis]

    def _not_found(self, op: str, emoji_id: int) -> bool:
        trace(f"{op}: no emoji with id {emoji_id}", "WARN")
        return False

    # -- mutations --

    def add_emoji(self, text: str, x: float, y: float, size: float) -> int:
        """Append a new emoji and return its freshly allocated id.

        Ids come from a counter that only moves forward, so an id retired by
        ``remove_emoji`` is never handed out again.
        """
        emoji_id = self._next_id
        self._next_id += 1
        self.emojis.append(Emoji(emoji_id, text, round_half_even(x), round_half_even(y), round_half_even(size)))
        trace(f"add_emoji: id={emoji_id} text={text!r} at ({x}, {y}) size={size}", "DOC")
        return emoji_id

    def move_emoji(self, emoji_id: int, dx: float, dy: float) -> bool:
        """Offset an emoji by a document-space delta, rounded half-to-even."""
        idx = self._index(emoji_id)
        if idx is None:
            return self._not_found("move_emoji", emoji_id)
        if not (math.isfinite(dx) and math.isfinite(dy)):
            trace(f"move_emoji: ignoring non-finite offset ({dx}, {dy}) for id {emoji_id}", "WARN")
            return False
        e = self.emojis[idx]
        e.x += round_half_even(dx)
        e.y += round_half_even(dy)
        return True

    def scale_emoji(self, emoji_id: int, factor: float) -> bool:
        """Multiply an emoji's size by *factor* (must be > 0).

        No minimum or maximum size is enforced here.
        """
        idx = self._index(emoji_id)
        if idx is None:
            return self._not_found("scale_emoji", emoji_id)
        if not (factor > 0 and math.isfinite(factor)):
            trace(f"scale_emoji: ignoring factor {factor} for id {emoji_id}", "WARN")
            return False
        e = self.emojis[idx]
        size = e.size * factor
        if not math.isfinite(size):
            trace(f"scale_emoji: size overflow for id {emoji_id}", "WARN")
            return False
        e.size = round_half_even(size)
        return True

    def remove_emoji(self, emoji_id: int) -> bool:
        idx = self._index(emoji_id)
        if idx is None:
            return self._not_found("remove_emoji", emoji_id)
        del self.emojis[idx]
        trace(f"remove_emoji: id={emoji_id}", "DOC")
        return True

    # -- serialization --

    def to_dict(self) -> Dict[str, Any]:
        return {
            "background_url": self.background_url,
            "emojis": [e.to_dict() for e in self.emojis],
            "next_id": self._next_id,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "EmojiArt":
        """Rebuild a document from a snapshot dict.

        Malformed emoji records and duplicate ids are dropped (first one wins)
        so the no-duplicate-id invariant holds for whatever was stored.
        """
        if not isinstance(d, dict):
            return cls()
        emojis: List[Emoji] = []
        seen = set()
        records = d.get("emojis")
        if not isinstance(records, list):
            if records is not None:
                trace(f"from_dict: emojis is not a list ({type(records).__name__}), starting empty", "WARN")
            records = []
        for rec in records:
            try:
                e = Emoji.from_dict(rec)
            except (KeyError, TypeError, ValueError, OverflowError):
                trace(f"from_dict: skipping malformed emoji record {rec!r}", "WARN")
                continue
            if e.id in seen:
                trace(f"from_dict: skipping duplicate emoji id {e.id}", "WARN")
                continue
            seen.add(e.id)
            emojis.append(e)
        url = d.get("background_url")
        next_id = d.get("next_id", 1)
        if not isinstance(next_id, int):
            next_id = 1
        return cls(emojis=emojis, background_url=url if isinstance(url, str) and url else None, _next_id=next_id)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_json(cls, text: Optional[str]) -> "EmojiArt":
        """Decode a JSON snapshot; empty or invalid input gives an empty document."""
        if not text:
            return cls()
        try:
            return cls.from_dict(json.loads(text))
        except json.JSONDecodeError:
            trace("from_json: snapshot is not valid JSON, starting empty", "WARN")
            return cls()
