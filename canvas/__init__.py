"""
canvas package

PyQt6 widget that renders an EmojiArt session and feeds it gestures.
"""

from canvas.view import EmojiArtView, pil_to_qimage

__all__ = ["EmojiArtView", "pil_to_qimage"]
