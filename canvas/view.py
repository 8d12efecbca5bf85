"""
canvas/view.py

Widget that paints an EmojiArt session and turns mouse, wheel and drop input
into resolved gesture events for the session's router.
"""

from __future__ import annotations

import math
from typing import Optional

from PyQt6.QtCore import QEvent, QPointF, QRectF, Qt, QTimer
from PyQt6.QtGui import QColor, QFont, QImage, QPainter
from PyQt6.QtWidgets import QApplication, QWidget

from debug_trace import trace
from models import Point, Size
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

LOADING_GLYPH = "⌛"  # hourglass


def pil_to_qimage(image) -> QImage:
    """Copy an RGBA Pillow image into a QImage."""
    rgba = image.convert("RGBA")
    w, h = rgba.size
    data = rgba.tobytes("raw", "RGBA")
    return QImage(data, w, h, 4 * w, QImage.Format.Format_RGBA8888).copy()


class EmojiArtView(QWidget):
    """
    Canvas widget for one session.

    Input mapping:
    - Click on an emoji toggles its selection; click on empty canvas clears it
    - Holding the button on an emoji removes it
    - Dragging a selected emoji moves the whole selection; any other drag pans
    - Double-click zooms the background to fit
    - Wheel steps and trackpad pinches zoom (the selection if any, else the canvas)
    - Dropped text adds an emoji; a dropped URL becomes the background
    """

    def __init__(self, session: EmojiArtSession, parent=None):
        super().__init__(parent)
        self.session = session
        self.setAcceptDrops(True)
        self.setMouseTracking(False)
        self.setMinimumSize(200, 200)

        canvas = session.settings.canvas
        self._drag_threshold = canvas.drag_threshold
        self._wheel_factor = canvas.wheel_factor

        self._long_press_timer = QTimer(self)
        self._long_press_timer.setSingleShot(True)
        self._long_press_timer.setInterval(canvas.long_press_ms)
        self._long_press_timer.timeout.connect(self._on_long_press)

        # Background taps fire after the double-click interval; a double click cancels them
        self._background_tap_timer = QTimer(self)
        self._background_tap_timer.setSingleShot(True)
        self._background_tap_timer.setInterval(QApplication.styleHints().mouseDoubleClickInterval())
        self._background_tap_timer.timeout.connect(self._on_background_tap)

        # Press tracking
        self._press_pos: Optional[QPointF] = None
        self._press_target: Optional[int] = None
        self._drag_scope: Optional[DragScope] = None
        self._press_consumed = False

        # Trackpad pinch accumulates a factor between begin/end gestures
        self._pinch_factor: Optional[float] = None

        self._bg_source = None
        self._bg_qimage: Optional[QImage] = None

        session.changed.connect(self.update)

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    def canvas_size(self) -> Size:
        return Size(float(self.width()), float(self.height()))

    def resizeEvent(self, event):
        self.session.set_canvas_size(self.canvas_size())
        super().resizeEvent(event)

    # ------------------------------------------------------------------
    # Painting
    # ------------------------------------------------------------------

    def _background_qimage(self) -> Optional[QImage]:
        image = self.session.background_image
        if image is not self._bg_source:
            self._bg_source = image
            self._bg_qimage = pil_to_qimage(image) if image is not None else None
        return self._bg_qimage

    def paintEvent(self, event):
        painter = QPainter(self)
        painter.setRenderHint(QPainter.RenderHint.Antialiasing, True)
        painter.setRenderHint(QPainter.RenderHint.SmoothPixmapTransform, True)
        painter.fillRect(self.rect(), QColor(Qt.GlobalColor.white))

        size = self.canvas_size()
        engine = self.session.engine

        qimg = self._background_qimage()
        if qimg is not None:
            # Background is centered, scaled by the effective zoom and shifted by the pan
            zoom = engine.effective_zoom
            pan = engine.effective_pan
            w, h = qimg.width() * zoom, qimg.height() * zoom
            cx, cy = size.width / 2 + pan.x, size.height / 2 + pan.y
            painter.drawImage(QRectF(cx - w / 2, cy - h / 2, w, h), qimg)

        if self.session.is_loading:
            font = QFont()
            font.setPixelSize(48)
            painter.setFont(font)
            painter.drawText(self.rect(), Qt.AlignmentFlag.AlignCenter, LOADING_GLYPH)
            painter.end()
            return

        font = QFont()
        for emoji in self.session.emojis:
            px = self.session.render_scale(emoji)
            if px < 1:
                continue
            font.setPixelSize(max(1, int(round(px))))
            painter.setFont(font)
            painter.setOpacity(self.session.opacity(emoji))
            center = self.session.screen_position(emoji, size)
            box = QRectF(center.x - px, center.y - px, 2 * px, 2 * px)
            painter.drawText(box, Qt.AlignmentFlag.AlignCenter, emoji.text)
        painter.end()

    # ------------------------------------------------------------------
    # Mouse
    # ------------------------------------------------------------------

    def mousePressEvent(self, event):
        if event.button() != Qt.MouseButton.LeftButton:
            super().mousePressEvent(event)
            return
        pos = event.position()
        hit = self.session.emoji_at(Point(pos.x(), pos.y()), self.canvas_size())
        self._press_pos = pos
        self._press_target = hit.id if hit is not None else None
        self._drag_scope = None
        self._press_consumed = False
        if hit is not None:
            self._long_press_timer.start()
        event.accept()

    def mouseMoveEvent(self, event):
        if self._press_pos is None or self._press_consumed:
            return
        delta = event.position() - self._press_pos
        translation = Point(delta.x(), delta.y())
        if self._drag_scope is None:
            if math.hypot(translation.x, translation.y) < self._drag_threshold:
                return
            self._long_press_timer.stop()
            selected = self._press_target is not None and self._press_target in self.session.selection
            self._drag_scope = DragScope.SELECTION if selected else DragScope.CANVAS
            trace(f"drag started ({self._drag_scope.value})", "GESTURE")
        self.session.handle(DragUpdate(translation, self._drag_scope))
        event.accept()

    def mouseReleaseEvent(self, event):
        if event.button() != Qt.MouseButton.LeftButton or self._press_pos is None:
            super().mouseReleaseEvent(event)
            return
        self._long_press_timer.stop()
        if self._drag_scope is not None:
            delta = event.position() - self._press_pos
            self.session.handle(DragEnd(Point(delta.x(), delta.y()), self._drag_scope))
        elif not self._press_consumed:
            if self._press_target is None:
                self._background_tap_timer.start()
            else:
                self.session.handle(Tap(self._press_target))
        self._press_pos = None
        self._press_target = None
        self._drag_scope = None
        event.accept()

    def mouseDoubleClickEvent(self, event):
        if event.button() != Qt.MouseButton.LeftButton:
            super().mouseDoubleClickEvent(event)
            return
        self._background_tap_timer.stop()
        pos = event.position()
        if self.session.emoji_at(Point(pos.x(), pos.y()), self.canvas_size()) is None:
            self.session.handle(DoubleTap(self.canvas_size()))
        # Qt sends a release after the double-click; it must not become a tap
        self._press_pos = pos
        self._press_target = None
        self._drag_scope = None
        self._press_consumed = True
        event.accept()

    def _on_long_press(self):
        if self._press_target is None or self._drag_scope is not None:
            return
        trace(f"long press on {self._press_target}", "GESTURE")
        self._press_consumed = True
        self.session.handle(LongPress(self._press_target))

    def _on_background_tap(self):
        self.session.handle(Tap(None))

    # ------------------------------------------------------------------
    # Zoom
    # ------------------------------------------------------------------

    def wheelEvent(self, event):
        """Each wheel step is a complete pinch gesture."""
        steps = event.angleDelta().y() / 120.0
        if steps == 0:
            event.ignore()
            return
        factor = self._wheel_factor ** steps
        self.session.handle(PinchEnd(factor))
        event.accept()

    def event(self, event):
        if event.type() == QEvent.Type.NativeGesture:
            kind = event.gestureType()
            if kind == Qt.NativeGestureType.BeginNativeGesture:
                self._pinch_factor = 1.0
                return True
            if kind == Qt.NativeGestureType.ZoomNativeGesture and self._pinch_factor is not None:
                self._pinch_factor *= 1.0 + event.value()
                self.session.handle(PinchUpdate(self._pinch_factor))
                return True
            if kind == Qt.NativeGestureType.EndNativeGesture and self._pinch_factor is not None:
                self.session.handle(PinchEnd(self._pinch_factor))
                self._pinch_factor = None
                return True
        return super().event(event)

    # ------------------------------------------------------------------
    # Drag & drop
    # ------------------------------------------------------------------

    def dragEnterEvent(self, event):
        """Accept URL and plain text drops."""
        mime = event.mimeData()
        if mime.hasUrls() or mime.hasText():
            event.acceptProposedAction()
            return
        event.ignore()

    def dragMoveEvent(self, event):
        event.acceptProposedAction()

    def dropEvent(self, event):
        """Dropped URL replaces the background; dropped text becomes an emoji."""
        mime = event.mimeData()
        pos = event.position()
        location = Point(pos.x(), pos.y())
        if mime.hasUrls() and mime.urls():
            url = mime.urls()[0].toString()
            self.session.handle(Drop(location, self.canvas_size(), url=url))
        elif mime.hasText() and mime.text().strip():
            self.session.handle(Drop(location, self.canvas_size(), text=mime.text().strip()))
        else:
            event.ignore()
            return
        event.acceptProposedAction()
