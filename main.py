"""
main.py

EmojiArt - place emojis over a background image and arrange them with
pan, zoom and drag gestures.

Usage:
    python main.py                      # open the most recently stored document
    python main.py --new                # start a new document
    python main.py --document <id>      # open (or create) a specific document
    python main.py --list               # print stored document ids
"""

from __future__ import annotations

import argparse
import sys
from typing import List, Optional

from PyQt6.QtGui import QAction, QGuiApplication
from PyQt6.QtWidgets import QApplication, QMainWindow, QMessageBox, QToolBar

from canvas.view import EmojiArtView
from debug_trace import close_log, trace, trace_exception
from models import Point
from session import EmojiArtSession
from settings import SettingsManager, get_settings
from storage import Autosaver, DocumentStore
from transform.router import Drop


class MainWindow(QMainWindow):
    """Top-level window: palette toolbar, background actions and the canvas."""

    def __init__(self, session: EmojiArtSession, parent=None):
        super().__init__(parent)
        self.session = session
        self.setWindowTitle(f"EmojiArt - {session.session_id}")

        self.view = EmojiArtView(session, self)
        self.setCentralWidget(self.view)

        self._build_toolbar()
        session.changed.connect(self._update_status)
        session.fetcher.fetch_failed.connect(self._on_fetch_failed)
        self._update_status()

    def _build_toolbar(self):
        tb = QToolBar("Palette", self)
        tb.setMovable(False)
        self.addToolBar(tb)

        for ch in self._palette_glyphs(self.session.settings.palette.emojis):
            act = QAction(ch, self)
            act.setToolTip(f"Add {ch} at the center of the canvas")
            act.triggered.connect(lambda _checked=False, text=ch: self._add_at_center(text))
            tb.addAction(act)

        tb.addSeparator()

        paste_act = QAction("Paste Background", self)
        paste_act.setShortcut("Ctrl+Shift+V")
        paste_act.triggered.connect(self.paste_background)
        tb.addAction(paste_act)

        fit_act = QAction("Zoom to Fit", self)
        fit_act.setShortcut("Ctrl+0")
        fit_act.triggered.connect(lambda: self.session.fit_to_canvas(self.view.canvas_size()))
        tb.addAction(fit_act)

    @staticmethod
    def _palette_glyphs(palette: str) -> List[str]:
        """Split a palette string into glyphs, keeping variation selectors attached."""
        glyphs: List[str] = []
        for ch in palette:
            if glyphs and (ch in ("\ufe0f", "\u200d") or glyphs[-1].endswith("\u200d")):
                glyphs[-1] += ch
            elif not ch.isspace():
                glyphs.append(ch)
        return glyphs

    def _add_at_center(self, text: str):
        size = self.view.canvas_size()
        self.session.handle(Drop(Point(size.width / 2, size.height / 2), size, text=text))

    def paste_background(self):
        """Use the URL on the clipboard as the background, after confirmation."""
        text = (QGuiApplication.clipboard().text() or "").strip()
        if not text.lower().startswith(("http://", "https://", "file://")):
            QMessageBox.information(
                self, "Paste Background",
                "Copy the URL of an image to the clipboard and use this action "
                "to make it the background of your document.",
            )
            return
        if text == self.session.background_url:
            return
        reply = QMessageBox.question(self, "Paste Background", f"Replace your background with {text}?")
        if reply == QMessageBox.StandardButton.Yes:
            self.session.set_background_url(text)

    def _update_status(self):
        if self.session.is_loading:
            msg = f"Loading {self.session.background_url} ..."
        else:
            msg = f"{len(self.session.emojis)} emoji, {len(self.session.selection)} selected, zoom {self.session.engine.effective_zoom:.0%}"
        self.statusBar().showMessage(msg)

    def _on_fetch_failed(self, url: str, message: str):
        self.statusBar().showMessage(f"Could not load background: {url}")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="EmojiArt canvas editor")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--document", help="Document id to open (created if missing)")
    group.add_argument("--new", action="store_true", help="Start a new document")
    group.add_argument("--list", action="store_true", help="List stored document ids and exit")
    return parser.parse_args(argv)


def main():
    """Application entry point."""
    trace("Application starting", "MAIN")
    args = parse_args(sys.argv[1:])

    settings_manager: SettingsManager = get_settings()
    settings_manager.ensure_file_complete()
    settings = settings_manager.settings
    store = DocumentStore(settings_manager.get_documents_dir())

    if args.list:
        for doc_id in store.document_ids():
            print(doc_id)
        return

    doc_id = args.document
    if doc_id is None and not args.new:
        doc_id = store.most_recent()

    app = QApplication(sys.argv[:1])

    snapshot = store.load(doc_id) if doc_id else None
    trace(f"Opening document {doc_id or '(new)'}", "MAIN")
    session = EmojiArtSession.from_snapshot(snapshot, session_id=doc_id, settings=settings)
    autosaver = Autosaver(session, store, delay_ms=settings.storage.autosave_delay_ms)

    def save_on_quit():
        trace("Saving on quit", "MAIN")
        autosaver.flush()
        session.shutdown()
        settings_manager.save()
        close_log()

    app.aboutToQuit.connect(save_on_quit)

    w = MainWindow(session)
    w.resize(1000, 760)
    w.show()
    trace("Entering event loop", "MAIN")
    sys.exit(app.exec())


if __name__ == "__main__":
    # Set up global exception handler to catch crashes
    def excepthook(exc_type, exc_value, exc_tb):
        import traceback
        trace("UNCAUGHT EXCEPTION:", "CRASH")
        trace("".join(traceback.format_exception(exc_type, exc_value, exc_tb)), "CRASH")
        close_log()
        sys.__excepthook__(exc_type, exc_value, exc_tb)

    sys.excepthook = excepthook

    try:
        main()
    except Exception as e:
        trace(f"FATAL: {type(e).__name__}: {e}", "CRASH")
        trace_exception("Fatal exception")
        close_log()
        raise
