"""
storage.py

JSON snapshot storage for EmojiArt documents.

Each document is stored under the key ``EmojiArtDocument.<id>`` as a JSON
file in the documents directory (see ``SettingsManager.get_documents_dir``).
The Autosaver writes the session snapshot shortly after the last change.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

from PyQt6.QtCore import QObject, QTimer

from debug_trace import trace, trace_call

KEY_PREFIX = "EmojiArtDocument."


def storage_key(document_id: str) -> str:
    return f"{KEY_PREFIX}{document_id}"


class DocumentStore:
    """Load and save document snapshots as JSON files.

    Args:
        directory: Folder holding one ``<key>.json`` per document.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def _path(self, document_id: str) -> Path:
        return self.directory / f"{storage_key(document_id)}.json"

    def load(self, document_id: str) -> Optional[Dict[str, Any]]:
        """Return the stored snapshot, or None if missing or unreadable."""
        path = self._path(document_id)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            trace(f"load {path.name} failed: {e}", "STORE")
            return None
        return data if isinstance(data, dict) else None

    def save(self, document_id: str, snapshot: Dict[str, Any]) -> None:
        """Write the snapshot atomically (temp file + rename)."""
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(document_id)
        fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=path.name, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(snapshot, f, ensure_ascii=False, indent=2)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
        trace(f"saved {path.name}", "STORE")

    def delete(self, document_id: str) -> bool:
        path = self._path(document_id)
        if path.exists():
            path.unlink()
            return True
        return False

    def document_ids(self) -> List[str]:
        """Ids of every stored document, sorted."""
        if not self.directory.exists():
            return []
        ids = []
        for p in self.directory.glob(f"{KEY_PREFIX}*.json"):
            ids.append(p.name[len(KEY_PREFIX):-len(".json")])
        return sorted(ids)

    def most_recent(self) -> Optional[str]:
        """Id of the most recently saved document, or None if there are none."""
        ids = self.document_ids()
        if not ids:
            return None
        return max(ids, key=lambda i: self._path(i).stat().st_mtime)


class Autosaver(QObject):
    """
    Saves a session's snapshot after its document stops changing.

    Each ``document_changed`` restarts a single-shot timer; when it fires the
    snapshot is written to the store under the session id.

    Args:
        session: The EmojiArtSession to watch.
        store: Where snapshots go.
        delay_ms: Quiet period before saving.
    """

    def __init__(self, session, store: DocumentStore, delay_ms: int = 500, parent=None):
        super().__init__(parent)
        self.session = session
        self.store = store
        self._timer = QTimer(self)
        self._timer.setSingleShot(True)
        self._timer.setInterval(delay_ms)
        self._timer.timeout.connect(self.save_now)
        session.document_changed.connect(self._timer.start)

    @property
    def pending(self) -> bool:
        return self._timer.isActive()

    @trace_call("STORE")
    def save_now(self):
        """Write the snapshot immediately, cancelling any pending save."""
        self._timer.stop()
        try:
            self.store.save(self.session.session_id, self.session.snapshot())
        except OSError as e:
            trace(f"autosave of {self.session.session_id} failed: {e}", "STORE")

    def flush(self):
        """Save now if a save is pending (call on quit)."""
        if self._timer.isActive():
            self.save_now()
