"""
background/fetcher.py

Background image fetch pipeline.

Every write of the background URL starts a new fetch generation. The fetch
runs on a worker thread and reports back through queued signals; a result is
applied only if its generation and URL are still current, so a slow response
for an old URL can never overwrite a newer background.
"""

from __future__ import annotations

import enum
import threading
import traceback
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from PIL import Image
from PyQt6 import sip
from PyQt6.QtCore import QObject, QThread, pyqtSignal

from background.transport import BackgroundError, FetchCancelled, decode_image, http_fetch
from debug_trace import trace
from models import Size

Transport = Callable[..., bytes]


class FetchState(enum.Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class BackgroundAsset:
    """Decoded background plus the URL it was loaded for.

    An asset is never patched: each transition publishes a new one.
    """
    source_url: Optional[str] = None
    image: Optional[Image.Image] = None

    @property
    def is_loading(self) -> bool:
        return self.source_url is not None and self.image is None

    @property
    def size(self) -> Optional[Size]:
        if self.image is None:
            return None
        w, h = self.image.size
        return Size(float(w), float(h))


class FetchWorker(QObject):
    """
    Background worker that retrieves and decodes one background image.

    Signals:
        finished(int, str, object): generation, url and the decoded image
        failed(int, str, str): generation, url and an error message
    """

    finished = pyqtSignal(int, str, object)
    failed = pyqtSignal(int, str, str)

    def __init__(self, generation: int, url: str, transport: Transport = http_fetch, timeout: float = 15.0):
        super().__init__()
        self.generation = generation
        self.url = url
        self.transport = transport
        self.timeout = timeout
        self._cancelled = threading.Event()

    def cancel(self):
        """Ask the transport to stop reading. Safe to call from any thread."""
        self._cancelled.set()

    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    def run(self):
        """Fetch and decode, then emit exactly one of finished/failed."""
        try:
            data = self.transport(self.url, self.timeout, self.is_cancelled)
            if self.is_cancelled():
                raise FetchCancelled(self.url)
            image = decode_image(data)
            self.finished.emit(self.generation, self.url, image)
        except BackgroundError as e:
            self.failed.emit(self.generation, self.url, f"{type(e).__name__}: {e}")
        except Exception as e:
            msg = f"{e}\n\n{traceback.format_exc()}"
            self.failed.emit(self.generation, self.url, msg)


class BackgroundFetcher(QObject):
    """
    Owns the background asset for one document and keeps at most one fetch current.

    Signals:
        asset_changed(object): a new BackgroundAsset was published
        fetch_failed(str, str): url and message of a current fetch that failed
        stale_discarded(str): url of a superseded fetch whose result was dropped

    Args:
        transport: Callable ``(url, timeout, is_cancelled) -> bytes``.
        timeout: Seconds passed through to the transport.
    """

    asset_changed = pyqtSignal(object)
    fetch_failed = pyqtSignal(str, str)
    stale_discarded = pyqtSignal(str)

    def __init__(self, transport: Transport = http_fetch, timeout: float = 15.0, parent=None):
        super().__init__(parent)
        self.transport = transport
        self.timeout = timeout
        self._generation = 0
        self._url: Optional[str] = None
        self._state = FetchState.IDLE
        self._asset = BackgroundAsset()
        self._worker: Optional[FetchWorker] = None
        # Running threads keyed by generation; kept referenced until they finish
        self._threads: Dict[int, Tuple[QThread, FetchWorker]] = {}

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def asset(self) -> BackgroundAsset:
        return self._asset

    @property
    def state(self) -> FetchState:
        return self._state

    @property
    def url(self) -> Optional[str]:
        return self._url

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_loading(self) -> bool:
        return self._asset.is_loading

    # ------------------------------------------------------------------
    # Triggering
    # ------------------------------------------------------------------

    def set_url(self, url: Optional[str]):
        """Start fetching *url*, superseding any fetch in flight.

        Setting the same URL again still starts a new fetch. ``None`` clears
        the background without scheduling anything.
        """
        self._generation += 1
        self._cancel_current()
        self._url = url

        if url is None:
            self._state = FetchState.IDLE
            self._publish(BackgroundAsset())
            return

        self._state = FetchState.FETCHING
        self._publish(BackgroundAsset(source_url=url))
        trace(f"fetch #{self._generation} started: {url}", "FETCH")
        self._start_fetch(self._generation, url)

    def _cancel_current(self):
        if self._worker is not None:
            trace(f"fetch #{self._worker.generation} cancelled: {self._worker.url}", "FETCH")
            self._worker.cancel()
            self._worker = None

    def _start_fetch(self, generation: int, url: str):
        """Run a FetchWorker for *url* on its own QThread."""
        thread = QThread()
        worker = FetchWorker(generation, url, self.transport, self.timeout)
        worker.moveToThread(thread)

        thread.started.connect(worker.run)
        worker.finished.connect(self._on_fetch_finished)
        worker.failed.connect(self._on_fetch_failed)

        worker.finished.connect(thread.quit)
        worker.failed.connect(thread.quit)

        thread.finished.connect(self._on_thread_finished)
        thread.finished.connect(worker.deleteLater)
        thread.finished.connect(thread.deleteLater)

        self._worker = worker
        self._threads[generation] = (thread, worker)
        thread.start()

    def _on_thread_finished(self):
        thread = self.sender()
        for generation, (t, _) in list(self._threads.items()):
            if t is thread:
                del self._threads[generation]

    def shutdown(self, wait_ms: int = 2000):
        """Cancel the current fetch and wait for worker threads to exit.

        A thread whose transport ignores the cancel flag may outlive the wait.
        It stays in ``_threads`` until it finishes, and its C++ object is
        handed to Qt so dropping the Python wrapper never destroys a running
        QThread.
        """
        self._generation += 1
        self._cancel_current()
        for generation, (thread, worker) in list(self._threads.items()):
            worker.cancel()
            thread.quit()
            if thread.wait(wait_ms):
                del self._threads[generation]
                continue
            trace(f"fetch #{generation} still running after {wait_ms} ms", "FETCH")
            sip.transferto(thread, None)
            sip.transferto(worker, None)

    @property
    def running_fetches(self) -> int:
        """Number of worker threads that have not finished yet."""
        return len(self._threads)

    # ------------------------------------------------------------------
    # Completion (runs on the control thread)
    # ------------------------------------------------------------------

    def _is_current(self, generation: int, url: str) -> bool:
        if generation == self._generation and url == self._url:
            return True
        trace(f"fetch #{generation} discarded as stale: {url}", "FETCH")
        self.stale_discarded.emit(url)
        return False

    def _on_fetch_finished(self, generation: int, url: str, image):
        if not self._is_current(generation, url):
            return
        self._worker = None
        self._state = FetchState.SUCCEEDED
        trace(f"fetch #{generation} succeeded: {url} {image.size[0]}x{image.size[1]}", "FETCH")
        self._publish(BackgroundAsset(source_url=url, image=image))
        self._state = FetchState.IDLE

    def _on_fetch_failed(self, generation: int, url: str, message: str):
        if not self._is_current(generation, url):
            return
        self._worker = None
        self._state = FetchState.FAILED
        trace(f"fetch #{generation} failed: {url}: {message}", "FETCH")
        # Previous image is not retained; an empty asset also clears the loading indicator
        self._publish(BackgroundAsset())
        self.fetch_failed.emit(url, message)
        self._state = FetchState.IDLE

    def _publish(self, asset: BackgroundAsset):
        self._asset = asset
        self.asset_changed.emit(asset)
