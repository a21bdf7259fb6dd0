"""Background image work dispatched to Qt's thread pool.

Workers only receive immutable inputs (file names, decoded images, transform
parameters) and hand results back through Qt signals; they never touch the
photo store.
"""

from __future__ import annotations

import itertools
from typing import Any

from PySide6.QtCore import QObject, QRunnable, QThreadPool, Signal
from loguru import logger

from core.errors import PhotoJournalError
from core.models import TransformParams
from core.services.compositor import REFERENCE_CELL_WIDTH, CompareCompositor


class ImageTaskSignals(QObject):
    """Signals shared by every task started from one `ImageTaskRunner`."""

    imageLoaded = Signal(str, str, object)
    """(token, file_name, image or None) after a thumbnail/full-size load."""

    compositeReady = Signal(str, object)
    """(token, image) after a comparison render."""

    failed = Signal(str, str)
    """(token, human-readable message) when a render fails."""


class _ImageTask(QRunnable):
    """Load a thumbnail (``side > 0``) or full-size image from the cache."""

    def __init__(
        self, *, file_name: str, side: int, cache: Any, signals: ImageTaskSignals, token: str
    ) -> None:
        super().__init__()
        self._file_name = file_name
        self._side = side
        self._cache = cache
        self._signals = signals
        self._token = token

    def run(self) -> None:  # type: ignore[override]
        if self._side > 0:
            img = self._cache.get_thumbnail(self._file_name, self._side)
        else:
            img = self._cache.get(self._file_name)
        self._signals.imageLoaded.emit(self._token, self._file_name, img)


class _CompositeTask(QRunnable):
    """Render a comparison image off the GUI thread."""

    def __init__(
        self,
        *,
        compositor: CompareCompositor,
        images: tuple[Any, Any],
        params: tuple[TransformParams, TransformParams],
        labels: tuple[str | None, str | None],
        screen_cell_width: float,
        signals: ImageTaskSignals,
        token: str,
    ) -> None:
        super().__init__()
        self._compositor = compositor
        self._images = images
        self._params = params
        self._labels = labels
        self._screen_cell_width = screen_cell_width
        self._signals = signals
        self._token = token

    def run(self) -> None:  # type: ignore[override]
        try:
            img = self._compositor.composite(
                self._images[0],
                self._images[1],
                self._params[0],
                self._params[1],
                self._labels[0],
                self._labels[1],
                self._screen_cell_width,
            )
        except PhotoJournalError as ex:
            logger.error("Composite task failed: {}", ex)
            self._signals.failed.emit(self._token, ex.user_message)
            return
        self._signals.compositeReady.emit(self._token, img)


class ImageTaskRunner:
    """Dispatches image tasks to a thread pool.

    Tokens:
    - Full-size image: "single|{file_name}|0"
    - Thumbnail: "grid|{file_name}|{side}"
    - Comparison render: "composite|{n}"
    """

    def __init__(
        self,
        *,
        cache: Any,
        compositor: CompareCompositor | None = None,
        pool: QThreadPool | None = None,
    ) -> None:
        self._cache = cache
        self._compositor = compositor
        self._pool = pool or QThreadPool.globalInstance()
        self._counter = itertools.count(1)
        self.signals = ImageTaskSignals()

    def request_full_size(self, file_name: str) -> str:
        """Request a full-size image. Returns the token string."""
        token = f"single|{file_name}|0"
        self._start_load(file_name, 0, token)
        return token

    def request_thumbnail(self, file_name: str, side: int) -> str:
        """Request a thumbnail bounded by ``side``. Returns the token string."""
        token = f"grid|{file_name}|{side}"
        self._start_load(file_name, side, token)
        return token

    def _start_load(self, file_name: str, side: int, token: str) -> None:
        task = _ImageTask(
            file_name=file_name, side=side, cache=self._cache, signals=self.signals, token=token
        )
        self._pool.start(task)

    def request_composite(
        self,
        left: Any,
        right: Any,
        left_params: TransformParams,
        right_params: TransformParams,
        left_label: str | None = None,
        right_label: str | None = None,
        screen_cell_width: float = REFERENCE_CELL_WIDTH,
    ) -> str:
        """Request a comparison render. Returns the token string."""
        if self._compositor is None:
            raise RuntimeError("ImageTaskRunner was created without a compositor")
        token = f"composite|{next(self._counter)}"
        task = _CompositeTask(
            compositor=self._compositor,
            images=(left, right),
            params=(left_params, right_params),
            labels=(left_label, right_label),
            screen_cell_width=screen_cell_width,
            signals=self.signals,
            token=token,
        )
        self._pool.start(task)
        return token

    def wait(self, msecs: int = -1) -> bool:
        """Block until queued tasks finish (shutdown, tests)."""
        return self._pool.waitForDone(msecs)
