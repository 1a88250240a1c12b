"""
Undo/redo of paint strokes.

Each stroke is bracketed by `begin_stroke` / `commit_stroke`; the pre-stroke
snapshot goes on the undo stack when the stroke changed anything. Aborting a
stroke restores the pre-stroke snapshot instead of interrupting work.
"""

from __future__ import annotations

from contextlib import contextmanager
import logging
from typing import Iterator, Optional

from .runtime_defaults import DEFAULTS
from .serialization import PaintSnapshot
from .triangle_selector import TriangleSelector

_LOGGER = logging.getLogger(__name__)


class PaintHistory:
    def __init__(self, selector: TriangleSelector, *, limit: Optional[int] = None):
        self.selector = selector
        self.limit = int(DEFAULTS.history_limit if limit is None else max(1, int(limit)))
        self._undo: list[PaintSnapshot] = []
        self._redo: list[PaintSnapshot] = []
        self._pending: Optional[PaintSnapshot] = None

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    @property
    def in_stroke(self) -> bool:
        return self._pending is not None

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()
        self._pending = None

    def begin_stroke(self) -> None:
        if self._pending is not None:
            _LOGGER.debug("begin_stroke while a stroke is open; committing the open one")
            self.commit_stroke()
        self._pending = self.selector.snapshot()

    def commit_stroke(self) -> bool:
        """Close the open stroke. Returns True when it produced an undo step."""
        before = self._pending
        self._pending = None
        if before is None:
            return False
        if before == self.selector.snapshot():
            return False
        self._undo.append(before)
        if len(self._undo) > self.limit:
            del self._undo[0]
        self._redo.clear()
        return True

    def abort_stroke(self) -> bool:
        before = self._pending
        self._pending = None
        if before is None:
            return False
        self.selector.restore(before)
        return True

    @contextmanager
    def stroke(self) -> Iterator[None]:
        self.begin_stroke()
        try:
            yield
        except Exception:
            self.abort_stroke()
            raise
        self.commit_stroke()

    def undo(self) -> bool:
        if self._pending is not None:
            self.abort_stroke()
        if not self._undo:
            return False
        self._redo.append(self.selector.snapshot())
        self.selector.restore(self._undo.pop())
        return True

    def redo(self) -> bool:
        if not self._redo:
            return False
        self._undo.append(self.selector.snapshot())
        self.selector.restore(self._redo.pop())
        return True
