"""Cycle detector: proves a full traversal of the queue.

The first key observed becomes the baseline. Seeing an equal key again means
every message in between was handed to us once, so the queue has been walked.
Only the baseline is remembered; duplicates of any other key go unnoticed.

Keys are compared with ``==``. The caller must derive the same key for a
requeued message on every redelivery. A key that compares by identity (for
example a fresh ``object()`` per call) never matches, and the loop then runs
until something else stops it.
"""
from __future__ import annotations

from typing import Any


class CycleDetector:
    def __init__(self) -> None:
        self._baseline: Any = None
        self._has_baseline = False

    @property
    def baseline(self) -> Any:
        return self._baseline

    def observe(self, key: Any) -> bool:
        if not self._has_baseline:
            self._baseline = key
            self._has_baseline = True
            return False
        return bool(key == self._baseline)
