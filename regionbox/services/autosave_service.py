"""Debounced auto-save of annotation state.

Watches the dirty flag of an AnnotationState and saves once edits have
settled, so a burst of box drags results in a single write.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

from regionbox.services.annotation_state import AnnotationState

logger = logging.getLogger(__name__)


class AutoSaveService:
    """Save annotation state after it has been quiet for a debounce window."""

    def __init__(
        self,
        state: AnnotationState,
        save_callback: Callable[[], object],
        debounce_seconds: float = 2.0,
        poll_interval_seconds: float = 0.25,
    ) -> None:
        """Initialize auto-save tracking.

        Args:
            state: The annotation state to watch.
            save_callback: Persists the state and marks it clean.
            debounce_seconds: Quiet time required after the last edit.
            poll_interval_seconds: How often the monitor checks the state.
        """
        self.state = state
        self.save_callback = save_callback
        self.debounce_seconds = debounce_seconds
        self.poll_interval_seconds = poll_interval_seconds

        self._lock = threading.Lock()
        self._seen_revision: int | None = None
        self._seen_at: float | None = None

    def run_monitor(self, stop_event: threading.Event) -> None:
        """Poll the state and save when due, until stop_event is set."""
        while not stop_event.wait(timeout=self.poll_interval_seconds):
            if self._should_save():
                self._save()

    def flush(self) -> bool:
        """Save immediately if there are unsaved changes.

        Returns:
            True if a save was attempted and succeeded.
        """
        if not self.state.is_dirty:
            return False
        return self._save()

    def _should_save(self) -> bool:
        """Return True once the state is dirty and has not changed for a while."""
        now = time.monotonic()
        revision = self.state.revision

        with self._lock:
            if revision != self._seen_revision:
                self._seen_revision = revision
                self._seen_at = now
                return False

            if not self.state.is_dirty or self._seen_at is None:
                return False

            return now - self._seen_at >= self.debounce_seconds

    def _save(self) -> bool:
        try:
            self.save_callback()
        except Exception:
            logger.exception("Auto-save failed")
            # Wait for the next edit before retrying.
            with self._lock:
                self._seen_at = None
            return False
        return True
