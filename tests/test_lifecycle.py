"""Tests for attaching and detaching the served workspace."""

import threading
import time
from pathlib import Path

import pytest
from fastapi import FastAPI

from regionbox.api.lifecycle import attach_workspace, detach_workspace
from regionbox.models.annotations import BoxCoordinates
from regionbox.services.workspace import Workspace


def box() -> BoxCoordinates:
    return BoxCoordinates(x=0.1, y=0.1, width=0.2, height=0.2)


class TestDetachWorkspace:
    """Tests for stopping auto-save."""

    def test_detach_stops_monitor_thread(self, dataset_dir: Path) -> None:
        """The auto-save thread has exited once detach returns."""
        app = FastAPI()
        attach_workspace(app, Workspace.open(dataset_dir))
        monitor_thread = app.state.autosave_thread
        assert monitor_thread.is_alive()

        detach_workspace(app)
        assert not monitor_thread.is_alive()
        assert app.state.workspace is None
        assert app.state.autosave_thread is None

    def test_detach_flushes_pending_edits(self, dataset_dir: Path) -> None:
        """Unsaved edits are written on detach."""
        app = FastAPI()
        workspace = Workspace.open(dataset_dir)
        attach_workspace(app, workspace)
        workspace.state.add_box("item-1", "region-1", box())

        detach_workspace(app)
        reopened = Workspace.open(dataset_dir)
        assert reopened.state.get_box_for_region("item-1", "region-1") is not None

    def test_detach_during_save_never_overlaps(
        self, dataset_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A save in progress on the monitor finishes before the final flush."""
        monkeypatch.setenv("REGIONBOX_AUTOSAVE_DEBOUNCE_SECONDS", "0.01")
        app = FastAPI()
        workspace = Workspace.open(dataset_dir)

        original_save = workspace.dataset_service.save_annotations
        started = threading.Event()
        active = 0
        overlaps = 0
        counter_lock = threading.Lock()

        def slow_save(annotations):
            nonlocal active, overlaps
            with counter_lock:
                active += 1
                if active > 1:
                    overlaps += 1
            started.set()
            time.sleep(0.2)
            try:
                return original_save(annotations)
            finally:
                with counter_lock:
                    active -= 1

        monkeypatch.setattr(workspace.dataset_service, "save_annotations", slow_save)
        attach_workspace(app, workspace)
        workspace.state.add_box("item-1", "region-1", box())
        assert started.wait(timeout=5)

        workspace.state.add_box("item-1", "region-2", box())
        detach_workspace(app)

        assert overlaps == 0
        assert not workspace.state.is_dirty
        reopened = Workspace.open(dataset_dir)
        annotation = reopened.state.get_annotation("item-1")
        assert annotation is not None
        assert len(annotation.boxes) == 2
