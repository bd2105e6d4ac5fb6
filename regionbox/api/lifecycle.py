"""Opening and closing the workspace served by the API."""

import logging
import os
import threading
from pathlib import Path

from fastapi import FastAPI

from regionbox.services.autosave_service import AutoSaveService
from regionbox.services.workspace import Workspace

logger = logging.getLogger(__name__)


def get_dataset_dir() -> Path:
    """Get the dataset directory from environment or default."""
    env_path = os.environ.get("REGIONBOX_DATASET_DIR")
    if env_path:
        return Path(env_path)
    return Path.cwd()


def _get_positive_float(env_var: str, default: float) -> float:
    """Read a positive float from environment with safe fallback."""
    raw = os.getenv(env_var)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    if value <= 0:
        return default
    return value


def get_autosave_debounce() -> float:
    return _get_positive_float("REGIONBOX_AUTOSAVE_DEBOUNCE_SECONDS", 2.0)


def attach_workspace(app: FastAPI, workspace: Workspace) -> None:
    """Serve a workspace and start auto-saving it.

    Any previously attached workspace is flushed and detached first.
    """
    detach_workspace(app)

    autosave = AutoSaveService(
        workspace.state,
        workspace.save,
        debounce_seconds=get_autosave_debounce(),
    )
    stop_event = threading.Event()
    monitor_thread = threading.Thread(
        target=autosave.run_monitor,
        args=(stop_event,),
        daemon=True,
        name="regionbox-autosave",
    )
    monitor_thread.start()

    app.state.workspace = workspace
    app.state.autosave_service = autosave
    app.state.autosave_stop_event = stop_event
    app.state.autosave_thread = monitor_thread


def detach_workspace(app: FastAPI) -> None:
    """Stop auto-saving the current workspace and save pending changes."""
    stop_event: threading.Event | None = getattr(app.state, "autosave_stop_event", None)
    if stop_event is not None:
        stop_event.set()

    # The monitor may be mid-save; let it finish before the final flush.
    monitor_thread: threading.Thread | None = getattr(app.state, "autosave_thread", None)
    if monitor_thread is not None:
        monitor_thread.join()

    autosave: AutoSaveService | None = getattr(app.state, "autosave_service", None)
    if autosave is not None:
        autosave.flush()

    app.state.workspace = None
    app.state.autosave_service = None
    app.state.autosave_stop_event = None
    app.state.autosave_thread = None


def open_default_workspace(app: FastAPI) -> None:
    """Open the configured dataset folder, if it is a dataset."""
    dataset_dir = get_dataset_dir()
    try:
        workspace = Workspace.open(dataset_dir)
    except FileNotFoundError as err:
        logger.info("No dataset opened at startup: %s", err)
        return
    except ValueError as err:
        logger.error("Could not open dataset %s: %s", dataset_dir, err)
        return
    attach_workspace(app, workspace)
