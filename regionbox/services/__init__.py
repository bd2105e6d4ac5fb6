"""Services for the annotation tool."""

from regionbox.services.annotation_state import AnnotationState
from regionbox.services.autosave_service import AutoSaveService
from regionbox.services.dataset_service import DatasetService
from regionbox.services.export_service import ExportService
from regionbox.services.workspace import Workspace

__all__ = [
    "AnnotationState",
    "AutoSaveService",
    "DatasetService",
    "ExportService",
    "Workspace",
]
