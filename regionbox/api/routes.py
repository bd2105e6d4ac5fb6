"""FastAPI routes for the annotation API."""

import os
from pathlib import Path
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import FileResponse
from pydantic import BaseModel, Field
from slowapi import Limiter
from slowapi.util import get_remote_address

from regionbox.api.lifecycle import attach_workspace
from regionbox.models.annotations import (
    BoundingBox,
    BoxCoordinates,
    BoxCreate,
    BoxUpdate,
    ExportStats,
    HistoryStatus,
    ImageAnnotation,
)
from regionbox.models.dataset import DatasetInfo, DatasetItem, ItemSummary, ParsedRegion
from regionbox.services.annotation_state import AnnotationState, clamp_coordinates
from regionbox.services.export_service import ExportService
from regionbox.services.workspace import Workspace
from regionbox.utils import sanitize_filename

router = APIRouter()

# Export decodes every image in the dataset, so it is rate limited.
# Default: 30 exports per minute per IP (configurable via env)
_export_rate_limit = os.environ.get("REGIONBOX_EXPORT_RATE_LIMIT", "30/minute")
limiter = Limiter(key_func=get_remote_address)


class DatasetOpen(BaseModel):
    """Request model for opening a dataset folder."""

    path: str = Field(..., min_length=1, description="Path to the dataset folder")


def get_workspace(request: Request) -> Workspace:
    """Dependency for the opened workspace.

    Raises:
        HTTPException: If no dataset has been opened.
    """
    workspace: Workspace | None = getattr(request.app.state, "workspace", None)
    if workspace is None:
        raise HTTPException(status_code=503, detail="No dataset opened")
    return workspace


def get_state(
    workspace: Annotated[Workspace, Depends(get_workspace)],
) -> AnnotationState:
    """Dependency for the annotation state of the opened workspace."""
    return workspace.state


def get_export_service(
    workspace: Annotated[Workspace, Depends(get_workspace)],
) -> ExportService:
    """Dependency for export service."""
    return ExportService(workspace)


def _require_item(workspace: Workspace, item_id: str) -> DatasetItem:
    item = workspace.get_item(item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Item not found")
    return item


def _find_box(state: AnnotationState, item_id: str, box_id: str) -> BoundingBox | None:
    annotation = state.get_annotation(item_id)
    if annotation is None:
        return None
    return next((box for box in annotation.boxes if box.id == box_id), None)


def _history_status(state: AnnotationState, success: bool = True) -> HistoryStatus:
    return HistoryStatus(
        success=success,
        can_undo=state.can_undo(),
        can_redo=state.can_redo(),
        dirty=state.is_dirty,
    )


# Health check endpoint
@router.get("/health")
def health_check() -> dict[str, str]:
    """Health check endpoint for API availability."""
    return {"status": "healthy", "api": "ready"}


# Dataset endpoints
@router.get("/dataset", response_model=DatasetInfo)
def get_dataset_info(
    workspace: Annotated[Workspace, Depends(get_workspace)],
) -> DatasetInfo:
    """Get information about the opened dataset."""
    return workspace.get_info()


@router.post("/dataset/open", response_model=DatasetInfo)
def open_dataset(request: Request, body: DatasetOpen) -> DatasetInfo:
    """Open a dataset folder, saving and replacing the current one."""
    try:
        workspace = Workspace.open(Path(body.path))
    except FileNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    attach_workspace(request.app, workspace)
    return workspace.get_info()


@router.post("/dataset/next", response_model=DatasetInfo)
def go_to_next(
    workspace: Annotated[Workspace, Depends(get_workspace)],
) -> DatasetInfo:
    """Move to the next item."""
    workspace.go_to_next()
    return workspace.get_info()


@router.post("/dataset/previous", response_model=DatasetInfo)
def go_to_previous(
    workspace: Annotated[Workspace, Depends(get_workspace)],
) -> DatasetInfo:
    """Move to the previous item."""
    workspace.go_to_previous()
    return workspace.get_info()


@router.post("/dataset/goto/{index}", response_model=DatasetInfo)
def go_to_index(
    index: int,
    workspace: Annotated[Workspace, Depends(get_workspace)],
) -> DatasetInfo:
    """Jump to an item by position."""
    if not workspace.go_to_index(index):
        raise HTTPException(status_code=404, detail="Index out of range")
    return workspace.get_info()


# Item endpoints
@router.get("/items", response_model=list[ItemSummary])
def list_items(
    workspace: Annotated[Workspace, Depends(get_workspace)],
) -> list[ItemSummary]:
    """List all items with their annotation progress."""
    return workspace.list_summaries()


@router.get("/items/{item_id}", response_model=DatasetItem)
def get_item(
    item_id: str,
    workspace: Annotated[Workspace, Depends(get_workspace)],
) -> DatasetItem:
    """Get a dataset item as stored in dataset.json."""
    return _require_item(workspace, item_id)


@router.get("/items/{item_id}/regions", response_model=list[ParsedRegion])
def get_regions(
    item_id: str,
    workspace: Annotated[Workspace, Depends(get_workspace)],
) -> list[ParsedRegion]:
    """Get the regions of an item's gpt turn."""
    regions = workspace.get_regions(item_id)
    if regions is None:
        raise HTTPException(status_code=404, detail="Item not found")
    return regions


@router.get("/items/{item_id}/image")
def get_image(
    item_id: str,
    workspace: Annotated[Workspace, Depends(get_workspace)],
) -> FileResponse:
    """Get an item's image file."""
    item = _require_item(workspace, item_id)
    path = workspace.dataset_service.get_image_path(item)
    if path is None:
        raise HTTPException(status_code=404, detail="Image not found")
    return FileResponse(path)


@router.get("/items/{item_id}/annotation", response_model=ImageAnnotation | None)
def get_annotation(
    item_id: str,
    workspace: Annotated[Workspace, Depends(get_workspace)],
) -> ImageAnnotation | None:
    """Get the boxes and skip flag of an item, or null if never annotated."""
    _require_item(workspace, item_id)
    return workspace.state.get_annotation(item_id)


# Box endpoints
@router.post("/items/{item_id}/boxes", response_model=BoundingBox)
def add_box(
    item_id: str,
    create: BoxCreate,
    workspace: Annotated[Workspace, Depends(get_workspace)],
) -> BoundingBox:
    """Draw a box for a region, replacing the region's previous box."""
    regions = workspace.get_regions(item_id)
    if regions is None:
        raise HTTPException(status_code=404, detail="Item not found")
    if create.region_id not in {region.id for region in regions}:
        raise HTTPException(status_code=404, detail="Region not found")
    return workspace.state.add_box(item_id, create.region_id, create.coordinates())


@router.patch("/items/{item_id}/boxes/{box_id}", response_model=BoundingBox)
def update_box(
    item_id: str,
    box_id: str,
    update: BoxUpdate,
    state: Annotated[AnnotationState, Depends(get_state)],
) -> BoundingBox:
    """Move or resize a box, clamped so it stays inside the image."""
    current = _find_box(state, item_id, box_id)
    if current is None:
        raise HTTPException(status_code=404, detail="Box not found")
    merged = current.model_dump()
    merged.update(update.model_dump(exclude_none=True))
    clamped = clamp_coordinates(BoxCoordinates.model_validate(merged))
    result = state.update_box(item_id, box_id, BoxUpdate(**clamped.model_dump()))
    if result is None:
        raise HTTPException(status_code=404, detail="Box not found")
    return result


@router.delete("/items/{item_id}/boxes/{box_id}")
def delete_box(
    item_id: str,
    box_id: str,
    state: Annotated[AnnotationState, Depends(get_state)],
) -> dict[str, bool]:
    """Delete a box."""
    if state.delete_box(item_id, box_id) is None:
        raise HTTPException(status_code=404, detail="Box not found")
    return {"success": True}


@router.delete("/items/{item_id}/regions/{region_id}/box")
def delete_box_by_region(
    item_id: str,
    region_id: str,
    state: Annotated[AnnotationState, Depends(get_state)],
) -> dict[str, bool]:
    """Delete the box drawn for a region."""
    if state.delete_box_by_region(item_id, region_id) is None:
        raise HTTPException(status_code=404, detail="Box not found")
    return {"success": True}


@router.delete("/items/{item_id}/boxes")
def clear_boxes(
    item_id: str,
    state: Annotated[AnnotationState, Depends(get_state)],
) -> dict[str, int]:
    """Clear all boxes of an item. This also clears undo history."""
    return {"deleted": state.clear_boxes(item_id)}


@router.patch("/items/{item_id}/skip")
def mark_skipped(
    item_id: str,
    workspace: Annotated[Workspace, Depends(get_workspace)],
    skipped: Annotated[bool, Query(description="Exclude the item from export")] = True,
) -> dict[str, bool]:
    """Mark or unmark an item as skipped."""
    _require_item(workspace, item_id)
    if skipped:
        workspace.state.mark_skipped(item_id)
    else:
        workspace.state.unmark_skipped(item_id)
    return {"success": True, "skipped": skipped}


# History endpoints
@router.get("/history", response_model=HistoryStatus)
def get_history(
    state: Annotated[AnnotationState, Depends(get_state)],
) -> HistoryStatus:
    """Get undo/redo availability."""
    return _history_status(state)


@router.post("/history/undo", response_model=HistoryStatus)
def undo(
    state: Annotated[AnnotationState, Depends(get_state)],
) -> HistoryStatus:
    """Undo the most recent box change."""
    return _history_status(state, success=state.undo())


@router.post("/history/redo", response_model=HistoryStatus)
def redo(
    state: Annotated[AnnotationState, Depends(get_state)],
) -> HistoryStatus:
    """Redo the most recently undone box change."""
    return _history_status(state, success=state.redo())


@router.post("/save")
def save(
    workspace: Annotated[Workspace, Depends(get_workspace)],
) -> dict[str, bool | str]:
    """Write annotations.json now instead of waiting for auto-save."""
    path = workspace.save()
    return {"success": True, "path": str(path)}


# Export endpoints
@router.get("/stats", response_model=ExportStats)
def get_stats(
    export_service: Annotated[ExportService, Depends(get_export_service)],
) -> ExportStats:
    """Get dataset completion statistics."""
    return export_service.get_stats()


@router.post("/export")
@limiter.limit(_export_rate_limit)
def export_dataset(
    request: Request,
    export_service: Annotated[ExportService, Depends(get_export_service)],
    include_unannotated: Annotated[bool, Query()] = False,
    filename: Annotated[str | None, Query(min_length=1)] = None,
) -> FileResponse:
    """Export the dataset with boxes spliced into the gpt text.

    Rate limited, as every image is decoded to get its pixel size.
    """
    dataset_service = export_service.workspace.dataset_service
    safe_filename = sanitize_filename(filename or dataset_service.export_filename)
    if not safe_filename.endswith(".json"):
        raise HTTPException(status_code=400, detail="Export filename must end in .json")
    output_path = export_service.export_json(
        dataset_service.dataset_dir / safe_filename,
        include_unannotated=include_unannotated,
    )
    return FileResponse(
        output_path,
        media_type="application/json",
        filename=safe_filename,
    )
