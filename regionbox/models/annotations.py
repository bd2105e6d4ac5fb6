"""Pydantic models for annotation data."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ANNOTATION_FILE_VERSION = "1.0.0"


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys in persisted JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BoxCoordinates(BaseModel):
    """Normalized rectangle as drawn on the canvas (top-left origin)."""

    x: float = Field(..., description="Left edge (normalized)")
    y: float = Field(..., description="Top edge (normalized)")
    width: float = Field(..., description="Box width (normalized)")
    height: float = Field(..., description="Box height (normalized)")


class BoundingBox(CamelModel):
    """A box drawn for one region, with normalized coordinates (0-1)."""

    id: str = Field(..., description="Unique identifier for the box")
    region_id: str = Field(..., description="Region the box belongs to")
    x: float = Field(..., ge=0, le=1, description="Left edge (normalized)")
    y: float = Field(..., ge=0, le=1, description="Top edge (normalized)")
    width: float = Field(..., ge=0, le=1, description="Box width (normalized)")
    height: float = Field(..., ge=0, le=1, description="Box height (normalized)")


class BoxCreate(CamelModel):
    """Request model for drawing a box over a region."""

    region_id: str = Field(..., min_length=1)
    x: float
    y: float
    width: float
    height: float

    def coordinates(self) -> BoxCoordinates:
        return BoxCoordinates(x=self.x, y=self.y, width=self.width, height=self.height)


class BoxUpdate(CamelModel):
    """Request model for moving or resizing a box."""

    x: float | None = Field(None, ge=0, le=1)
    y: float | None = Field(None, ge=0, le=1)
    width: float | None = Field(None, ge=0, le=1)
    height: float | None = Field(None, ge=0, le=1)


class ImageAnnotation(CamelModel):
    """All boxes drawn on one image plus its skip flag."""

    image_id: str
    boxes: list[BoundingBox] = Field(default_factory=list)
    skipped: bool = Field(default=False, description="Excluded from export")
    last_modified: int = Field(default=0, description="Epoch milliseconds")


class AnnotationAction(BaseModel):
    """One entry of the undo/redo history."""

    type: Literal["add", "update", "delete"]
    image_id: str
    box: BoundingBox
    previous_box: BoundingBox | None = None
    position: int | None = Field(
        default=None, description="List index a deleted box was removed from"
    )


class AnnotationFile(CamelModel):
    """On-disk shape of annotations.json."""

    version: str = ANNOTATION_FILE_VERSION
    created_at: str
    updated_at: str
    annotations: dict[str, ImageAnnotation] = Field(default_factory=dict)


class HistoryStatus(BaseModel):
    """Undo/redo availability and unsaved-changes flag."""

    success: bool = True
    can_undo: bool
    can_redo: bool
    dirty: bool


class ExportStats(BaseModel):
    """Aggregate completion statistics for a dataset."""

    total_images: int = 0
    annotated_images: int = Field(
        default=0, description="Images whose every region has a box"
    )
    skipped_images: int = 0
    total_regions: int = 0
    annotated_regions: int = Field(
        default=0, description="Boxes across all non-skipped images"
    )
    completion_percentage: int = 0
