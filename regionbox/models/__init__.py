"""Data models for the annotation tool."""

from regionbox.models.annotations import (
    AnnotationAction,
    AnnotationFile,
    BoundingBox,
    BoxCoordinates,
    BoxCreate,
    BoxUpdate,
    ExportStats,
    HistoryStatus,
    ImageAnnotation,
)
from regionbox.models.dataset import (
    Conversation,
    DatasetInfo,
    DatasetItem,
    ItemSummary,
    ParsedRegion,
)

__all__ = [
    "AnnotationAction",
    "AnnotationFile",
    "BoundingBox",
    "BoxCoordinates",
    "BoxCreate",
    "BoxUpdate",
    "Conversation",
    "DatasetInfo",
    "DatasetItem",
    "ExportStats",
    "HistoryStatus",
    "ImageAnnotation",
    "ItemSummary",
    "ParsedRegion",
]
