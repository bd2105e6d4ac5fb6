"""Service for merging drawn boxes back into dataset text."""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from regionbox.models.annotations import BoundingBox, ExportStats, ImageAnnotation
from regionbox.models.dataset import DatasetItem, ParsedRegion
from regionbox.services.region_parser import get_regions_for_item, parse_regions

if TYPE_CHECKING:
    from regionbox.services.workspace import Workspace

logger = logging.getLogger(__name__)

# (width, height) in pixels, as reported by PIL's Image.size
Dimensions = tuple[int, int]


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves going up."""
    return math.floor(value + 0.5)


def format_coordinates(box: BoundingBox, image_width: int, image_height: int) -> str:
    """Convert a normalized box to the "x1.y1.x2.y2" pixel tag payload.

    Example:
        >>> box = BoundingBox(id="b", region_id="region-1", x=0.1, y=0.2, width=0.5, height=0.25)
        >>> format_coordinates(box, 200, 100)
        '20.20.120.45'
    """
    x1 = round_half_up(box.x * image_width)
    y1 = round_half_up(box.y * image_height)
    x2 = round_half_up((box.x + box.width) * image_width)
    y2 = round_half_up((box.y + box.height) * image_height)
    return f"{x1}.{y1}.{x2}.{y2}"


def splice_regions(
    text: str,
    regions: Sequence[ParsedRegion],
    boxes_by_region: Mapping[str, BoundingBox],
    dimensions: Dimensions | None,
) -> str:
    """Replace each boxed region tag in text with its pixel coordinates.

    Regions are spliced from the highest start offset down, so the offsets
    of regions not yet processed still point at unchanged text. Regions
    without a box, or any region when dimensions are unknown, keep their
    original placeholder.
    """
    if dimensions is None:
        return text
    width, height = dimensions
    for region in sorted(regions, key=lambda r: r.start_offset, reverse=True):
        box = boxes_by_region.get(region.id)
        if box is None:
            continue
        replacement = f"<region>{format_coordinates(box, width, height)}</region>"
        text = text[: region.start_offset] + replacement + text[region.end_offset :]
    return text


def export_item(
    item: DatasetItem,
    annotation: ImageAnnotation | None,
    dimensions: Dimensions | None,
) -> DatasetItem:
    """Return a copy of item with its gpt turn carrying pixel coordinates."""
    exported = item.model_copy(deep=True)
    gpt_turn = next((c for c in exported.conversations if c.from_ == "gpt"), None)
    if gpt_turn is None:
        return exported

    # Offsets are always recomputed from the text being spliced.
    regions = parse_regions(gpt_turn.value)
    boxes_by_region = {box.region_id: box for box in annotation.boxes} if annotation else {}
    gpt_turn.value = splice_regions(gpt_turn.value, regions, boxes_by_region, dimensions)
    return exported


def export_dataset(
    items: Sequence[DatasetItem],
    annotations: Mapping[str, ImageAnnotation],
    dimensions: Mapping[str, Dimensions],
    include_unannotated: bool = False,
) -> list[DatasetItem]:
    """Build the exported dataset.

    Skipped items are always left out. Items without any annotation are
    left out unless include_unannotated is set. Stored items are never
    modified.

    Args:
        items: Dataset items in their original order.
        annotations: Annotations keyed by item id.
        dimensions: Image pixel dimensions keyed by item id.
        include_unannotated: Also export items nobody has annotated.

    Returns:
        Exported copies of the items, in input order.
    """
    exported: list[DatasetItem] = []
    for item in items:
        annotation = annotations.get(item.id)
        if annotation is not None and annotation.skipped:
            continue
        if annotation is None and not include_unannotated:
            continue
        exported.append(export_item(item, annotation, dimensions.get(item.id)))
    return exported


def get_export_stats(
    items: Sequence[DatasetItem],
    annotations: Mapping[str, ImageAnnotation],
) -> ExportStats:
    """Compute completion statistics for a dataset.

    An image counts as annotated when it has as many boxes as regions and at
    least one region. Boxes of non-skipped images all count towards
    annotated_regions, complete or not.
    """
    stats = ExportStats(total_images=len(items))
    for item in items:
        region_count = len(get_regions_for_item(item))
        stats.total_regions += region_count

        annotation = annotations.get(item.id)
        if annotation is None:
            continue
        if annotation.skipped:
            stats.skipped_images += 1
            continue
        stats.annotated_regions += len(annotation.boxes)
        if region_count > 0 and len(annotation.boxes) == region_count:
            stats.annotated_images += 1

    if stats.total_images > 0:
        stats.completion_percentage = round_half_up(
            stats.annotated_images / stats.total_images * 100
        )
    return stats


def serialize_export(items: Sequence[DatasetItem]) -> str:
    """Serialize exported items as the dataset JSON array."""
    data = [item.model_dump(by_alias=True) for item in items]
    return json.dumps(data, indent=2, ensure_ascii=False)


class ExportService:
    """Exports an opened dataset with its boxes spliced into the text."""

    def __init__(self, workspace: Workspace) -> None:
        """Initialize the export service.

        Args:
            workspace: The opened dataset to export.
        """
        self.workspace = workspace

    def get_stats(self) -> ExportStats:
        """Get completion statistics for the workspace."""
        return get_export_stats(
            self.workspace.items, self.workspace.state.get_annotations()
        )

    def build_export(self, include_unannotated: bool = False) -> list[DatasetItem]:
        """Export the workspace in memory, decoding image sizes from disk."""
        items = self.workspace.items
        annotations = self.workspace.state.get_annotations()
        dimensions = self.workspace.dataset_service.collect_image_dimensions(items)
        for item in items:
            if item.id not in dimensions and item.id in annotations:
                logger.warning(
                    "No image dimensions for %s; its regions are left unreplaced",
                    item.id,
                )
        return export_dataset(items, annotations, dimensions, include_unannotated)

    def export_json(
        self, output_path: Path | None = None, include_unannotated: bool = False
    ) -> Path:
        """Export the workspace to a JSON file.

        Args:
            output_path: Target file. Defaults to
                "<folder>_annotated.json" inside the dataset folder.
            include_unannotated: Also export items nobody has annotated.

        Returns:
            Path to the written file.
        """
        exported = self.build_export(include_unannotated)
        dataset_service = self.workspace.dataset_service
        if output_path is None:
            output_path = dataset_service.dataset_dir / dataset_service.export_filename
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(serialize_export(exported), encoding="utf-8")
        logger.info("Exported %d items to %s", len(exported), output_path)
        return output_path
