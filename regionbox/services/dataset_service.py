"""Service for reading a dataset folder and persisting its annotations."""

import json
import logging
from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from pathlib import Path

from PIL import Image, UnidentifiedImageError
from pydantic import TypeAdapter, ValidationError

from regionbox.models.annotations import AnnotationFile, ImageAnnotation
from regionbox.models.dataset import DatasetItem
from regionbox.utils import validate_path_in_directory

logger = logging.getLogger(__name__)

DATASET_FILENAME = "dataset.json"
ANNOTATIONS_FILENAME = "annotations.json"
IMAGES_DIRNAME = "images"

_dataset_adapter = TypeAdapter(list[DatasetItem])


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class DatasetService:
    """Handles the files of one dataset folder.

    Layout:
        <dataset_dir>/
        ├── dataset.json       items with their conversations
        ├── images/            image files referenced by the items
        └── annotations.json   boxes and skip flags, written by this service
    """

    def __init__(self, dataset_dir: Path) -> None:
        """Initialize the dataset service.

        Args:
            dataset_dir: The dataset folder.
        """
        self.dataset_dir = dataset_dir
        self.dataset_path = dataset_dir / DATASET_FILENAME
        self.images_dir = dataset_dir / IMAGES_DIRNAME
        self.annotations_path = dataset_dir / ANNOTATIONS_FILENAME

    @property
    def folder_name(self) -> str:
        return self.dataset_dir.resolve().name or "dataset"

    @property
    def export_filename(self) -> str:
        """Default filename for the exported dataset."""
        return f"{self.folder_name}_annotated.json"

    def validate(self) -> tuple[bool, str | None]:
        """Check that the folder looks like a dataset.

        Returns:
            Tuple of (valid, error message).
        """
        if not self.dataset_dir.is_dir():
            return False, f"Dataset folder not found: {self.dataset_dir}"
        if not self.dataset_path.is_file():
            return False, f"{DATASET_FILENAME} not found"
        if not self.images_dir.is_dir():
            return False, f"{IMAGES_DIRNAME} folder not found"
        return True, None

    def read_dataset(self) -> list[DatasetItem]:
        """Load all items from dataset.json.

        Raises:
            FileNotFoundError: If dataset.json does not exist.
            ValueError: If dataset.json is not a valid item list.
        """
        if not self.dataset_path.is_file():
            raise FileNotFoundError(f"Dataset file not found: {self.dataset_path}")
        try:
            with self.dataset_path.open("r", encoding="utf-8") as f:
                data = json.load(f)
            items = _dataset_adapter.validate_python(data)
        except (json.JSONDecodeError, ValidationError) as err:
            raise ValueError(f"Invalid dataset file: {err}") from err
        logger.info("Loaded %d items from %s", len(items), self.dataset_path)
        return items

    def get_image_path(self, item: DatasetItem) -> Path | None:
        """Get the full path to an item's image, if it exists inside the folder."""
        path = self.dataset_dir / item.image
        if not validate_path_in_directory(path, self.dataset_dir):
            return None
        if path.exists() and path.is_file():
            return path
        return None

    def get_image_dimensions(self, item: DatasetItem) -> tuple[int, int] | None:
        """Decode an item's image and return its (width, height) in pixels."""
        path = self.get_image_path(item)
        if path is None:
            logger.warning("Image not found for %s: %s", item.id, item.image)
            return None
        try:
            with Image.open(path) as img:
                return img.size
        except (UnidentifiedImageError, OSError) as err:
            logger.warning("Could not read image for %s: %s", item.id, err)
            return None

    def collect_image_dimensions(
        self, items: Sequence[DatasetItem]
    ) -> dict[str, tuple[int, int]]:
        """Get pixel dimensions for every item whose image can be decoded."""
        dimensions: dict[str, tuple[int, int]] = {}
        for item in items:
            size = self.get_image_dimensions(item)
            if size is not None:
                dimensions[item.id] = size
        return dimensions

    def _read_annotation_file(self) -> AnnotationFile | None:
        if not self.annotations_path.exists():
            return None
        try:
            with self.annotations_path.open("r", encoding="utf-8") as f:
                data = json.load(f)
            return AnnotationFile.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as err:
            raise ValueError(f"Invalid annotations file: {err}") from err

    def load_annotations(self) -> dict[str, ImageAnnotation] | None:
        """Load saved annotations.

        Returns:
            Annotations keyed by image id, or None if nothing was saved yet.

        Raises:
            ValueError: If annotations.json is malformed.
        """
        annotation_file = self._read_annotation_file()
        if annotation_file is None:
            return None
        return annotation_file.annotations

    def save_annotations(self, annotations: Mapping[str, ImageAnnotation]) -> Path:
        """Write annotations.json, keeping the original creation time."""
        now = _utc_now_iso()
        created_at = now
        try:
            existing = self._read_annotation_file()
        except ValueError:
            logger.warning("Overwriting unreadable %s", self.annotations_path)
            existing = None
        if existing is not None:
            created_at = existing.created_at

        annotation_file = AnnotationFile(
            created_at=created_at,
            updated_at=now,
            annotations=dict(annotations),
        )
        with self.annotations_path.open("w", encoding="utf-8") as f:
            json.dump(annotation_file.model_dump(by_alias=True), f, indent=2)
        logger.info(
            "Saved annotations for %d images to %s",
            len(annotations),
            self.annotations_path,
        )
        return self.annotations_path
