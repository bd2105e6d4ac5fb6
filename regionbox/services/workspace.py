"""An opened dataset folder with its annotation state."""

import logging
import threading
from pathlib import Path

from regionbox.models.dataset import DatasetInfo, DatasetItem, ItemSummary, ParsedRegion
from regionbox.services.annotation_state import AnnotationState
from regionbox.services.dataset_service import DatasetService
from regionbox.services.region_parser import get_regions_for_item

logger = logging.getLogger(__name__)


class Workspace:
    """Everything the tool knows about one opened dataset.

    Holds the loaded items, the AnnotationState seeded from the saved
    annotations, and the position of the item currently being annotated.
    """

    def __init__(
        self,
        dataset_service: DatasetService,
        items: list[DatasetItem],
        state: AnnotationState,
    ) -> None:
        self.dataset_service = dataset_service
        self.items = items
        self.state = state
        self._items_by_id = {item.id: item for item in items}
        self._nav_lock = threading.Lock()
        self._save_lock = threading.Lock()
        self._current_index = 0

    @classmethod
    def open(cls, dataset_dir: Path) -> "Workspace":
        """Open a dataset folder and load its saved annotations.

        Raises:
            FileNotFoundError: If the folder is not a valid dataset.
            ValueError: If dataset.json or annotations.json is malformed.
        """
        dataset_service = DatasetService(dataset_dir)
        valid, error = dataset_service.validate()
        if not valid:
            raise FileNotFoundError(error)

        items = dataset_service.read_dataset()
        state = AnnotationState(dataset_service.load_annotations() or {})
        logger.info("Opened dataset %s", dataset_service.folder_name)
        return cls(dataset_service, items, state)

    @property
    def current_index(self) -> int:
        return self._current_index

    def get_item(self, item_id: str) -> DatasetItem | None:
        return self._items_by_id.get(item_id)

    def get_regions(self, item_id: str) -> list[ParsedRegion] | None:
        """Parse the regions of an item, or None if the item is unknown."""
        item = self.get_item(item_id)
        if item is None:
            return None
        return get_regions_for_item(item)

    def get_current_item(self) -> DatasetItem | None:
        with self._nav_lock:
            if not self.items:
                return None
            return self.items[self._current_index]

    def go_to_next(self) -> bool:
        """Move to the next item; stays put on the last one."""
        with self._nav_lock:
            if self._current_index < len(self.items) - 1:
                self._current_index += 1
                return True
            return False

    def go_to_previous(self) -> bool:
        """Move to the previous item; stays put on the first one."""
        with self._nav_lock:
            if self._current_index > 0:
                self._current_index -= 1
                return True
            return False

    def go_to_index(self, index: int) -> bool:
        """Jump to an item by position; out-of-range indices are ignored."""
        with self._nav_lock:
            if 0 <= index < len(self.items):
                self._current_index = index
                return True
            return False

    def get_info(self) -> DatasetInfo:
        current = self.get_current_item()
        return DatasetInfo(
            folder_name=self.dataset_service.folder_name,
            item_count=len(self.items),
            current_index=self._current_index,
            current_item_id=current.id if current else None,
            dirty=self.state.is_dirty,
        )

    def list_summaries(self) -> list[ItemSummary]:
        """Get per-item region and box counts."""
        annotations = self.state.get_annotations()
        summaries = []
        for item in self.items:
            annotation = annotations.get(item.id)
            summaries.append(
                ItemSummary(
                    id=item.id,
                    image=item.image,
                    region_count=len(get_regions_for_item(item)),
                    box_count=len(annotation.boxes) if annotation else 0,
                    skipped=annotation.skipped if annotation else False,
                )
            )
        return summaries

    def save(self) -> Path:
        """Persist annotations and mark the state clean for what was written.

        Saves from the auto-save monitor and from requests are serialized so
        annotations.json is never written by two threads at once.
        """
        with self._save_lock:
            annotations, revision = self.state.snapshot()
            path = self.dataset_service.save_annotations(annotations)
            self.state.mark_clean(revision)
        return path
