"""In-memory annotation state with undo/redo history."""

import threading
import time
import uuid
from collections.abc import Mapping

from regionbox.models.annotations import (
    AnnotationAction,
    BoundingBox,
    BoxCoordinates,
    BoxUpdate,
    ImageAnnotation,
)


def _now_ms() -> int:
    return int(time.time() * 1000)


def clamp_coordinates(coords: BoxCoordinates) -> BoxCoordinates:
    """Clamp a drawn rectangle so it lies inside the unit square.

    The origin is clamped to [0, 1] first, then width and height are
    limited to the space left to the right and bottom edges.

    Example:
        >>> clamp_coordinates(BoxCoordinates(x=0.5, y=-0.1, width=0.75, height=0.5))
        BoxCoordinates(x=0.5, y=0.0, width=0.5, height=0.5)
    """
    x = min(max(coords.x, 0.0), 1.0)
    y = min(max(coords.y, 0.0), 1.0)
    width = min(max(coords.width, 0.0), 1.0 - x)
    height = min(max(coords.height, 0.0), 1.0 - y)
    return BoxCoordinates(x=x, y=y, width=width, height=height)


def _find_box_index(annotation: ImageAnnotation, box_id: str) -> int | None:
    for i, box in enumerate(annotation.boxes):
        if box.id == box_id:
            return i
    return None


def _find_region_index(annotation: ImageAnnotation, region_id: str) -> int | None:
    for i, box in enumerate(annotation.boxes):
        if box.region_id == region_id:
            return i
    return None


class AnnotationState:
    """Owns per-image boxes, skip flags and the undo/redo history.

    One instance is shared by everything working on an opened dataset.
    Every public method holds the instance lock, so HTTP handlers running
    in a threadpool and the auto-save monitor never observe a half-applied
    mutation.

    Operations on unknown images or boxes are no-ops reported through the
    return value; they never raise.
    """

    def __init__(self, annotations: Mapping[str, ImageAnnotation] | None = None) -> None:
        """Initialize the state.

        Args:
            annotations: Previously saved annotations keyed by image id.
        """
        self._lock = threading.RLock()
        self._annotations: dict[str, ImageAnnotation] = {}
        self._undo_stack: list[AnnotationAction] = []
        self._redo_stack: list[AnnotationAction] = []
        self._dirty = False
        self._revision = 0
        if annotations:
            self.load_annotations(annotations)

    @property
    def is_dirty(self) -> bool:
        """Whether there are mutations not yet persisted."""
        with self._lock:
            return self._dirty

    @property
    def revision(self) -> int:
        """Counter incremented by every mutation."""
        with self._lock:
            return self._revision

    def _mark_dirty(self) -> None:
        self._dirty = True
        self._revision += 1

    def _get_or_create(self, image_id: str) -> ImageAnnotation:
        annotation = self._annotations.get(image_id)
        if annotation is None:
            annotation = ImageAnnotation(image_id=image_id, last_modified=_now_ms())
            self._annotations[image_id] = annotation
        return annotation

    def _record(self, action: AnnotationAction) -> None:
        """Push an action; a new branch of history discards the redo stack."""
        self._undo_stack.append(action)
        self._redo_stack.clear()
        self._mark_dirty()

    def add_box(
        self, image_id: str, region_id: str, coords: BoxCoordinates
    ) -> BoundingBox:
        """Draw a box for a region, replacing the region's existing box.

        A replacement keeps the existing box id and list position and is
        recorded as an update, so undo restores the previous rectangle.

        Args:
            image_id: The image being annotated.
            region_id: The region the box belongs to.
            coords: Normalized rectangle, clamped into the image.

        Returns:
            The stored box.
        """
        clamped = clamp_coordinates(coords)
        with self._lock:
            annotation = self._get_or_create(image_id)
            index = _find_region_index(annotation, region_id)

            if index is None:
                box = BoundingBox(
                    id=str(uuid.uuid4()), region_id=region_id, **clamped.model_dump()
                )
                annotation.boxes.append(box)
                action = AnnotationAction(
                    type="add", image_id=image_id, box=box.model_copy()
                )
            else:
                previous = annotation.boxes[index]
                box = BoundingBox(
                    id=previous.id, region_id=region_id, **clamped.model_dump()
                )
                annotation.boxes[index] = box
                action = AnnotationAction(
                    type="update",
                    image_id=image_id,
                    box=box.model_copy(),
                    previous_box=previous.model_copy(),
                )

            annotation.last_modified = _now_ms()
            self._record(action)
            return box.model_copy()

    def update_box(
        self, image_id: str, box_id: str, update: BoxUpdate
    ) -> BoundingBox | None:
        """Merge new coordinates into an existing box.

        Values are stored as given; keeping the box inside the image is up
        to the caller.

        Returns:
            The updated box, or None if the image or box does not exist.
        """
        with self._lock:
            annotation = self._annotations.get(image_id)
            if annotation is None:
                return None
            index = _find_box_index(annotation, box_id)
            if index is None:
                return None

            previous = annotation.boxes[index]
            updated_data = previous.model_dump()
            updated_data.update(update.model_dump(exclude_none=True))
            updated = BoundingBox.model_validate(updated_data)
            annotation.boxes[index] = updated
            annotation.last_modified = _now_ms()

            self._record(
                AnnotationAction(
                    type="update",
                    image_id=image_id,
                    box=updated.model_copy(),
                    previous_box=previous.model_copy(),
                )
            )
            return updated.model_copy()

    def delete_box(self, image_id: str, box_id: str) -> BoundingBox | None:
        """Delete a box.

        Returns:
            The removed box, or None if there was nothing to delete.
        """
        with self._lock:
            annotation = self._annotations.get(image_id)
            if annotation is None:
                return None
            index = _find_box_index(annotation, box_id)
            if index is None:
                return None

            removed = annotation.boxes.pop(index)
            annotation.last_modified = _now_ms()
            self._record(
                AnnotationAction(
                    type="delete",
                    image_id=image_id,
                    box=removed.model_copy(),
                    position=index,
                )
            )
            return removed.model_copy()

    def delete_box_by_region(self, image_id: str, region_id: str) -> BoundingBox | None:
        """Delete the box drawn for a region, if any."""
        with self._lock:
            box = self.get_box_for_region(image_id, region_id)
            if box is None:
                return None
            return self.delete_box(image_id, box.id)

    def clear_boxes(self, image_id: str) -> int:
        """Remove every box of an image.

        Clearing cannot be undone: both history stacks are emptied.

        Returns:
            Number of boxes removed.
        """
        with self._lock:
            annotation = self._annotations.get(image_id)
            if annotation is None or not annotation.boxes:
                return 0

            count = len(annotation.boxes)
            annotation.boxes = []
            annotation.last_modified = _now_ms()
            self._undo_stack.clear()
            self._redo_stack.clear()
            self._mark_dirty()
            return count

    def mark_skipped(self, image_id: str) -> bool:
        """Flag an image as skipped. Boxes are kept."""
        with self._lock:
            annotation = self._get_or_create(image_id)
            annotation.skipped = True
            annotation.last_modified = _now_ms()
            self._mark_dirty()
            return True

    def unmark_skipped(self, image_id: str) -> bool:
        """Clear the skip flag.

        Returns:
            True if the image had an annotation, False otherwise.
        """
        with self._lock:
            annotation = self._annotations.get(image_id)
            if annotation is None:
                return False
            annotation.skipped = False
            annotation.last_modified = _now_ms()
            self._mark_dirty()
            return True

    def can_undo(self) -> bool:
        with self._lock:
            return bool(self._undo_stack)

    def can_redo(self) -> bool:
        with self._lock:
            return bool(self._redo_stack)

    def undo(self) -> bool:
        """Revert the most recent action.

        Returns:
            False if there was nothing to undo.
        """
        with self._lock:
            if not self._undo_stack:
                return False
            action = self._undo_stack.pop()
            annotation = self._get_or_create(action.image_id)

            match action.type:
                case "add":
                    index = _find_box_index(annotation, action.box.id)
                    if index is not None:
                        del annotation.boxes[index]
                case "update":
                    index = _find_box_index(annotation, action.box.id)
                    if index is not None and action.previous_box is not None:
                        annotation.boxes[index] = action.previous_box.model_copy()
                case "delete":
                    position = action.position
                    if position is None:
                        position = len(annotation.boxes)
                    annotation.boxes.insert(position, action.box.model_copy())

            annotation.last_modified = _now_ms()
            self._redo_stack.append(action)
            self._mark_dirty()
            return True

    def redo(self) -> bool:
        """Re-apply the most recently undone action.

        Returns:
            False if there was nothing to redo.
        """
        with self._lock:
            if not self._redo_stack:
                return False
            action = self._redo_stack.pop()
            annotation = self._get_or_create(action.image_id)

            match action.type:
                case "add":
                    annotation.boxes.append(action.box.model_copy())
                case "update":
                    index = _find_box_index(annotation, action.box.id)
                    if index is not None:
                        annotation.boxes[index] = action.box.model_copy()
                case "delete":
                    index = _find_box_index(annotation, action.box.id)
                    if index is not None:
                        del annotation.boxes[index]

            annotation.last_modified = _now_ms()
            self._undo_stack.append(action)
            self._mark_dirty()
            return True

    def get_annotation(self, image_id: str) -> ImageAnnotation | None:
        """Get a copy of an image's annotation."""
        with self._lock:
            annotation = self._annotations.get(image_id)
            if annotation is None:
                return None
            return annotation.model_copy(deep=True)

    def get_box_for_region(self, image_id: str, region_id: str) -> BoundingBox | None:
        """Get a copy of the box drawn for a region."""
        with self._lock:
            annotation = self._annotations.get(image_id)
            if annotation is None:
                return None
            index = _find_region_index(annotation, region_id)
            if index is None:
                return None
            return annotation.boxes[index].model_copy()

    def get_annotations(self) -> dict[str, ImageAnnotation]:
        """Snapshot of every annotation, keyed by image id."""
        with self._lock:
            return {
                image_id: annotation.model_copy(deep=True)
                for image_id, annotation in self._annotations.items()
            }

    def snapshot(self) -> tuple[dict[str, ImageAnnotation], int]:
        """Annotations together with the revision they were taken at."""
        with self._lock:
            return self.get_annotations(), self._revision

    def load_annotations(self, data: Mapping[str, ImageAnnotation]) -> None:
        """Replace all annotations, e.g. with those saved by a previous session.

        History does not carry across a load and the state becomes clean.
        """
        with self._lock:
            self._annotations = {
                image_id: annotation.model_copy(deep=True)
                for image_id, annotation in data.items()
            }
            self._undo_stack.clear()
            self._redo_stack.clear()
            self._dirty = False
            self._revision += 1

    def mark_clean(self, revision: int | None = None) -> bool:
        """Clear the dirty flag after a save.

        Args:
            revision: Revision the saved snapshot was taken at. When given,
                the flag is only cleared if nothing changed since.

        Returns:
            True if the flag was cleared.
        """
        with self._lock:
            if revision is not None and revision != self._revision:
                return False
            self._dirty = False
            return True
