"""Tests for the Workspace."""

import tempfile
from pathlib import Path

import pytest

from regionbox.models.annotations import BoxCoordinates
from regionbox.services.workspace import Workspace


@pytest.fixture
def workspace(dataset_dir: Path) -> Workspace:
    """Open the sample dataset."""
    return Workspace.open(dataset_dir)


def full_box() -> BoxCoordinates:
    return BoxCoordinates(x=0.0, y=0.0, width=1.0, height=1.0)


class TestOpen:
    """Tests for opening a dataset folder."""

    def test_open_loads_items(self, workspace: Workspace) -> None:
        """Items are loaded in file order and the state starts clean."""
        assert [item.id for item in workspace.items] == ["item-1", "item-2", "item-3"]
        assert not workspace.state.is_dirty
        assert not workspace.state.can_undo()

    def test_open_invalid_folder(self) -> None:
        """Opening a folder that is not a dataset raises FileNotFoundError."""
        with tempfile.TemporaryDirectory() as tmpdir:
            with pytest.raises(FileNotFoundError):
                Workspace.open(Path(tmpdir))

    def test_open_restores_saved_annotations(self, workspace: Workspace) -> None:
        """Annotations saved by a previous session are loaded."""
        workspace.state.add_box("item-1", "region-1", full_box())
        workspace.state.mark_skipped("item-2")
        workspace.save()

        reopened = Workspace.open(workspace.dataset_service.dataset_dir)
        box = reopened.state.get_box_for_region("item-1", "region-1")
        assert box is not None
        assert box.width == 1.0
        annotation = reopened.state.get_annotation("item-2")
        assert annotation is not None
        assert annotation.skipped
        assert not reopened.state.can_undo()


class TestItems:
    """Tests for item lookup and summaries."""

    def test_get_item(self, workspace: Workspace) -> None:
        """Items are found by id."""
        item = workspace.get_item("item-2")
        assert item is not None
        assert item.image == "images/item-2.png"
        assert workspace.get_item("missing") is None

    def test_get_regions(self, workspace: Workspace) -> None:
        """Regions are parsed from the gpt turn."""
        regions = workspace.get_regions("item-1")
        assert [r.text for r in regions] == ["kirmizi kutu", "mavi top"]
        assert workspace.get_regions("item-3") == []
        assert workspace.get_regions("missing") is None

    def test_list_summaries(self, workspace: Workspace) -> None:
        """Summaries count regions and boxes per item."""
        workspace.state.add_box("item-1", "region-1", full_box())
        workspace.state.mark_skipped("item-3")
        summaries = {s.id: s for s in workspace.list_summaries()}
        assert summaries["item-1"].region_count == 2
        assert summaries["item-1"].box_count == 1
        assert summaries["item-2"].region_count == 1
        assert summaries["item-2"].box_count == 0
        assert summaries["item-3"].skipped


class TestNavigation:
    """Tests for moving between items."""

    def test_starts_at_first_item(self, workspace: Workspace) -> None:
        """The first item is current after opening."""
        assert workspace.current_index == 0
        current = workspace.get_current_item()
        assert current is not None
        assert current.id == "item-1"

    def test_next_and_previous_are_bounded(self, workspace: Workspace) -> None:
        """Navigation stops at both ends."""
        assert not workspace.go_to_previous()
        assert workspace.go_to_next()
        assert workspace.go_to_next()
        assert not workspace.go_to_next()
        assert workspace.current_index == 2
        assert workspace.go_to_previous()
        assert workspace.current_index == 1

    def test_go_to_index(self, workspace: Workspace) -> None:
        """Out-of-range jumps are ignored."""
        assert workspace.go_to_index(2)
        assert workspace.current_index == 2
        assert not workspace.go_to_index(3)
        assert not workspace.go_to_index(-1)
        assert workspace.current_index == 2

    def test_info(self, workspace: Workspace) -> None:
        """Info reports folder, position and dirty flag."""
        workspace.go_to_next()
        workspace.state.mark_skipped("item-2")
        info = workspace.get_info()
        assert info.folder_name == "flowers"
        assert info.item_count == 3
        assert info.current_index == 1
        assert info.current_item_id == "item-2"
        assert info.dirty


class TestSave:
    """Tests for saving."""

    def test_save_marks_clean(self, workspace: Workspace) -> None:
        """Saving writes annotations.json and clears the dirty flag."""
        workspace.state.add_box("item-1", "region-1", full_box())
        path = workspace.save()
        assert path.exists()
        assert not workspace.state.is_dirty
