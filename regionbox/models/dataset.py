"""Pydantic models for dataset items and parsed regions."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from regionbox.models.annotations import CamelModel

Role = Literal["system", "human", "gpt"]


class Conversation(BaseModel):
    """One turn of a dataset item's conversation."""

    model_config = ConfigDict(populate_by_name=True)

    from_: Role = Field(..., alias="from", description="Speaker role")
    value: str


class DatasetItem(BaseModel):
    """One annotatable unit from dataset.json."""

    id: str = Field(..., description="Stable item identifier")
    image: str = Field(..., description="Image path relative to the dataset folder")
    conversations: list[Conversation] = Field(default_factory=list)


class ParsedRegion(CamelModel):
    """A region placeholder found in a turn's text.

    Offsets cover the whole tag, delimiters included, and are only valid
    for the exact text that was parsed.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    index: int = Field(..., ge=1)
    text: str
    start_offset: int = Field(..., ge=0)
    end_offset: int = Field(..., ge=0)


class ItemSummary(BaseModel):
    """Per-item progress row for listings."""

    id: str
    image: str
    region_count: int = 0
    box_count: int = 0
    skipped: bool = False


class DatasetInfo(BaseModel):
    """Information about the opened dataset folder."""

    folder_name: str
    item_count: int = 0
    current_index: int = 0
    current_item_id: str | None = None
    dirty: bool = False
