"""Extraction of region placeholders from conversation text."""

import re
from typing import NamedTuple

from regionbox.models.dataset import Conversation, DatasetItem, ParsedRegion

REGION_PATTERN = re.compile(r"<region>([\s\S]*?)</region>")

# Regions naming this colour are never annotated ("beyaz" is Turkish for white).
EXCLUDED_STOPWORD = "beyaz"

_QUOTES = ('"', "'")


class _Candidate(NamedTuple):
    payload: str
    start: int
    end: int


def clean_region_text(payload: str) -> str:
    """Trim whitespace and one layer of surrounding quotes from a payload.

    Example:
        >>> clean_region_text('  "kirmizi kutu" ')
        'kirmizi kutu'
    """
    text = payload.strip()
    if text.startswith(_QUOTES):
        text = text[1:]
    if text.endswith(_QUOTES):
        text = text[:-1]
    return text


def is_excluded(text: str) -> bool:
    """Return True if a region payload names the excluded stopword."""
    return EXCLUDED_STOPWORD in text.lower()


def _find_candidates(text: str) -> list[_Candidate]:
    return [
        _Candidate(match.group(1), match.start(), match.end())
        for match in REGION_PATTERN.finditer(text)
    ]


def parse_regions(text: str) -> list[ParsedRegion]:
    """Parse all region tags in text, in order of appearance.

    Excluded regions are dropped before numbering, so indices of the
    surviving regions are contiguous from 1. Unterminated tags never match.

    Args:
        text: The conversation text to scan.

    Returns:
        Regions ordered by start offset.
    """
    regions: list[ParsedRegion] = []
    for candidate in _find_candidates(text):
        region_text = clean_region_text(candidate.payload)
        if is_excluded(region_text):
            continue
        index = len(regions) + 1
        regions.append(
            ParsedRegion(
                id=f"region-{index}",
                index=index,
                text=region_text,
                start_offset=candidate.start,
                end_offset=candidate.end,
            )
        )
    return regions


def get_gpt_conversation(item: DatasetItem) -> Conversation | None:
    """Return the first gpt turn of an item, if any."""
    return next((c for c in item.conversations if c.from_ == "gpt"), None)


def get_regions_for_item(item: DatasetItem) -> list[ParsedRegion]:
    """Parse the regions of an item's gpt turn."""
    conversation = get_gpt_conversation(item)
    if conversation is None:
        return []
    return parse_regions(conversation.value)
