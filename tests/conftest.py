"""Shared test configuration and fixtures."""

import json
import os
import tempfile
from pathlib import Path

import pytest
from PIL import Image

# Set high rate limit before importing app to avoid rate limiting in tests
# This must be done before any imports that load the routes module
os.environ.setdefault("REGIONBOX_EXPORT_RATE_LIMIT", "10000/minute")

SAMPLE_ITEMS = [
    {
        "id": "item-1",
        "image": "images/item-1.png",
        "conversations": [
            {"from": "human", "value": "<image>\nBu resimde ne var?"},
            {
                "from": "gpt",
                "value": 'Masada <region>kirmizi kutu</region> ve <region>"mavi top"</region> var.',
            },
        ],
    },
    {
        "id": "item-2",
        "image": "images/item-2.png",
        "conversations": [
            {"from": "human", "value": "<image>\nAnlat."},
            {
                "from": "gpt",
                "value": "Arkada <region>beyaz duvar</region>, onde <region>yesil masa</region>.",
            },
        ],
    },
    {
        "id": "item-3",
        "image": "images/item-3.png",
        "conversations": [{"from": "human", "value": "<image>\nBos."}],
    },
]

IMAGE_SIZES = {"item-1": (200, 100), "item-2": (100, 100), "item-3": (50, 50)}


def write_dataset(dataset_dir: Path, items: list[dict] = SAMPLE_ITEMS) -> Path:
    """Write dataset.json and one PNG per item into dataset_dir."""
    images_dir = dataset_dir / "images"
    images_dir.mkdir(parents=True, exist_ok=True)
    for item in items:
        size = IMAGE_SIZES.get(item["id"], (64, 64))
        Image.new("RGB", size, color="white").save(dataset_dir / item["image"])
    (dataset_dir / "dataset.json").write_text(
        json.dumps(items, ensure_ascii=False), encoding="utf-8"
    )
    return dataset_dir


@pytest.fixture
def dataset_dir() -> Path:
    """Create a temporary dataset folder with three items."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield write_dataset(Path(tmpdir) / "flowers")
