"""Manual export/import of a user's dataset as a portable JSON document."""

import json
import logging
from pathlib import Path
from typing import Any

from .clock import local_date
from .errors import DataShapeError, InvalidImportError
from .models import Dataset

__all__ = [
    "REQUIRED_FIELDS",
    "export_document",
    "dumps",
    "write_export",
    "export_filename",
    "parse_import",
]

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("profile", "logs", "weightHistory", "schedule", "presetFoods")


def export_document(dataset: Dataset, user_id: str, now_ms: int) -> dict:
    """Full-fidelity document for ``dataset`` (no compaction)."""
    document = dataset.to_dict()
    document["timestamp"] = now_ms
    document["user"] = user_id
    return document


def dumps(document: dict) -> str:
    return json.dumps(document, indent=2, ensure_ascii=False)


def export_filename(user_id: str, now_ms: int) -> str:
    return f"nutrisync_backup_{user_id}_{local_date(now_ms).isoformat()}.json"


def write_export(dataset: Dataset, user_id: str, now_ms: int, directory: Path) -> Path:
    """Write an export document into ``directory`` and return its path."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / export_filename(user_id, now_ms)
    path.write_text(dumps(export_document(dataset, user_id, now_ms)), encoding="utf-8")
    logger.info(f"Exported data for {user_id} to {path}")
    return path


def parse_import(document: Any) -> Dataset:
    """Validate an import document and decode its dataset.

    Raises:
        InvalidImportError: If a required top-level field is missing or any
            part of the document is malformed. Nothing is partially merged.
    """
    if isinstance(document, (str, bytes)):
        try:
            document = json.loads(document)
        except ValueError as e:
            raise InvalidImportError(f"Not a JSON document: {e}") from e

    if not isinstance(document, dict):
        raise InvalidImportError("Import document must be a JSON object")

    missing = [key for key in REQUIRED_FIELDS if key not in document]
    if missing:
        raise InvalidImportError(f"Import document is missing: {', '.join(missing)}")

    try:
        return Dataset.from_dict(document)
    except DataShapeError as e:
        raise InvalidImportError(f"Import document is malformed: {e}") from e

