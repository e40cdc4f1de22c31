"""Local fallback persistence for image metadata.

When the cloud stores are unreachable, image metadata (never binary content)
is written to a single JSON file under the configured data directory. The
file maps fixed keys to record lists:

- ``referenceImages`` - reference image records
- ``generatedImages`` - generated image records

Timestamps are stored as ISO-8601 strings.

The file has a size ceiling. A write that would exceed it raises
:class:`~kilnworks.core.errors.QuotaExceeded` internally and is retried with
only the most recent records (10 by default); if even that does not fit, only
the newest record is kept. The newest record is never the one dropped.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from .errors import QuotaExceeded
from .models import GeneratedImage, ReferenceImage, sort_generated, sort_references

logger = logging.getLogger(__name__)

REFERENCES_KEY = "referenceImages"
GENERATED_KEY = "generatedImages"


class LocalStore:
    """JSON file key/value store used as the offline fallback.

    Args:
        path: Location of the JSON file
        max_bytes: Size ceiling of the serialized file
        cap: Number of records kept when the ceiling is hit
    """

    def __init__(self, path: Path, *, max_bytes: int = 5 * 1024 * 1024, cap: int = 10) -> None:
        self.path = Path(path)
        self.max_bytes = max_bytes
        self.cap = cap
        self.path.parent.mkdir(parents=True, exist_ok=True)

    # -- raw key/value access -----------------------------------------------

    def _read_all(self) -> dict:
        """Load the whole file, returning an empty mapping on any failure."""
        if not self.path.exists():
            return {}
        try:
            with open(self.path, encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, ValueError) as e:
            logger.error(f"Error loading local store {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> list[dict]:
        records = self._read_all().get(key, [])
        if not isinstance(records, list):
            return []
        return [record for record in records if isinstance(record, dict)]

    def set(self, key: str, records: list[dict]) -> None:
        """Write *records* under *key*.

        Raises:
            QuotaExceeded: If the resulting file would exceed ``max_bytes``
        """
        data = self._read_all()
        data[key] = records
        self._write(data)

    def _write(self, data: dict) -> None:
        payload = json.dumps(data, indent=2)
        size = len(payload.encode("utf-8"))
        if size > self.max_bytes:
            raise QuotaExceeded(f"Local store would be {size} bytes (limit {self.max_bytes})")
        with open(self.path, "w", encoding="utf-8") as handle:
            handle.write(payload)

    def _save_newest_first(self, key: str, records: list[dict]) -> int:
        """Write *records* (already newest first), pruning on quota errors.

        Returns:
            Number of records actually written

        Raises:
            QuotaExceeded: Only if the newest record alone exceeds ``max_bytes``
        """
        try:
            self.set(key, records)
            return len(records)
        except QuotaExceeded:
            logger.warning(f"Local store quota exceeded for {key}, keeping {self.cap} most recent")

        try:
            self.set(key, records[: self.cap])
            return min(len(records), self.cap)
        except QuotaExceeded:
            logger.warning(f"Local store still full for {key}, keeping only the newest record")

        try:
            self.set(key, records[:1])
            return min(len(records), 1)
        except QuotaExceeded:
            logger.warning(f"Local store still full for {key}, pruning other keys")

        self._prune_others(key, records[:1])
        return min(len(records), 1)

    def _prune_others(self, key: str, records: list[dict]) -> None:
        """Drop the oldest records under every other key until *records* fit."""
        data = self._read_all()
        data[key] = records
        others = [k for k, v in data.items() if k != key and isinstance(v, list) and v]
        while True:
            try:
                self._write(data)
                return
            except QuotaExceeded:
                others = [k for k in others if data[k]]
                if not others:
                    raise
                # Other keys are stored newest first; the oldest is last.
                longest = max(others, key=lambda k: len(data[k]))
                dropped = data[longest].pop()
                logger.warning(f"Dropped oldest {longest} record {dropped.get('id')} to make room")

    # -- typed helpers --------------------------------------------------------

    def load_references(self) -> list[ReferenceImage]:
        images = []
        for record in self.get(REFERENCES_KEY):
            if not record.get("id") or not record.get("url"):
                continue
            images.append(ReferenceImage.from_record(record["id"], record))
        return sort_references(images)

    def save_references(self, images: list[ReferenceImage]) -> int:
        records = [{"id": image.id, **image.to_record()} for image in sort_references(images)]
        return self._save_newest_first(REFERENCES_KEY, records)

    def load_generated(self) -> list[GeneratedImage]:
        images = []
        for record in self.get(GENERATED_KEY):
            if not record.get("id") or not record.get("url"):
                continue
            images.append(GeneratedImage.from_record(record["id"], record))
        return sort_generated(images)

    def save_generated(self, images: list[GeneratedImage]) -> int:
        records = [{"id": image.id, **image.to_record()} for image in sort_generated(images)]
        return self._save_newest_first(GENERATED_KEY, records)

    def clear(self) -> None:
        """Remove the backing file."""
        if self.path.exists():
            self.path.unlink()
