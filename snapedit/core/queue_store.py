"""
Offline Queue Storage
=====================

Durable persistence for the offline queue.

Layout under the storage directory, for a storage key K:

    K.json          list of entry records (id, instruction, options, context,
                    enqueued_at, retry_count, blob)
    K-blobs/<id>.bin raw image bytes of each entry

The JSON document is replaced atomically on every save and blobs that no
entry references any more are removed, so the directory always mirrors the
in-memory queue.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from snapedit.core import config
from snapedit.core.models import EditOptions, EditRequest, OfflineQueueEntry

logger = logging.getLogger(__name__)


class QueueStore:
    """
    Reads and writes the offline queue under a fixed storage key.

    Args:
        directory: Folder holding the queue document and blob folder
        storage_key: Base name of the queue document
    """

    def __init__(self, directory, storage_key: str = config.OFFLINE_QUEUE_STORAGE_KEY):
        self.directory = Path(directory)
        self.storage_key = storage_key

    @property
    def document_path(self) -> Path:
        return self.directory / f"{self.storage_key}.json"

    @property
    def blob_dir(self) -> Path:
        return self.directory / f"{self.storage_key}-blobs"

    def _blob_path(self, entry_id: str) -> Path:
        return self.blob_dir / f"{entry_id}.bin"

    def save(self, entries: List[OfflineQueueEntry]) -> None:
        """
        Persist `entries` in order.

        Raises:
            OSError: If the document or a blob cannot be written.
        """
        self.blob_dir.mkdir(parents=True, exist_ok=True)

        records = []
        for entry in entries:
            blob = self._blob_path(entry.id)
            if not blob.exists():
                tmp_blob = blob.with_suffix(".bin.tmp")
                tmp_blob.write_bytes(entry.request.image_bytes)
                os.replace(tmp_blob, blob)
            records.append(_entry_to_record(entry, blob.name))

        tmp_path = self.document_path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(records, f, indent=2)
        os.replace(tmp_path, self.document_path)

        keep = {record["blob"] for record in records}
        for blob in self.blob_dir.glob("*.bin"):
            if blob.name not in keep:
                try:
                    blob.unlink()
                except OSError as e:
                    logger.warning(f"Could not remove stale queue blob {blob}: {e}")

        logger.debug(f"Persisted {len(records)} offline queue entr{'y' if len(records) == 1 else 'ies'}")

    def load(self) -> List[OfflineQueueEntry]:
        """
        Read the persisted queue.

        A missing document yields an empty queue. Records that are malformed
        or whose blob is gone are skipped with a warning.
        """
        if not self.document_path.exists():
            return []

        try:
            with open(self.document_path, "r", encoding="utf-8") as f:
                records = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Offline queue document is corrupted: {e}")
            return []

        if not isinstance(records, list):
            logger.error("Offline queue document is not a list, ignoring it")
            return []

        entries = []
        for record in records:
            entry = self._record_to_entry(record)
            if entry is not None:
                entries.append(entry)

        logger.info(f"Loaded {len(entries)} offline queue entr{'y' if len(entries) == 1 else 'ies'} from {self.directory}")
        return entries

    def _record_to_entry(self, record: Dict[str, Any]) -> Optional[OfflineQueueEntry]:
        try:
            entry_id = str(record["id"])
            blob = self.blob_dir / record.get("blob", f"{entry_id}.bin")
            image_bytes = blob.read_bytes()
            request = EditRequest(
                image_bytes=image_bytes,
                instruction=record["instruction"],
                options=EditOptions.from_dict(record.get("options") or {}),
            )
            return OfflineQueueEntry(
                id=entry_id,
                request=request,
                context=record.get("context", ""),
                enqueued_at=float(record["enqueued_at"]),
                retry_count=int(record.get("retry_count", 0)),
            )
        except FileNotFoundError:
            logger.warning(f"Dropping offline entry {record.get('id')}: image data is missing")
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Dropping malformed offline entry {record!r}: {e}")
        return None


def _entry_to_record(entry: OfflineQueueEntry, blob_name: str) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "instruction": entry.request.instruction,
        "options": entry.request.options.to_dict(),
        "context": entry.context,
        "enqueued_at": entry.enqueued_at,
        "retry_count": entry.retry_count,
        "blob": blob_name,
    }
