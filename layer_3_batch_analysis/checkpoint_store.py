"""
Checkpoint store - remembers which transcripts a batch job has processed or
failed, so an interrupted job can pick up where it stopped
"""
import copy
import json
import os
import threading
from datetime import datetime
from typing import Iterable, Optional

from config.settings import settings
from models.checkpoint import CheckpointRecord
from utils.file_utils import atomic_write_json, read_json
from utils.logger import get_logger

logger = get_logger(__name__)


class CheckpointStore:
    """
    Base class for checkpoint storage

    Subclasses implement `_read` and `_write`; loading, saving and
    reconciliation are shared and serialised with a lock so concurrent
    saves never interleave.
    """

    def __init__(self):
        self._lock = threading.RLock()

    def _read(self) -> Optional[CheckpointRecord]:
        raise NotImplementedError

    def _write(self, record: CheckpointRecord):
        raise NotImplementedError

    def load(self) -> CheckpointRecord:
        """
        Load the last saved checkpoint

        Returns:
            Saved record, or a fresh one if nothing usable was saved
        """
        with self._lock:
            record = self._read()
            if record is None:
                return CheckpointRecord()
            return record

    def save(self, record: CheckpointRecord):
        """
        Persist the checkpoint, replacing the previous one

        Args:
            record: Checkpoint to save (its last_updated_at is set to now)
        """
        with self._lock:
            record.last_updated_at = datetime.now()
            self._write(record)

    def reconcile(
        self,
        record: CheckpointRecord,
        all_item_ids: Iterable[str],
        externally_completed_ids: Iterable[str] = (),
    ) -> CheckpointRecord:
        """
        Align a checkpoint with the current set of transcripts

        Ids no longer in `all_item_ids` are dropped from processed/failed;
        ids already analysed in the data store count as processed even if
        this checkpoint never saw them.

        Args:
            record: Checkpoint to update in place
            all_item_ids: Ids of every transcript in this run
            externally_completed_ids: Ids that already have a stored result

        Returns:
            The same record, updated
        """
        with self._lock:
            all_ids = set(all_item_ids)
            before_processed = len(record.processed)
            before_failed = len(record.failed)

            record.retain_only(all_ids)
            stale = (before_processed - len(record.processed)) + (before_failed - len(record.failed))

            adopted = 0
            for item_id in externally_completed_ids:
                if item_id in all_ids and item_id not in record.processed:
                    record.mark_processed(item_id)
                    adopted += 1

            if stale:
                logger.info(f"Checkpoint: dropped {stale} ids that are no longer in the transcript set")
            if adopted:
                logger.info(f"Checkpoint: {adopted} transcripts already analysed in the data store")
            return record


class FileCheckpointStore(CheckpointStore):
    """Checkpoint kept in a versioned, human-readable JSON file"""

    def __init__(self, path: str = None):
        """
        Initialize file-backed store

        Args:
            path: Checkpoint file (defaults to settings.CHECKPOINT_FILE)
        """
        super().__init__()
        self.path = path or settings.CHECKPOINT_FILE

    def _read(self) -> Optional[CheckpointRecord]:
        if not os.path.exists(self.path):
            logger.info(f"No checkpoint at {self.path}, starting fresh")
            return None

        try:
            record = CheckpointRecord.from_dict(read_json(self.path))
        except (OSError, json.JSONDecodeError, ValueError, TypeError) as e:
            logger.warning(f"Could not load checkpoint {self.path} ({e}), starting fresh")
            return None

        logger.info(
            f"Loaded checkpoint: {len(record.processed)} processed, {len(record.failed)} failed"
        )
        return record

    def _write(self, record: CheckpointRecord):
        atomic_write_json(self.path, record.to_dict())

    def reset(self):
        """Delete the checkpoint file so the next run starts fresh"""
        with self._lock:
            if os.path.exists(self.path):
                os.remove(self.path)
                logger.info(f"Removed checkpoint {self.path}")


class InMemoryCheckpointStore(CheckpointStore):
    """Checkpoint kept in memory (tests and dry runs)"""

    def __init__(self, record: Optional[CheckpointRecord] = None):
        super().__init__()
        self._record = copy.deepcopy(record)
        self.save_count = 0

    def _read(self) -> Optional[CheckpointRecord]:
        return copy.deepcopy(self._record)

    def _write(self, record: CheckpointRecord):
        self._record = copy.deepcopy(record)
        self.save_count += 1

    def reset(self):
        with self._lock:
            self._record = None
