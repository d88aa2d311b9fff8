"""
Batch checkpoint data model
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, Optional, Set

CHECKPOINT_SCHEMA_VERSION = 1


def _parse_timestamp(value: Optional[str]) -> datetime:
    if not value:
        return datetime.now()
    return datetime.fromisoformat(value)


@dataclass
class CheckpointRecord:
    """
    Progress of a batch analysis job

    `processed` and `failed` never share an id: marking an item one way
    removes it from the other set.
    """
    processed: Set[str] = field(default_factory=set)
    failed: Set[str] = field(default_factory=set)
    total_count: int = 0
    started_at: datetime = field(default_factory=datetime.now)
    last_updated_at: datetime = field(default_factory=datetime.now)
    last_errors: Dict[str, str] = field(default_factory=dict)

    def mark_processed(self, item_id: str):
        self.failed.discard(item_id)
        self.last_errors.pop(item_id, None)
        self.processed.add(item_id)

    def mark_failed(self, item_id: str, error: str = ""):
        self.processed.discard(item_id)
        self.failed.add(item_id)
        self.last_errors[item_id] = error

    def update_total(self, count: int):
        """Raise total_count to `count`; it never goes down within a run"""
        self.total_count = max(self.total_count, count)

    def is_processed(self, item_id: str) -> bool:
        return item_id in self.processed

    @property
    def completed_count(self) -> int:
        return len(self.processed) + len(self.failed)

    @property
    def percentage(self) -> float:
        if self.total_count <= 0:
            return 0.0
        return round(self.completed_count / self.total_count * 100, 1)

    def retain_only(self, item_ids: Iterable[str]):
        """Drop ids that are not part of the current item set"""
        keep = set(item_ids)
        self.processed &= keep
        self.failed &= keep
        self.last_errors = {
            item_id: error for item_id, error in self.last_errors.items()
            if item_id in self.failed
        }

    def to_dict(self) -> dict:
        """Convert checkpoint to its versioned file representation"""
        return {
            "version": CHECKPOINT_SCHEMA_VERSION,
            "processed": sorted(self.processed),
            "failed": sorted(self.failed),
            "total_count": self.total_count,
            "started_at": self.started_at.isoformat(),
            "last_updated_at": self.last_updated_at.isoformat(),
            "last_errors": dict(self.last_errors),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CheckpointRecord":
        """
        Create checkpoint from its file representation

        Unknown keys are ignored and optional keys default, so files written
        by newer versions still load.
        """
        if not isinstance(data, dict):
            raise ValueError("Checkpoint payload must be a JSON object")

        processed = {str(item_id) for item_id in data.get("processed", [])}
        failed = {str(item_id) for item_id in data.get("failed", [])} - processed
        last_errors = {
            str(item_id): str(error)
            for item_id, error in (data.get("last_errors") or {}).items()
            if str(item_id) in failed
        }
        return cls(
            processed=processed,
            failed=failed,
            total_count=int(data.get("total_count", 0)),
            started_at=_parse_timestamp(data.get("started_at")),
            last_updated_at=_parse_timestamp(data.get("last_updated_at")),
            last_errors=last_errors,
        )
