"""
Layer 3: Batch analysis
- Checkpoint store (resume after interruption)
- Rate-limited batch scheduler with exponential backoff
- Per-transcript pipeline and the command entry point
"""
from .checkpoint_store import CheckpointStore, FileCheckpointStore, InMemoryCheckpointStore
from .batch_scheduler import (
    BatchConfig,
    BatchRunSummary,
    BatchScheduler,
    ProgressEvent,
    compute_backoff_delay,
    summarize_failures,
)
from .transcript_pipeline import TranscriptAnalysisPipeline, order_items, select_pending

__all__ = [
    'CheckpointStore',
    'FileCheckpointStore',
    'InMemoryCheckpointStore',
    'BatchConfig',
    'BatchRunSummary',
    'BatchScheduler',
    'ProgressEvent',
    'compute_backoff_delay',
    'summarize_failures',
    'TranscriptAnalysisPipeline',
    'order_items',
    'select_pending',
]
