"""
Rate-limited batch scheduler

Runs transcripts through the analysis pipeline one at a time, spacing calls
to stay under the API's requests-per-minute ceiling, backing off
exponentially on failures and saving the checkpoint after every transcript.
"""
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from config.settings import settings
from layer_3_batch_analysis.checkpoint_store import CheckpointStore
from models.analysis import AnalysisInput, AnalysisResult
from models.checkpoint import CheckpointRecord
from utils.llm_client import RateLimitError
from utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class BatchConfig:
    """Spacing and retry policy for a batch run"""
    base_delay: float = 12.0
    backoff_multiplier: float = 2.0
    max_retries: int = 5

    def __post_init__(self):
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay cannot be negative")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be >= 1")

    @classmethod
    def from_settings(cls) -> "BatchConfig":
        return cls(
            base_delay=settings.RATE_LIMIT_BASE_DELAY,
            backoff_multiplier=settings.RATE_LIMIT_BACKOFF_MULTIPLIER,
            max_retries=settings.LLM_RETRY_ATTEMPTS,
        )


def compute_backoff_delay(attempt: int, config: BatchConfig, retry_after: Optional[float] = None) -> float:
    """
    Seconds to wait after failed attempt number `attempt` (1-based)

    Args:
        attempt: Number of the attempt that just failed
        config: Batch policy
        retry_after: Wait time the API asked for, if any (takes precedence)

    Returns:
        base_delay * backoff_multiplier^(attempt-1), or retry_after
    """
    if retry_after is not None and retry_after >= 0:
        return float(retry_after)
    return config.base_delay * (config.backoff_multiplier ** (attempt - 1))


@dataclass
class ProgressEvent:
    """Emitted after every transcript"""
    processed_count: int
    failed_count: int
    total_count: int
    percentage: float
    current_item_label: str


@dataclass
class BatchRunSummary:
    """Outcome of one scheduler run"""
    total_items: int = 0
    skipped_items: int = 0
    attempted_items: int = 0
    succeeded_items: int = 0
    failed_items: int = 0
    processed_count: int = 0
    failed_count: int = 0
    cancelled: bool = False
    duration_seconds: float = 0.0
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def success_rate(self) -> float:
        finished = self.succeeded_items + self.failed_items
        if finished == 0:
            return 0.0
        return round(self.succeeded_items / finished * 100, 1)


@dataclass
class _ItemOutcome:
    succeeded: bool = False
    interrupted: bool = False
    attempts: int = 0
    last_error: str = ""
    result: Optional[AnalysisResult] = None


class BatchScheduler:
    """Drive pending transcripts through the pipeline under a rate limit"""

    def __init__(
        self,
        process_item: Callable[[AnalysisInput], AnalysisResult],
        checkpoint_store: CheckpointStore,
        config: Optional[BatchConfig] = None,
        progress_callback: Optional[Callable[[ProgressEvent], None]] = None,
        wait: Optional[Callable[[float], bool]] = None,
    ):
        """
        Initialize scheduler

        Args:
            process_item: Analyses and persists one transcript; raising means the attempt failed
            checkpoint_store: Where progress is saved after every transcript
            config: Spacing/retry policy (defaults to settings)
            progress_callback: Called with a ProgressEvent after every transcript
            wait: Sleeps for the given seconds and returns True if the run was
                cancelled meanwhile (defaults to waiting on the cancel event)
        """
        self.process_item = process_item
        self.checkpoint_store = checkpoint_store
        self.config = config or BatchConfig.from_settings()
        self.progress_callback = progress_callback
        self._cancel_event = threading.Event()
        self._wait_fn = wait or self._cancel_event.wait

    def cancel(self):
        """Ask the run to stop after the transcript in progress"""
        if not self._cancel_event.is_set():
            logger.warning("Cancellation requested; finishing the current transcript and stopping")
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def _wait(self, seconds: float) -> bool:
        """Sleep unless cancelled; returns True if the run should stop"""
        if self.cancelled:
            return True
        if seconds > 0:
            self._wait_fn(seconds)
        return self.cancelled

    def run(self, items: Sequence[AnalysisInput]) -> BatchRunSummary:
        """
        Process transcripts in the order given

        Transcripts already marked processed in the checkpoint are skipped;
        previously failed ones are tried again.

        Args:
            items: Transcripts, already ordered by the caller

        Returns:
            BatchRunSummary for this run
        """
        start_time = time.monotonic()
        record = self.checkpoint_store.load()
        record.update_total(len(items))

        pending = [item for item in items if not record.is_processed(item.item_id)]
        summary = BatchRunSummary(total_items=len(items), skipped_items=len(items) - len(pending))

        logger.info("Starting processing with rate limit strategy:")
        logger.info(f"   Base delay: {self.config.base_delay}s")
        logger.info(f"   Backoff multiplier: {self.config.backoff_multiplier}")
        logger.info(f"   Max retries: {self.config.max_retries}")
        logger.info(
            f"   Pending: {len(pending)} (already processed: {summary.skipped_items}, "
            f"previous failures: {len(record.failed)})"
        )
        self.checkpoint_store.save(record)

        made_call = False
        for item in pending:
            if self.cancelled:
                summary.cancelled = True
                break

            # Fixed spacing between transcripts keeps us under the per-minute ceiling
            if made_call:
                logger.info(f"   Rate limit delay {self.config.base_delay}s...")
                if self._wait(self.config.base_delay):
                    summary.cancelled = True
                    break

            logger.info(f"\n{record.completed_count + 1}/{record.total_count}: {item.label}")
            logger.info(f"   Length: {item.word_count} words")

            outcome = self._process_with_retry(item, record)
            made_call = True
            summary.attempted_items += 1

            if outcome.succeeded:
                summary.succeeded_items += 1
            elif outcome.interrupted:
                summary.cancelled = True
            else:
                summary.failed_items += 1
                summary.failures[item.item_id] = outcome.last_error

            self.checkpoint_store.save(record)
            self._emit_progress(record, item)

            if outcome.interrupted:
                break

        if self.cancelled:
            summary.cancelled = True

        summary.processed_count = len(record.processed)
        summary.failed_count = len(record.failed)
        summary.duration_seconds = round(time.monotonic() - start_time, 2)
        return summary

    def _process_with_retry(self, item: AnalysisInput, record: CheckpointRecord) -> _ItemOutcome:
        """
        Attempt one transcript up to max_retries times

        Marks the checkpoint record processed or failed. If the run is
        cancelled during a backoff wait the record is left untouched so the
        transcript is picked up again next time.
        """
        outcome = _ItemOutcome()
        started = time.monotonic()
        max_retries = self.config.max_retries

        for attempt in range(1, max_retries + 1):
            outcome.attempts = attempt
            logger.info(f"   Attempt {attempt}/{max_retries}...")
            try:
                result = self.process_item(item)
            except Exception as e:
                outcome.last_error = f"{e.__class__.__name__}: {e}"
                logger.warning(f"   Attempt {attempt} failed for {item.item_id}: {outcome.last_error}")

                if attempt >= max_retries:
                    break

                retry_after = e.retry_after if isinstance(e, RateLimitError) else None
                delay = compute_backoff_delay(attempt, self.config, retry_after)
                if isinstance(e, RateLimitError):
                    logger.warning(f"   Rate limit hit, waiting {delay}s...")
                else:
                    logger.info(f"   Backing off {delay}s...")

                if self._wait(delay):
                    outcome.interrupted = True
                    logger.warning(f"   Cancelled while backing off; {item.item_id} left for the next run")
                    return outcome
                continue

            elapsed = time.monotonic() - started
            record.mark_processed(item.item_id)
            outcome.succeeded = True
            outcome.result = result
            themes = ", ".join((result.themes or [])[:3]) if result is not None else ""
            logger.info(f"   Success in {elapsed:.1f}s - Themes: {themes}")
            return outcome

        logger.error(f"   All {max_retries} attempts failed for {item.item_id}, marking as failed")
        record.mark_failed(item.item_id, outcome.last_error)
        return outcome

    def _emit_progress(self, record: CheckpointRecord, item: AnalysisInput):
        event = ProgressEvent(
            processed_count=len(record.processed),
            failed_count=len(record.failed),
            total_count=record.total_count,
            percentage=record.percentage,
            current_item_label=item.label,
        )
        logger.info(
            f"   Progress: {record.completed_count}/{event.total_count} ({event.percentage}%) - "
            f"processed={event.processed_count} failed={event.failed_count} item={event.current_item_label}"
        )
        if self.progress_callback:
            self.progress_callback(event)


def summarize_failures(summary: BatchRunSummary, record: CheckpointRecord) -> List[str]:
    """Lines describing every failed transcript and its last error"""
    errors = dict(record.last_errors)
    errors.update(summary.failures)
    return [f"{item_id}: {errors.get(item_id, 'unknown error')}" for item_id in sorted(record.failed)]
