"""
Entry point for analysing every transcript that doesn't have an analysis yet

This file runs the long batch job:
1. Loads transcripts and the theme catalog from the data store
2. Loads the checkpoint from the last run (if any) and merges it with what
   the data store already has
3. Sends transcripts to Gemini one at a time, shortest first, waiting
   between calls so we stay under the API rate limit
4. Saves progress after every transcript, so you can stop (Ctrl+C) and run
   it again later without repeating work

Failed transcripts are retried automatically the next time you run it.
"""
import random
import signal
from contextlib import contextmanager
from typing import Any, Dict, Optional

from config.settings import settings
from layer_1_data_import.storage import AnalysisDataStore, ConfigurationError, StorageError
from layer_1_data_import.theme_catalog import ThemeCatalog
from layer_2_theme_extraction.community_insights import (
    build_analysis_statistics,
    build_community_insights,
    log_analysis_statistics,
    log_community_insights,
)
from layer_2_theme_extraction.diversity_report import build_diversity_report, log_diversity_report
from layer_2_theme_extraction.story_analyzer import StoryAnalyzer
from layer_2_theme_extraction.theme_resolver import ThemeMatchAssistant, ThemeResolver
from layer_3_batch_analysis.batch_scheduler import (
    BatchConfig,
    BatchRunSummary,
    BatchScheduler,
    summarize_failures,
)
from layer_3_batch_analysis.checkpoint_store import FileCheckpointStore
from layer_3_batch_analysis.transcript_pipeline import TranscriptAnalysisPipeline, order_items, select_pending
from models.checkpoint import CheckpointRecord
from utils.llm_client import LLMClient
from utils.logger import get_logger, log_banner

logger = get_logger(__name__)


@contextmanager
def cancel_on_interrupt(scheduler: BatchScheduler):
    """Turn Ctrl+C into a cooperative cancel while the block runs"""
    def _handler(signum, frame):
        scheduler.cancel()

    try:
        previous = signal.signal(signal.SIGINT, _handler)
    except ValueError:
        # Not in the main thread; signals can't be installed here
        yield
        return

    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def build_pipeline(
    store: Optional[AnalysisDataStore] = None,
    llm_client: Optional[LLMClient] = None,
) -> TranscriptAnalysisPipeline:
    """
    Wire up store, catalog, analyzer and resolver

    Raises:
        ConfigurationError: Missing API key, unusable theme catalog or bad thresholds
    """
    store = store or AnalysisDataStore()
    catalog = ThemeCatalog(store)
    catalog.load_themes()

    if llm_client is None:
        try:
            llm_client = LLMClient()
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

    assistant = ThemeMatchAssistant(llm_client) if settings.ENABLE_ASSISTED_MATCHING else None
    try:
        resolver = ThemeResolver(
            assistant=assistant,
            rng=random.Random(settings.THEME_BACKFILL_SEED),
        )
    except ValueError as e:
        raise ConfigurationError(f"Invalid theme thresholds: {e}") from e
    return TranscriptAnalysisPipeline(store, catalog, StoryAnalyzer(llm_client), resolver)


def analyze_all_transcripts(
    reset: bool = False,
    limit: int = 0,
    store: Optional[AnalysisDataStore] = None,
    llm_client: Optional[LLMClient] = None,
    checkpoint_store: Optional[FileCheckpointStore] = None,
    config: Optional[BatchConfig] = None,
) -> BatchRunSummary:
    """
    Analyse all transcripts that are not done yet - This is the main function

    Args:
        reset: Forget the saved checkpoint before starting
        limit: Only attempt this many pending transcripts (0 = all)
        store: Data store (defaults to the JSON files in settings)
        llm_client: LLM client (defaults to Gemini from settings)
        checkpoint_store: Checkpoint store (defaults to settings.CHECKPOINT_FILE)
        config: Spacing/retry policy (defaults to settings)

    Returns:
        BatchRunSummary for the run

    Raises:
        ConfigurationError: Setup failed; no transcript was attempted
    """
    log_banner(logger, "SMART RATE-LIMITED ANALYSIS", width=80)
    settings.ensure_directories()

    store = store or AnalysisDataStore()
    try:
        transcripts = store.load_transcripts()
        analyzed_ids = store.get_analyzed_ids(settings.ANALYSIS_TYPE)
    except StorageError as e:
        raise ConfigurationError(f"Data store unavailable: {e}") from e

    pipeline = build_pipeline(store, llm_client)

    checkpoint_store = checkpoint_store or FileCheckpointStore()
    if reset:
        checkpoint_store.reset()

    record = checkpoint_store.load()
    checkpoint_store.reconcile(record, [t.item_id for t in transcripts], analyzed_ids)
    checkpoint_store.save(record)

    ordered = order_items(transcripts)
    pending = select_pending(ordered, record)

    logger.info(f"Found {len(transcripts)} transcripts, {len(pending)} to process")
    logger.info(f"Already processed: {len(record.processed)}")
    logger.info(f"Previous failures: {len(record.failed)}")

    if limit and limit > 0 and len(pending) > limit:
        logger.info(f"Limiting this run to {limit} transcripts")
        keep = {item.item_id for item in pending[:limit]}
        ordered = [item for item in ordered if record.is_processed(item.item_id) or item.item_id in keep]

    if not pending:
        logger.info("All transcripts already processed!")

    scheduler = BatchScheduler(pipeline.process, checkpoint_store, config=config)
    with cancel_on_interrupt(scheduler):
        summary = scheduler.run(ordered)

    log_final_stats(summary, checkpoint_store.load())
    return summary


def log_final_stats(summary: BatchRunSummary, record: CheckpointRecord):
    """Print the end-of-run report"""
    log_banner(logger, "FINAL STATISTICS", width=80)
    logger.info(f"Processed this run: {summary.succeeded_items}")
    logger.info(f"Failed this run: {summary.failed_items}")
    logger.info(f"Skipped (already processed): {summary.skipped_items}")
    logger.info(f"Total processed: {summary.processed_count}/{record.total_count}")
    logger.info(f"Total failed: {summary.failed_count}")
    logger.info(f"Total time: {summary.duration_seconds:.1f} seconds ({summary.duration_seconds / 60:.1f} minutes)")
    logger.info(f"Success rate: {summary.success_rate}%")

    if summary.cancelled:
        logger.warning("Run was cancelled; run again to continue where it stopped")

    failure_lines = summarize_failures(summary, record)
    if failure_lines:
        logger.warning("Failed transcripts (run again to retry them):")
        for line in failure_lines:
            logger.warning(f"  - {line}")
    logger.info("=" * 80)


def report_analysis(store: Optional[AnalysisDataStore] = None) -> Dict[str, Any]:
    """
    Log statistics, community insights and theme diversity for stored analyses

    Returns:
        {"statistics": ..., "insights": ..., "diversity": ...}

    Raises:
        ConfigurationError: The catalog or data store can't be read
    """
    store = store or AnalysisDataStore()
    catalog = ThemeCatalog(store)
    themes = catalog.load_themes()
    try:
        transcripts = store.load_transcripts()
        results = store.load_analysis_results(settings.ANALYSIS_TYPE)
        ai_quotes = store.count_quotes(extracted_by_ai=True)
    except StorageError as e:
        raise ConfigurationError(f"Data store unavailable: {e}") from e

    report = {
        "statistics": build_analysis_statistics(len(transcripts), results, ai_quotes),
        "insights": build_community_insights(results, themes),
        "diversity": build_diversity_report(themes, results),
    }
    log_analysis_statistics(report["statistics"])
    log_community_insights(report["insights"])
    log_diversity_report(report["diversity"])
    return report


if __name__ == "__main__":
    import sys
    from main import main
    sys.exit(main())
