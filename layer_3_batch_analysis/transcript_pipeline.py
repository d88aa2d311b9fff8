"""
Per-transcript pipeline: analyse, map themes onto the catalog, persist
"""
import dataclasses
import time
from typing import Iterable, List, Optional, Set

from config.settings import settings
from layer_1_data_import.storage import AnalysisDataStore, StorageError
from layer_1_data_import.theme_catalog import ThemeCatalog
from layer_1_data_import.validator import QuoteValidator
from layer_2_theme_extraction.story_analyzer import StoryAnalyzer
from layer_2_theme_extraction.theme_resolver import ThemeResolver
from models.analysis import AnalysisInput, AnalysisResult, QuoteRecord
from models.checkpoint import CheckpointRecord
from utils.logger import get_logger

logger = get_logger(__name__)


def order_items(items: Iterable[AnalysisInput]) -> List[AnalysisInput]:
    """
    Shortest transcripts first, so cheap wins land early

    Ties keep a stable order by transcript id.
    """
    return sorted(items, key=lambda item: (item.word_count, item.item_id))


def select_pending(items: Iterable[AnalysisInput], record: CheckpointRecord) -> List[AnalysisInput]:
    """Transcripts not yet processed (failed ones are eligible again)"""
    return [item for item in items if not record.is_processed(item.item_id)]


class TranscriptAnalysisPipeline:
    """Everything that happens to one transcript inside a batch attempt"""

    def __init__(
        self,
        store: AnalysisDataStore,
        catalog: ThemeCatalog,
        analyzer: StoryAnalyzer,
        resolver: ThemeResolver,
        min_quote_length: int = None,
        analysis_version: str = None,
    ):
        """
        Initialize pipeline

        Args:
            store: Where results and quotes are written
            catalog: Theme catalog and usage statistics
            analyzer: LLM story analyzer
            resolver: Maps model labels onto catalog ids
            min_quote_length: Quotes this short or shorter are not stored
            analysis_version: Version tag written with every result
        """
        self.store = store
        self.catalog = catalog
        self.analyzer = analyzer
        self.resolver = resolver
        self.min_quote_length = settings.MIN_QUOTE_LENGTH if min_quote_length is None else min_quote_length
        self.analysis_version = analysis_version or settings.ANALYSIS_VERSION

    def process(self, item: AnalysisInput) -> AnalysisResult:
        """
        Analyse a transcript and store the result

        Usage statistics are read fresh for every transcript so the
        diversity correction sees results saved earlier in the batch.

        Args:
            item: Transcript to analyse

        Returns:
            The stored AnalysisResult (themes are catalog ids)

        Raises:
            LLMError: Transport failures from the analyzer or the theme assistant
            StorageError: The analysis row could not be saved (quote failures are only logged)
        """
        started = time.monotonic()
        themes = self.catalog.load_themes()
        usage = self.catalog.get_usage_stats()

        draft = self.analyzer.analyze(item.text, themes, usage, item_id=item.item_id)
        theme_ids = self.resolver.resolve(draft.raw_themes or draft.themes, themes, usage)

        result = dataclasses.replace(
            draft,
            item_id=item.item_id,
            themes=theme_ids,
            raw_themes=list(draft.raw_themes or draft.themes),
            model_name=getattr(self.analyzer.llm_client, "model_name", None),
            analysis_type=self.catalog.analysis_type,
            analysis_version=self.analysis_version,
            processing_time_seconds=round(time.monotonic() - started, 2),
        )

        if result.is_fallback:
            logger.warning(f"Transcript {item.item_id} stored with fallback analysis; flagged for manual review")

        self.store.save_analysis_result(result)
        self._save_quotes(item, result)
        return result

    def _save_quotes(self, item: AnalysisInput, result: AnalysisResult):
        """
        Store the result's quotes

        The analysis row is already written, so a failure here must not fail
        the attempt: a retry would store a second row for the transcript.
        """
        quotes = QuoteValidator.prepare_all(result.quotes, self.min_quote_length)
        if not quotes:
            return
        storyteller_id: Optional[str] = item.metadata.get("storyteller_id")
        try:
            self.store.save_quotes([
                QuoteRecord(transcript_id=item.item_id, quote_text=quote, storyteller_id=storyteller_id)
                for quote in quotes
            ])
        except StorageError as e:
            logger.error(f"Quotes for transcript {item.item_id} were not saved: {e}")

    def completed_ids(self) -> Set[str]:
        """Transcripts that already have a stored result of this analysis type"""
        return self.store.get_analyzed_ids(self.catalog.analysis_type)
