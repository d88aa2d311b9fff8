"""
Integration tests for the transcript analysis pipeline and the command entry
points (Gemini mocked, data in temporary JSON files)
"""
import sys
import os
import json
import random
import runpy
import signal
import tempfile
import shutil
from unittest.mock import Mock, patch

import pytest

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from layer_1_data_import.storage import AnalysisDataStore, ConfigurationError, StorageError
from layer_1_data_import.theme_catalog import ThemeCatalog
from layer_2_theme_extraction.story_analyzer import StoryAnalyzer
from layer_2_theme_extraction.theme_resolver import ThemeMatchAssistant, ThemeResolver
from layer_3_batch_analysis.analyze_transcripts import (
    analyze_all_transcripts,
    cancel_on_interrupt,
    report_analysis,
)
from layer_3_batch_analysis.batch_scheduler import BatchConfig, BatchRunSummary, BatchScheduler
from layer_3_batch_analysis.checkpoint_store import FileCheckpointStore, InMemoryCheckpointStore
from layer_3_batch_analysis.transcript_pipeline import TranscriptAnalysisPipeline, order_items, select_pending
from models.analysis import AnalysisInput
from models.checkpoint import CheckpointRecord
import main
from utils.llm_client import RateLimitError
from utils.logger import get_logger

logger = get_logger(__name__)

THEME_ROWS = [
    {"id": "t1", "name": "Resilience", "category": "strength", "description": "Overcoming hardship"},
    {"id": "t2", "name": "Family", "category": "relationships", "description": "Home and kin"},
    {"id": "t3", "name": "Migration", "category": "life events", "description": "Leaving one place for another"},
]

TRANSCRIPT_ROWS = [
    {"id": "long", "transcript_content": " ".join(["word"] * 60), "storyteller_id": "s-1"},
    {"id": "short", "transcript_content": "We crossed the sea in winter", "storyteller_name": "Mae"},
    {"id": "medium", "transcript_content": " ".join(["story"] * 20)},
]

MODEL_REPLY = json.dumps({
    "themes": ["Resilience", "moving to a new country"],
    "emotions": ["hope"],
    "topics": ["journey"],
    "quotes": ["We never stopped believing in each other", "short", "Call me on 1234567890 whenever you like"],
    "summary": "A family starts again somewhere new.",
    "insights": ["Starting over takes courage"],
    "cultural_elements": [],
    "sensitivity_flags": [],
    "confidence_score": 0.85,
    "quality_score": 0.9,
})


def make_workspace(transcripts=TRANSCRIPT_ROWS, themes=THEME_ROWS):
    """Temp dir with transcripts/themes files and a store pointing at it"""
    temp_dir = tempfile.mkdtemp()
    paths = {
        "transcripts_file": os.path.join(temp_dir, "transcripts.json"),
        "themes_file": os.path.join(temp_dir, "themes.json"),
        "analyses_file": os.path.join(temp_dir, "story_analysis.json"),
        "quotes_file": os.path.join(temp_dir, "quotes.json"),
    }
    if transcripts is not None:
        with open(paths["transcripts_file"], 'w', encoding='utf-8') as f:
            json.dump({"transcripts": transcripts}, f)
    if themes is not None:
        with open(paths["themes_file"], 'w', encoding='utf-8') as f:
            json.dump({"themes": themes}, f)
    return temp_dir, AnalysisDataStore(**paths)


def make_llm(reply=MODEL_REPLY):
    llm = Mock()
    llm.model_name = "gemini-test"
    llm.generate.return_value = reply
    return llm


def read_rows(path, key):
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)[key]


class TestOrdering:
    """Test input ordering helpers"""

    def test_shortest_first(self):
        items = [
            AnalysisInput("b", "one two three"),
            AnalysisInput("a", "one two three"),
            AnalysisInput("c", "one"),
            AnalysisInput("d", "x", {"word_count": 100}),
        ]
        assert [item.item_id for item in order_items(items)] == ["c", "a", "b", "d"]

    def test_select_pending(self):
        items = [AnalysisInput("a", "x"), AnalysisInput("b", "x"), AnalysisInput("c", "x")]
        record = CheckpointRecord(processed={"a"}, failed={"b"})
        assert [item.item_id for item in select_pending(items, record)] == ["b", "c"]


class TestTranscriptAnalysisPipeline:
    """Test one transcript going through analyse -> resolve -> store"""

    def _pipeline(self, store, llm):
        catalog = ThemeCatalog(store, analysis_type="theme_extraction")
        resolver = ThemeResolver(overuse_threshold=10, underuse_threshold=3, min_result_themes=2,
                                 rng=random.Random(1))
        return TranscriptAnalysisPipeline(store, catalog, StoryAnalyzer(llm), resolver,
                                          min_quote_length=10, analysis_version="2.0")

    def test_process(self):
        """Themes become catalog ids and the result and quotes are stored"""
        temp_dir, store = make_workspace()
        try:
            pipeline = self._pipeline(store, make_llm())
            item = AnalysisInput.from_dict(TRANSCRIPT_ROWS[0])

            result = pipeline.process(item)

            assert result.item_id == "long"
            assert result.themes == ["t1", "t3"]
            assert result.raw_themes == ["Resilience", "moving to a new country"]
            assert result.model_name == "gemini-test"
            assert result.analysis_version == "2.0"
            assert result.processing_time_seconds is not None

            rows = read_rows(store.analyses_file, "analyses")
            assert len(rows) == 1
            assert rows[0]["themes_identified"] == ["t1", "t3"]
            assert rows[0]["approved_for_use"] == True

            quotes = read_rows(store.quotes_file, "quotes")
            assert [q["quote_text"] for q in quotes] == [
                "We never stopped believing in each other",
                "Call me on [REDACTED_PHONE] whenever you like",
            ]
            assert quotes[0]["storyteller_id"] == "s-1"
            assert pipeline.completed_ids() == {"long"}
        finally:
            shutil.rmtree(temp_dir)

    def test_usage_counts_grow_within_a_batch(self):
        """Each transcript sees the usage left by the ones before it"""
        temp_dir, store = make_workspace()
        try:
            pipeline = self._pipeline(store, make_llm())
            pipeline.process(AnalysisInput("a", "one story"))
            pipeline.process(AnalysisInput("b", "another story"))
            assert pipeline.catalog.get_usage_stats() == {"t1": 2, "t3": 2}
        finally:
            shutil.rmtree(temp_dir)

    def test_fallback_is_stored_with_backfilled_themes(self):
        """An unparseable reply still stores a flagged result with catalog themes"""
        temp_dir, store = make_workspace()
        try:
            pipeline = self._pipeline(store, make_llm("I could not analyse this story."))
            result = pipeline.process(AnalysisInput("a", "one two three"))

            assert result.is_fallback == True
            assert result.raw_themes == ["Personal Story", "Life Experience"]
            assert len(result.themes) == 2
            assert set(result.themes) <= {"t1", "t2", "t3"}
            assert result.confidence_score == 0.3

            rows = read_rows(store.analyses_file, "analyses")
            assert rows[0]["approved_for_use"] == False
            assert not os.path.exists(store.quotes_file)
        finally:
            shutil.rmtree(temp_dir)

    def test_quote_save_failure_does_not_duplicate_result(self):
        """A failed quote write is logged, the transcript is stored exactly once"""
        temp_dir, store = make_workspace()
        try:
            original_save_quotes = store.save_quotes
            calls = []

            def flaky_save_quotes(quotes):
                calls.append(len(quotes))
                if len(calls) == 1:
                    raise StorageError("disk full")
                original_save_quotes(quotes)

            store.save_quotes = flaky_save_quotes
            llm = make_llm()
            checkpoints = InMemoryCheckpointStore()
            pipeline = self._pipeline(store, llm)

            summary = BatchScheduler(pipeline.process, checkpoints,
                                     BatchConfig(base_delay=0, max_retries=5)).run([AnalysisInput("1", "one story")])

            assert summary.succeeded_items == 1
            assert llm.generate.call_count == 1
            rows = read_rows(store.analyses_file, "analyses")
            assert [row["transcript_id"] for row in rows] == ["1"]
            assert pipeline.catalog.get_usage_stats() == {"t1": 1, "t3": 1}
            assert checkpoints.load().processed == {"1"}
        finally:
            shutil.rmtree(temp_dir)

    def test_assistant_rate_limit_is_retried_before_anything_is_stored(self):
        """Quota errors from theme mapping make the scheduler back off and retry"""
        temp_dir, store = make_workspace()
        try:
            llm = make_llm(json.dumps({"themes": ["intergenerational storytelling practice"],
                                       "confidence_score": 0.9, "quality_score": 0.9}))
            assistant_llm = Mock()
            assistant_llm.generate.side_effect = [RateLimitError("429 quota", retry_after=7), "Family"]
            catalog = ThemeCatalog(store, analysis_type="theme_extraction")
            resolver = ThemeResolver(overuse_threshold=10, underuse_threshold=3, min_result_themes=1,
                                     assistant=ThemeMatchAssistant(assistant_llm), rng=random.Random(1))
            pipeline = TranscriptAnalysisPipeline(store, catalog, StoryAnalyzer(llm), resolver)
            waits = []

            scheduler = BatchScheduler(pipeline.process, InMemoryCheckpointStore(),
                                       BatchConfig(base_delay=0, max_retries=3), wait=lambda s: waits.append(s))
            summary = scheduler.run([AnalysisInput("1", "one story")])

            assert summary.succeeded_items == 1
            assert 7 in waits
            rows = read_rows(store.analyses_file, "analyses")
            assert len(rows) == 1
            assert rows[0]["themes_identified"] == ["t2"]
        finally:
            shutil.rmtree(temp_dir)

    def test_scheduler_with_pipeline(self):
        """The pipeline plugs into the scheduler as its per-item step"""
        temp_dir, store = make_workspace()
        try:
            checkpoints = InMemoryCheckpointStore()
            pipeline = self._pipeline(store, make_llm())
            items = order_items(store.load_transcripts())

            summary = BatchScheduler(pipeline.process, checkpoints, BatchConfig(base_delay=0)).run(items)

            assert summary.succeeded_items == 3
            assert checkpoints.load().processed == {"short", "medium", "long"}
            assert [row["transcript_id"] for row in read_rows(store.analyses_file, "analyses")] == [
                "short", "medium", "long"
            ]
        finally:
            shutil.rmtree(temp_dir)


class TestAnalyzeAllTranscripts:
    """Test the command entry point end to end"""

    def _run(self, store, llm, checkpoint_path, **kwargs):
        with patch('layer_3_batch_analysis.analyze_transcripts.settings') as mock_settings:
            mock_settings.ENABLE_ASSISTED_MATCHING = False
            mock_settings.THEME_BACKFILL_SEED = 1
            mock_settings.ANALYSIS_TYPE = "theme_extraction"
            return analyze_all_transcripts(
                store=store,
                llm_client=llm,
                checkpoint_store=FileCheckpointStore(checkpoint_path),
                config=BatchConfig(base_delay=0, max_retries=2),
                **kwargs
            )

    def test_full_run_and_resume(self):
        """Everything is analysed once; a second run has nothing to do"""
        temp_dir, store = make_workspace()
        try:
            checkpoint_path = os.path.join(temp_dir, "cache", "progress.json")
            llm = make_llm()

            summary = self._run(store, llm, checkpoint_path)
            assert summary.succeeded_items == 3
            assert summary.cancelled == False
            assert llm.generate.call_count == 3

            with open(checkpoint_path, 'r', encoding='utf-8') as f:
                checkpoint = json.load(f)
            assert checkpoint["processed"] == ["long", "medium", "short"]
            assert checkpoint["total_count"] == 3

            summary = self._run(store, llm, checkpoint_path)
            assert llm.generate.call_count == 3
            assert summary.skipped_items == 3
            assert summary.attempted_items == 0
        finally:
            shutil.rmtree(temp_dir)

    def test_stored_results_count_without_checkpoint(self):
        """Results already in the store are not analysed again after a reset"""
        temp_dir, store = make_workspace()
        try:
            checkpoint_path = os.path.join(temp_dir, "progress.json")
            llm = make_llm()
            self._run(store, llm, checkpoint_path)

            summary = self._run(store, llm, checkpoint_path, reset=True)
            assert llm.generate.call_count == 3
            assert summary.skipped_items == 3
        finally:
            shutil.rmtree(temp_dir)

    def test_limit(self):
        """Only the requested number of pending transcripts is attempted, shortest first"""
        temp_dir, store = make_workspace()
        try:
            checkpoint_path = os.path.join(temp_dir, "progress.json")
            llm = make_llm()

            summary = self._run(store, llm, checkpoint_path, limit=1)
            assert summary.succeeded_items == 1
            assert store.get_analyzed_ids() == {"short"}

            summary = self._run(store, llm, checkpoint_path, limit=1)
            assert store.get_analyzed_ids() == {"short", "medium"}
        finally:
            shutil.rmtree(temp_dir)

    def test_failures_are_recorded(self):
        """Transport failures end up in the checkpoint's failed set"""
        temp_dir, store = make_workspace()
        try:
            checkpoint_path = os.path.join(temp_dir, "progress.json")
            llm = make_llm()
            llm.generate.side_effect = RuntimeError("HTTP 503 backend unavailable")

            summary = self._run(store, llm, checkpoint_path)
            assert summary.failed_items == 3
            assert llm.generate.call_count == 6
            assert FileCheckpointStore(checkpoint_path).load().failed == {"short", "medium", "long"}
        finally:
            shutil.rmtree(temp_dir)

    def test_missing_catalog_is_configuration_error(self):
        temp_dir, store = make_workspace(themes=None)
        try:
            with pytest.raises(ConfigurationError):
                self._run(store, make_llm(), os.path.join(temp_dir, "progress.json"))
        finally:
            shutil.rmtree(temp_dir)

    def test_missing_transcripts_is_configuration_error(self):
        temp_dir, store = make_workspace(transcripts=None)
        try:
            with pytest.raises(ConfigurationError):
                self._run(store, make_llm(), os.path.join(temp_dir, "progress.json"))
        finally:
            shutil.rmtree(temp_dir)

    def test_report_analysis(self):
        """Statistics, community insights and diversity come from the stored data"""
        temp_dir, store = make_workspace()
        try:
            self._run(store, make_llm(), os.path.join(temp_dir, "progress.json"))
            with patch('layer_3_batch_analysis.analyze_transcripts.settings') as mock_settings:
                mock_settings.ANALYSIS_TYPE = "theme_extraction"
                report = report_analysis(store)

            stats = report["statistics"]
            assert stats["total_transcripts"] == 3
            assert stats["analyses"] == 3
            assert stats["coverage"] == 100.0
            assert stats["ai_quotes"] == 6
            assert stats["average_confidence"] == 0.85
            assert stats["average_quality"] == 0.9

            insights = report["insights"]
            assert insights["total_stories_analyzed"] == 3
            assert insights["top_emotions"] == [{"emotion": "hope", "frequency": 3, "percentage": 100.0}]
            assert {entry["theme"] for entry in insights["top_themes"]} == {"Resilience", "Migration"}
            assert insights["quality_metrics"]["high_confidence_analyses"] == 3

            diversity = report["diversity"]
            assert diversity["analyses"] == 3
            assert diversity["unused_themes"] == ["Family"]
            assert diversity["mapping_coverage"] == 100.0
        finally:
            shutil.rmtree(temp_dir)

    def test_report_without_analyses(self):
        temp_dir, store = make_workspace()
        try:
            with patch('layer_3_batch_analysis.analyze_transcripts.settings') as mock_settings:
                mock_settings.ANALYSIS_TYPE = "theme_extraction"
                report = report_analysis(store)
            assert report["statistics"]["coverage"] == 0.0
            assert report["statistics"]["ai_quotes"] == 0
            assert report["insights"]["top_themes"] == []
            assert report["insights"]["quality_metrics"]["average_confidence"] == 0.0
        finally:
            shutil.rmtree(temp_dir)

    def test_bad_threshold_pair_is_configuration_error(self):
        temp_dir, store = make_workspace()
        try:
            with patch('layer_2_theme_extraction.theme_resolver.settings') as resolver_settings:
                resolver_settings.THEME_OVERUSE_THRESHOLD = 1
                resolver_settings.THEME_UNDERUSE_THRESHOLD = 5
                resolver_settings.MIN_THEMES_PER_STORY = 2
                resolver_settings.ASSISTED_MATCH_MIN_LENGTH = 5
                with pytest.raises(ConfigurationError):
                    self._run(store, make_llm(), os.path.join(temp_dir, "progress.json"))
        finally:
            shutil.rmtree(temp_dir)


class TestInterruptHandling:
    """Test Ctrl+C wiring"""

    def test_sigint_cancels_scheduler(self):
        scheduler = BatchScheduler(Mock(), InMemoryCheckpointStore(), BatchConfig(base_delay=0))
        previous = signal.getsignal(signal.SIGINT)

        with cancel_on_interrupt(scheduler):
            handler = signal.getsignal(signal.SIGINT)
            handler(signal.SIGINT, None)

        assert scheduler.cancelled == True
        assert signal.getsignal(signal.SIGINT) is previous


class TestMain:
    """Test the command line entry point"""

    def test_run(self):
        with patch('main.analyze_all_transcripts') as mock_analyze:
            mock_analyze.return_value = BatchRunSummary(processed_count=3)
            assert main.main([]) == 0
            mock_analyze.assert_called_once_with(reset=False, limit=0)

    def test_flags(self):
        with patch('main.analyze_all_transcripts') as mock_analyze:
            mock_analyze.return_value = BatchRunSummary(cancelled=True, failed_count=1)
            assert main.main(["--reset", "--limit", "5"]) == 0
            mock_analyze.assert_called_once_with(reset=True, limit=5)

    def test_bad_limit(self):
        with patch('main.analyze_all_transcripts') as mock_analyze:
            assert main.main(["--limit", "many"]) == 1
            mock_analyze.assert_not_called()

    def test_configuration_error(self):
        with patch('main.analyze_all_transcripts', side_effect=ConfigurationError("GEMINI_API_KEY is not set")):
            assert main.main([]) == 1

    def test_report(self):
        with patch('main.report_analysis') as mock_report, \
                patch('main.analyze_all_transcripts') as mock_analyze:
            assert main.main(["--report"]) == 0
            mock_report.assert_called_once_with()
            mock_analyze.assert_not_called()

    def test_batch_module_runs_main(self):
        """Running the batch module directly behaves like main.py"""
        with patch('main.main', return_value=1) as mock_main:
            with pytest.raises(SystemExit) as exc_info:
                runpy.run_module("layer_3_batch_analysis.analyze_transcripts", run_name="__main__")
            assert exc_info.value.code == 1
            mock_main.assert_called_once_with()


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-v"]))
