"""
JSON-file data store for transcripts, the theme catalog, analyses and quotes

Each collection lives in its own file wrapped in an object, e.g.
{"transcripts": [...]}. A bare JSON list is accepted as well.
"""
import json
import os
import threading
from typing import Dict, List, Optional, Set

from config.settings import settings
from models.analysis import AnalysisInput, AnalysisResult, QuoteRecord
from models.theme import ThemeDefinition
from utils.file_utils import atomic_write_json, read_json
from utils.logger import get_logger

logger = get_logger(__name__)


class StorageError(Exception):
    """A read or write against the data store failed"""


class ConfigurationError(Exception):
    """The pipeline cannot start (missing data, missing catalog, bad settings)"""


class AnalysisDataStore:
    """Read transcripts and themes, write analysis results and quotes"""

    def __init__(
        self,
        transcripts_file: str = None,
        themes_file: str = None,
        analyses_file: str = None,
        quotes_file: str = None,
        approval_threshold: float = None,
    ):
        """
        Initialize storage

        Args:
            transcripts_file: JSON file holding transcripts
            themes_file: JSON file holding the theme catalog
            analyses_file: JSON file analysis results are appended to
            quotes_file: JSON file extracted quotes are appended to
            approval_threshold: Confidence above which results are approved for use
        """
        self.transcripts_file = transcripts_file or settings.TRANSCRIPTS_FILE
        self.themes_file = themes_file or settings.THEMES_FILE
        self.analyses_file = analyses_file or settings.ANALYSES_FILE
        self.quotes_file = quotes_file or settings.QUOTES_FILE
        self.approval_threshold = (
            settings.APPROVAL_CONFIDENCE_THRESHOLD if approval_threshold is None else approval_threshold
        )
        self._write_lock = threading.Lock()

    def _load_rows(self, filename: str, key: str, required: bool = False) -> List[Dict]:
        """Load the list stored under `key` in `filename`"""
        if not os.path.exists(filename):
            if required:
                raise StorageError(f"Data file not found: {filename}")
            return []

        try:
            data = read_json(filename, default=[])
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Error reading {filename}: {e}") from e

        rows = data.get(key, []) if isinstance(data, dict) else data
        if not isinstance(rows, list):
            raise StorageError(f"Expected a list under '{key}' in {filename}")
        return rows

    def _append_rows(self, filename: str, key: str, new_rows: List[Dict]):
        """Append rows to a collection file (read-modify-write under a lock)"""
        if not new_rows:
            return
        with self._write_lock:
            rows = self._load_rows(filename, key)
            rows.extend(new_rows)
            try:
                atomic_write_json(filename, {key: rows, "total": len(rows)})
            except OSError as e:
                raise StorageError(f"Error saving {key} to {filename}: {e}") from e

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #
    def load_transcripts(self) -> List[AnalysisInput]:
        """
        Load every transcript with content

        Returns:
            List of AnalysisInput in file order

        Raises:
            StorageError: If the transcripts file is missing or unreadable
        """
        rows = self._load_rows(self.transcripts_file, "transcripts", required=True)
        transcripts = []
        skipped = 0
        for row in rows:
            if not row.get("id") or not (row.get("transcript_content") or "").strip():
                skipped += 1
                continue
            transcripts.append(AnalysisInput.from_dict(row))
        if skipped:
            logger.info(f"Skipped {skipped} transcripts without id or content")
        return transcripts

    def load_themes(self) -> List[ThemeDefinition]:
        """
        Load active catalog themes in file order

        Raises:
            StorageError: If the themes file is missing or unreadable
        """
        rows = self._load_rows(self.themes_file, "themes", required=True)
        themes = []
        for row in rows:
            if row.get("status", "active") != "active":
                continue
            try:
                themes.append(ThemeDefinition.from_dict(row))
            except KeyError as e:
                logger.warning(f"Skipping theme row without {e}: {row}")
        return themes

    def load_analysis_results(self, analysis_type: Optional[str] = None) -> List[AnalysisResult]:
        """Load stored results, optionally only those of one analysis type"""
        rows = self._load_rows(self.analyses_file, "analyses")
        results = []
        for row in rows:
            if analysis_type and row.get("analysis_type") != analysis_type:
                continue
            try:
                results.append(AnalysisResult.from_dict(row))
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping malformed analysis row ({e})")
        return results

    def get_analyzed_ids(self, analysis_type: Optional[str] = None) -> Set[str]:
        """Ids of transcripts that already have a stored result"""
        return {result.item_id for result in self.load_analysis_results(analysis_type)}

    def count_quotes(self, extracted_by_ai: Optional[bool] = None) -> int:
        """Number of stored quotes, optionally only AI-extracted (or manual) ones"""
        rows = self._load_rows(self.quotes_file, "quotes")
        if extracted_by_ai is None:
            return len(rows)
        return sum(1 for row in rows if bool(row.get("extracted_by_ai", False)) == extracted_by_ai)

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #
    def save_analysis_result(self, result: AnalysisResult):
        """
        Append one analysis result

        Raises:
            StorageError: If the write fails
        """
        self._append_rows(self.analyses_file, "analyses", [result.to_dict(self.approval_threshold)])
        logger.debug(f"Saved analysis for transcript {result.item_id} to {self.analyses_file}")

    def save_quotes(self, quotes: List[QuoteRecord]):
        """
        Append extracted quote records

        Raises:
            StorageError: If the write fails
        """
        self._append_rows(self.quotes_file, "quotes", [quote.to_dict() for quote in quotes])
        if quotes:
            logger.debug(f"Saved {len(quotes)} quotes to {self.quotes_file}")
