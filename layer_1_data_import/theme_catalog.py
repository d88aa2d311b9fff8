"""
Read-only view over the theme catalog and its usage statistics
"""
from collections import Counter
from typing import Dict, Iterable, List, Optional

from config.settings import settings
from layer_1_data_import.storage import AnalysisDataStore, ConfigurationError, StorageError
from models.analysis import AnalysisResult
from models.theme import ThemeDefinition
from utils.logger import get_logger

logger = get_logger(__name__)


def validate_catalog(themes: List[ThemeDefinition]):
    """
    Check the catalog invariants: ids are unique, names are unique ignoring case

    Raises:
        ConfigurationError: If the catalog is empty or has duplicates
    """
    if not themes:
        raise ConfigurationError("Theme catalog is empty; nothing to map analyses onto")

    seen_ids = set()
    seen_names = set()
    for theme in themes:
        if theme.id in seen_ids:
            raise ConfigurationError(f"Duplicate theme id in catalog: {theme.id}")
        name_key = theme.name.strip().lower()
        if not name_key:
            raise ConfigurationError(f"Theme {theme.id} has an empty name")
        if name_key in seen_names:
            raise ConfigurationError(f"Duplicate theme name in catalog: {theme.name}")
        seen_ids.add(theme.id)
        seen_names.add(name_key)


def aggregate_theme_usage(results: Iterable[AnalysisResult]) -> Dict[str, int]:
    """
    Count how many analyses each theme id appears in

    Args:
        results: Stored analysis results

    Returns:
        Dictionary mapping theme ids to counts
    """
    usage = Counter()
    for result in results:
        usage.update(result.themes)
    return dict(usage)


def get_overused_theme_names(
    usage: Dict[str, int],
    themes: List[ThemeDefinition],
    limit: int = 5,
) -> List[str]:
    """
    Names of the most used catalog themes, most used first

    Ids that are not in the catalog are ignored.
    """
    names_by_id = {theme.id: theme.name for theme in themes}
    ranked = sorted(
        ((theme_id, count) for theme_id, count in usage.items() if theme_id in names_by_id and count > 0),
        key=lambda x: x[1],
        reverse=True,
    )
    return [names_by_id[theme_id] for theme_id, _ in ranked[:limit]]


class ThemeCatalog:
    """Catalog themes plus live usage counts from stored analyses"""

    def __init__(self, store: Optional[AnalysisDataStore] = None, analysis_type: str = None):
        """
        Initialize catalog accessor

        Args:
            store: Data store (creates new one if not provided)
            analysis_type: Only results of this type count towards usage
        """
        self.store = store or AnalysisDataStore()
        self.analysis_type = analysis_type or settings.ANALYSIS_TYPE
        self._themes: Optional[List[ThemeDefinition]] = None

    def load_themes(self) -> List[ThemeDefinition]:
        """
        Load and validate the catalog (cached; themes don't change within a run)

        Raises:
            ConfigurationError: If the catalog is missing, empty or inconsistent
        """
        if self._themes is None:
            try:
                themes = self.store.load_themes()
            except StorageError as e:
                raise ConfigurationError(f"Could not load theme catalog: {e}") from e
            validate_catalog(themes)
            self._themes = themes
            logger.info(f"Loaded {len(themes)} catalog themes")
        return list(self._themes)

    def get_usage_stats(self) -> Dict[str, int]:
        """
        Theme usage across all stored analyses

        Always read fresh from the store so counts include results saved
        earlier in the same batch.
        """
        return aggregate_theme_usage(self.store.load_analysis_results(self.analysis_type))

    def find_by_name(self, name: str) -> Optional[ThemeDefinition]:
        """Case-insensitive lookup of a theme by name"""
        wanted = (name or "").strip().lower()
        for theme in self.load_themes():
            if theme.name.lower() == wanted:
                return theme
        return None

    def get_theme(self, theme_id: str) -> Optional[ThemeDefinition]:
        """Look up a theme by id"""
        for theme in self.load_themes():
            if theme.id == theme_id:
                return theme
        return None
