"""
Map free-form theme labels from the model onto catalog theme ids

Each label goes through four strategies in order and stops at the first hit:
exact name, keyword/substring, semantic group, then (for longer labels) an
LLM-assisted pick from the catalog. Matches are then filtered so overused
themes don't crowd out the rest, and short results are topped up with
rarely used themes.
"""
import random
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from config.settings import settings
from layer_2_theme_extraction.theme_config import (
    NO_MATCH_SENTINEL,
    get_semantic_words,
    normalize_label,
)
from models.theme import ThemeDefinition
from utils.llm_client import LLMClient, LLMError, RateLimitError
from utils.logger import get_logger

logger = get_logger(__name__)

STRATEGY_EXACT = "exact"
STRATEGY_KEYWORD = "keyword"
STRATEGY_SEMANTIC = "semantic"
STRATEGY_ASSISTED = "assisted"

# Takes (label, catalog) and returns a catalog theme name or None
ThemeAssistant = Callable[[str, Sequence[ThemeDefinition]], Optional[str]]


@dataclass(frozen=True)
class ThemeMatch:
    """A catalog theme found for one label, and the strategy that found it"""
    theme_id: str
    strategy: str


def match_exact(label: str, catalog: Sequence[ThemeDefinition]) -> Optional[str]:
    """Case-insensitive equality between label and theme name"""
    wanted = normalize_label(label)
    for theme in catalog:
        if normalize_label(theme.name) == wanted:
            return theme.id
    return None


def match_keyword(label: str, catalog: Sequence[ThemeDefinition]) -> Optional[str]:
    """
    Substring match in either direction against the name, or the label
    appearing inside the description. First catalog entry wins.
    """
    wanted = normalize_label(label)
    if not wanted:
        return None
    for theme in catalog:
        name = normalize_label(theme.name)
        if name and (name in wanted or wanted in name):
            return theme.id
        if wanted in normalize_label(theme.description):
            return theme.id
    return None


def match_semantic(label: str, catalog: Sequence[ThemeDefinition]) -> Optional[str]:
    """Label contains a word from the semantic group of a catalog theme"""
    wanted = normalize_label(label)
    if not wanted:
        return None
    for theme in catalog:
        if any(word in wanted for word in get_semantic_words(theme.name)):
            return theme.id
    return None


class ThemeMatchAssistant:
    """Ask the LLM to pick the closest catalog theme for an unusual label"""

    SYSTEM_INSTRUCTION = (
        "You are an expert at mapping story themes. Given an AI-generated theme and a list of "
        "available themes, find the best match. Respond with ONLY the theme name, or "
        f'"{NO_MATCH_SENTINEL}" if none fit well.'
    )

    def __init__(self, llm_client: Optional[LLMClient] = None):
        """
        Initialize assistant

        Args:
            llm_client: LLM client instance (creates new one if not provided)
        """
        self.llm_client = llm_client or LLMClient()

    def build_prompt(self, label: str, catalog: Sequence[ThemeDefinition]) -> str:
        themes_list = "\n".join(f"{theme.name}: {theme.description}" for theme in catalog)
        return f'AI Theme: "{label}"\n\nAvailable Themes:\n{themes_list}\n\nBest match theme name:'

    def __call__(self, label: str, catalog: Sequence[ThemeDefinition]) -> Optional[str]:
        """
        Pick a catalog theme name for `label`

        Transient and fatal failures are logged and treated as "no match".
        Rate limits are raised so the scheduler backs off and retries the
        whole transcript; nothing has been stored at this point.

        Raises:
            RateLimitError: The API refused the call because of quotas
        """
        try:
            reply = self.llm_client.generate(
                self.build_prompt(label, catalog),
                system_instruction=self.SYSTEM_INSTRUCTION,
            )
        except RateLimitError:
            raise
        except LLMError as e:
            logger.warning(f"Assisted theme mapping failed for '{label}': {e}")
            return None

        answer = (reply or "").strip().strip('"\'').strip()
        if not answer or answer.upper() == NO_MATCH_SENTINEL:
            return None
        return answer


class ThemeResolver:
    """Resolve model theme labels to catalog ids with a diversity correction"""

    def __init__(
        self,
        overuse_threshold: int = None,
        underuse_threshold: int = None,
        min_result_themes: int = None,
        assistant: Optional[ThemeAssistant] = None,
        rng: Optional[random.Random] = None,
        assisted_min_length: int = None,
    ):
        """
        Initialize resolver

        Args:
            overuse_threshold: Themes used more often are only accepted as a story's first theme
            underuse_threshold: Themes used less often are eligible for backfill
            min_result_themes: Backfill results shorter than this
            assistant: Optional LLM-backed matcher for labels nothing else matches
            rng: Random source for backfill (seed it for repeatable picks)
            assisted_min_length: Labels must be longer than this to use the assistant

        Raises:
            ValueError: underuse_threshold is above overuse_threshold + 1, so
                backfill could add overused themes
        """
        self.overuse_threshold = settings.THEME_OVERUSE_THRESHOLD if overuse_threshold is None else overuse_threshold
        self.underuse_threshold = settings.THEME_UNDERUSE_THRESHOLD if underuse_threshold is None else underuse_threshold
        if self.underuse_threshold > self.overuse_threshold + 1:
            raise ValueError(
                f"underuse threshold ({self.underuse_threshold}) must not exceed "
                f"overuse threshold + 1 ({self.overuse_threshold + 1})"
            )
        self.min_result_themes = settings.MIN_THEMES_PER_STORY if min_result_themes is None else min_result_themes
        self.assistant = assistant
        self.rng = rng or random.Random(settings.THEME_BACKFILL_SEED)
        self.assisted_min_length = (
            settings.ASSISTED_MATCH_MIN_LENGTH if assisted_min_length is None else assisted_min_length
        )

    def match_label(self, label: str, catalog: Sequence[ThemeDefinition]) -> Optional[ThemeMatch]:
        """
        Run the strategy cascade for a single label

        Args:
            label: Free-form theme label from the model
            catalog: Catalog themes in stable order

        Returns:
            ThemeMatch for the first strategy that hits, or None
        """
        if not normalize_label(label):
            return None

        for strategy, matcher in (
            (STRATEGY_EXACT, match_exact),
            (STRATEGY_KEYWORD, match_keyword),
            (STRATEGY_SEMANTIC, match_semantic),
        ):
            theme_id = matcher(label, catalog)
            if theme_id:
                return ThemeMatch(theme_id, strategy)

        if self.assistant is not None and len(label.strip()) > self.assisted_min_length:
            suggested = self.assistant(label, catalog)
            if suggested:
                theme_id = match_exact(suggested, catalog)
                if theme_id:
                    return ThemeMatch(theme_id, STRATEGY_ASSISTED)
                logger.debug(f"Assistant suggested '{suggested}' for '{label}', which is not in the catalog")

        return None

    def resolve(
        self,
        freeform_themes: Sequence[str],
        catalog: Sequence[ThemeDefinition],
        usage: Dict[str, int],
        overuse_threshold: int = None,
        min_result_themes: int = None,
    ) -> List[str]:
        """
        Map labels to catalog ids

        Args:
            freeform_themes: Labels produced by the model
            catalog: Catalog themes in stable order
            usage: Current usage count per theme id
            overuse_threshold: Override the configured overuse threshold
            min_result_themes: Override the configured minimum

        Returns:
            De-duplicated theme ids, first accepted first
        """
        if not freeform_themes:
            return []

        overuse_limit = self.overuse_threshold if overuse_threshold is None else overuse_threshold
        minimum = self.min_result_themes if min_result_themes is None else min_result_themes

        accepted: List[str] = []
        for label in freeform_themes:
            if not isinstance(label, str):
                continue
            match = self.match_label(label, catalog)
            if match is None:
                logger.debug(f"No catalog theme for label '{label}'")
                continue
            if match.theme_id in accepted:
                continue

            usage_count = usage.get(match.theme_id, 0)
            # The first match is always kept so every story gets a theme
            if usage_count <= overuse_limit or not accepted:
                accepted.append(match.theme_id)
                logger.debug(f"'{label}' -> {match.theme_id} via {match.strategy} (used {usage_count}x)")
            else:
                logger.debug(f"'{label}' -> {match.theme_id} skipped, overused ({usage_count} > {overuse_limit})")

        if len(accepted) < minimum:
            accepted.extend(
                self._pick_underused(catalog, usage, accepted, minimum - len(accepted), overuse_limit)
            )

        return accepted

    def _pick_underused(
        self,
        catalog: Sequence[ThemeDefinition],
        usage: Dict[str, int],
        exclude: List[str],
        count: int,
        overuse_limit: int,
    ) -> List[str]:
        """Randomly pick up to `count` rarely used themes not already chosen"""
        # A per-call overuse override can sit below the underuse threshold
        ceiling = min(self.underuse_threshold, overuse_limit + 1)
        pool = [
            theme.id for theme in catalog
            if usage.get(theme.id, 0) < ceiling and theme.id not in exclude
        ]
        if not pool or count <= 0:
            return []
        picked = self.rng.sample(pool, min(count, len(pool)))
        logger.debug(f"Backfilled {len(picked)} underused themes: {picked}")
        return picked
