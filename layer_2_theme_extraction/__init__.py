"""
Layer 2: Theme extraction (LLM story analysis + mapping onto the theme catalog).
"""
from .theme_config import (
    SEMANTIC_GROUPS,
    NO_MATCH_SENTINEL,
    normalize_label,
    get_semantic_words,
)
from .theme_resolver import (
    ThemeResolver,
    ThemeMatch,
    ThemeMatchAssistant,
)
from .story_analyzer import StoryAnalyzer, create_fallback_analysis
from .diversity_report import build_diversity_report, log_diversity_report
from .community_insights import (
    build_community_insights,
    build_analysis_statistics,
    log_community_insights,
    log_analysis_statistics,
)

__all__ = [
    'SEMANTIC_GROUPS',
    'NO_MATCH_SENTINEL',
    'normalize_label',
    'get_semantic_words',
    'ThemeResolver',
    'ThemeMatch',
    'ThemeMatchAssistant',
    'StoryAnalyzer',
    'create_fallback_analysis',
    'build_diversity_report',
    'log_diversity_report',
    'build_community_insights',
    'build_analysis_statistics',
    'log_community_insights',
    'log_analysis_statistics',
]
