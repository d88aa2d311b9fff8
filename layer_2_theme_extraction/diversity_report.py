"""
Theme diversity report - how evenly stored analyses use the catalog
"""
from typing import Any, Dict, List, Sequence

from layer_1_data_import.theme_catalog import aggregate_theme_usage
from layer_2_theme_extraction.theme_resolver import ThemeResolver
from models.analysis import AnalysisResult
from models.theme import ThemeDefinition
from utils.logger import get_logger, log_banner

logger = get_logger(__name__)


def build_diversity_report(
    themes: Sequence[ThemeDefinition],
    results: Sequence[AnalysisResult],
    top_n: int = 5,
) -> Dict[str, Any]:
    """
    Summarise theme usage across stored analyses

    Mapping coverage only counts the deterministic strategies (no LLM calls
    are made while building the report).

    Args:
        themes: Catalog themes
        results: Stored analysis results
        top_n: How many of the most used themes to list

    Returns:
        Report dictionary
    """
    usage = aggregate_theme_usage(results)
    names_by_id = {theme.id: theme.name for theme in themes}
    total_analyses = len(results)

    ranked = sorted(
        ((theme_id, count) for theme_id, count in usage.items() if theme_id in names_by_id),
        key=lambda x: x[1],
        reverse=True,
    )
    most_used = [
        {
            "theme_id": theme_id,
            "name": names_by_id[theme_id],
            "count": count,
            "share": round(count / total_analyses * 100, 1) if total_analyses else 0.0,
        }
        for theme_id, count in ranked[:top_n]
    ]

    raw_labels: List[str] = []
    for result in results:
        for label in result.raw_themes:
            if label not in raw_labels:
                raw_labels.append(label)

    matcher = ThemeResolver(assistant=None)
    mappable = [label for label in raw_labels if matcher.match_label(label, themes) is not None]

    return {
        "catalog_size": len(themes),
        "analyses": total_analyses,
        "fallback_analyses": sum(1 for result in results if result.is_fallback),
        "themes_in_use": len(ranked),
        "unused_themes": [theme.name for theme in themes if usage.get(theme.id, 0) == 0],
        "most_used": most_used,
        "unique_raw_labels": len(raw_labels),
        "mappable_raw_labels": len(mappable),
        "mapping_coverage": round(len(mappable) / len(raw_labels) * 100, 1) if raw_labels else 0.0,
    }


def log_diversity_report(report: Dict[str, Any]):
    """Write the diversity report to the log"""
    log_banner(logger, "Theme Diversity Report")
    logger.info(f"Catalog themes: {report['catalog_size']}")
    logger.info(f"Analyses: {report['analyses']} ({report['fallback_analyses']} fallback)")
    logger.info(f"Themes in use: {report['themes_in_use']}/{report['catalog_size']}")

    if report["most_used"]:
        logger.info("Most used themes:")
        for idx, entry in enumerate(report["most_used"], 1):
            logger.info(f"  {idx}. {entry['name']}: {entry['count']} uses ({entry['share']}%)")

    if report["unused_themes"]:
        logger.info(f"Never used: {', '.join(report['unused_themes'])}")

    logger.info(
        f"Model produced {report['unique_raw_labels']} unique labels, "
        f"{report['mappable_raw_labels']} map onto the catalog ({report['mapping_coverage']}%)"
    )
    logger.info("=" * 60)
