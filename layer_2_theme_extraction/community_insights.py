"""
Community-level insights and pipeline statistics across stored analyses
"""
from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Sequence

from models.analysis import AnalysisResult
from models.theme import ThemeDefinition
from utils.logger import get_logger, log_banner

logger = get_logger(__name__)

HIGH_CONFIDENCE_THRESHOLD = 0.8


def _percent(part: float, whole: float) -> float:
    return round(part / whole * 100, 1) if whole else 0.0


def _ranked(counter: Counter, total: int, limit: int, key: str) -> List[Dict[str, Any]]:
    """Most common entries with frequency and share of analyses"""
    return [
        {key: value, "frequency": count, "percentage": _percent(count, total)}
        for value, count in counter.most_common(limit)
    ]


def build_community_insights(
    results: Sequence[AnalysisResult],
    themes: Sequence[ThemeDefinition] = (),
    top_themes: int = 10,
    top_emotions: int = 8,
    top_topics: int = 12,
    high_confidence: float = HIGH_CONFIDENCE_THRESHOLD,
) -> Dict[str, Any]:
    """
    Aggregate themes, emotions and topics over every stored analysis

    Args:
        results: Stored analysis results
        themes: Catalog themes, used to show names instead of ids
        top_themes: How many themes to list
        top_emotions: How many emotions to list
        top_topics: How many topics to list
        high_confidence: Confidence above which an analysis counts as high confidence

    Returns:
        Insights dictionary
    """
    names_by_id = {theme.id: theme.name for theme in themes}
    theme_counts: Counter = Counter()
    emotion_counts: Counter = Counter()
    topic_counts: Counter = Counter()

    for result in results:
        theme_counts.update(names_by_id.get(theme_id, theme_id) for theme_id in result.themes)
        emotion_counts.update(result.emotions)
        topic_counts.update(result.topics)

    total = len(results)
    average_confidence = sum(result.confidence_score for result in results) / total if total else 0.0

    return {
        "total_stories_analyzed": total,
        "analysis_date": datetime.now().isoformat(),
        "top_themes": _ranked(theme_counts, total, top_themes, "theme"),
        "top_emotions": _ranked(emotion_counts, total, top_emotions, "emotion"),
        "top_topics": _ranked(topic_counts, total, top_topics, "topic"),
        "quality_metrics": {
            "average_confidence": round(average_confidence, 3),
            "high_confidence_analyses": sum(
                1 for result in results if result.confidence_score > high_confidence
            ),
        },
    }


def build_analysis_statistics(
    transcript_count: int,
    results: Sequence[AnalysisResult],
    ai_quote_count: int,
) -> Dict[str, Any]:
    """
    Coverage and quality of the analysis run so far

    Coverage counts transcripts with at least one stored analysis, so a
    transcript analysed twice doesn't push it over 100%.
    """
    total = len(results)
    analysed_ids = {result.item_id for result in results}
    return {
        "total_transcripts": transcript_count,
        "analyses": total,
        "analysed_transcripts": len(analysed_ids),
        "ai_quotes": ai_quote_count,
        "coverage": _percent(len(analysed_ids), transcript_count),
        "average_confidence": round(sum(r.confidence_score for r in results) / total, 3) if total else 0.0,
        "average_quality": round(sum(r.quality_or_diversity_score for r in results) / total, 3) if total else 0.0,
    }


def log_community_insights(insights: Dict[str, Any]):
    """Write the community insights to the log"""
    log_banner(logger, "Community Insights")
    total = insights["total_stories_analyzed"]
    if not total:
        logger.warning("No analyses found for insight generation")
        return

    logger.info(f"Generated insights from {total} analyses")
    for title, key, field in (
        ("Top themes", "top_themes", "theme"),
        ("Top emotions", "top_emotions", "emotion"),
        ("Top topics", "top_topics", "topic"),
    ):
        if insights[key]:
            logger.info(f"{title}:")
            for idx, entry in enumerate(insights[key], 1):
                logger.info(f"  {idx}. {entry[field]}: {entry['frequency']} stories ({entry['percentage']}%)")

    metrics = insights["quality_metrics"]
    logger.info(f"Average confidence: {round(metrics['average_confidence'] * 100)}%")
    logger.info(f"High confidence analyses: {metrics['high_confidence_analyses']}/{total}")


def log_analysis_statistics(stats: Dict[str, Any]):
    """Write the analysis statistics to the log"""
    log_banner(logger, "Analysis Statistics")
    logger.info(f"Total transcripts: {stats['total_transcripts']}")
    logger.info(f"AI analyses completed: {stats['analyses']}")
    logger.info(f"Quotes extracted: {stats['ai_quotes']}")
    logger.info(f"Analysis coverage: {stats['coverage']}%")
    if stats["analyses"]:
        logger.info(f"Average confidence: {round(stats['average_confidence'] * 100)}%")
        logger.info(f"Average quality: {round(stats['average_quality'] * 100)}%")
