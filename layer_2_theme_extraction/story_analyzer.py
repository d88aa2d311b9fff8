"""
LLM-based story analyzer that extracts themes, emotions, quotes and insights
from one transcript
"""
import json
import re
from typing import Any, Dict, List, Optional, Sequence

from config.settings import settings
from layer_1_data_import.theme_catalog import get_overused_theme_names
from layer_2_theme_extraction.theme_config import (
    FALLBACK_EMOTIONS,
    FALLBACK_INSIGHTS,
    FALLBACK_SCORE,
    FALLBACK_SENSITIVITY_FLAG,
    FALLBACK_THEMES,
    FALLBACK_TOPICS,
    TRUNCATION_MARKER,
)
from models.analysis import AnalysisResult
from models.theme import ThemeDefinition
from utils.llm_client import LLMClient, TransientLLMError
from utils.logger import get_logger

logger = get_logger(__name__)

SYSTEM_INSTRUCTION = (
    "You are an expert in finding DIVERSE and SPECIFIC themes in personal narratives. "
    "Always respond with valid JSON only."
)

LIST_FIELDS = ("themes", "emotions", "topics", "quotes", "insights", "cultural_elements", "sensitivity_flags")


class AnalysisParseError(ValueError):
    """The model reply is not a usable analysis JSON object"""


def create_fallback_analysis(text: str, item_id: str = "") -> AnalysisResult:
    """
    Placeholder analysis used when the model reply can't be parsed

    The result only depends on the text's word count, so the same input
    always gives the same fallback.

    Args:
        text: Transcript text
        item_id: Transcript id

    Returns:
        Low-confidence AnalysisResult flagged for manual review
    """
    word_count = len((text or "").split())
    return AnalysisResult(
        item_id=item_id,
        themes=list(FALLBACK_THEMES),
        emotions=list(FALLBACK_EMOTIONS),
        topics=list(FALLBACK_TOPICS),
        quotes=[],
        summary=f"Personal story with {word_count} words requiring manual review and analysis.",
        insights=list(FALLBACK_INSIGHTS),
        cultural_elements=[],
        sensitivity_flags=[FALLBACK_SENSITIVITY_FLAG],
        confidence_score=FALLBACK_SCORE,
        quality_or_diversity_score=FALLBACK_SCORE,
        is_fallback=True,
    )


def _string_list(value: Any) -> List[str]:
    """Coerce a JSON value into a list of non-empty strings"""
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        raise AnalysisParseError(f"Expected a list, got {type(value).__name__}")
    return [str(entry).strip() for entry in value if entry is not None and str(entry).strip()]


class StoryAnalyzer:
    """Analyse a transcript with the LLM against the theme catalog"""

    def __init__(
        self,
        llm_client: Optional[LLMClient] = None,
        char_budget: int = None,
        overused_in_prompt: int = None,
    ):
        """
        Initialize analyzer

        Args:
            llm_client: LLM client instance (creates new one if not provided)
            char_budget: Maximum transcript characters sent to the model
            overused_in_prompt: How many overused themes to name in the prompt
        """
        self.llm_client = llm_client or LLMClient()
        self.char_budget = char_budget or settings.TRANSCRIPT_CHAR_BUDGET
        self.overused_in_prompt = (
            settings.OVERUSED_THEMES_IN_PROMPT if overused_in_prompt is None else overused_in_prompt
        )

    def analyze(
        self,
        text: str,
        catalog: Sequence[ThemeDefinition],
        usage: Dict[str, int],
        item_id: str = "",
    ) -> AnalysisResult:
        """
        Analyse one transcript

        Args:
            text: Transcript text
            catalog: Catalog themes to show the model
            usage: Theme usage counts (overused themes are named in the prompt)
            item_id: Transcript id

        Returns:
            AnalysisResult whose `themes` are still the model's free-form labels

        Raises:
            LLMError: Transport failures (rate limit, timeout, HTTP errors)
        """
        prompt = self.build_prompt(text, catalog, usage)
        raw_response = self.llm_client.generate(prompt, system_instruction=SYSTEM_INSTRUCTION)

        if not raw_response or not raw_response.strip():
            raise TransientLLMError("Analysis returned an empty response")

        return self.parse_response(raw_response, text, item_id)

    def build_prompt(
        self,
        text: str,
        catalog: Sequence[ThemeDefinition],
        usage: Dict[str, int],
    ) -> str:
        """
        Build the analysis prompt

        Args:
            text: Transcript text (cut at the character budget)
            catalog: Catalog themes
            usage: Theme usage counts

        Returns:
            Prompt string
        """
        theme_block = "\n".join(theme.prompt_line() for theme in catalog)
        overused = get_overused_theme_names(usage, list(catalog), self.overused_in_prompt)
        overused_block = ", ".join(overused) if overused else "none yet"

        excerpt = text[:self.char_budget]
        if len(text) > self.char_budget:
            excerpt = f"{excerpt} {TRUNCATION_MARKER}"

        return f"""As an expert in narrative analysis focusing on DIVERSITY and SPECIFICITY, analyze this personal story transcript.

CRITICAL INSTRUCTIONS FOR DIVERSE THEME IDENTIFICATION:
1. AVOID overused themes: {overused_block} (unless absolutely central)
2. PRIORITIZE specific, unique themes that capture THIS story's distinctiveness
3. Look beyond generic themes to find cultural, situational and personal themes
4. Find themes from DIFFERENT categories: emotional, social, cultural, life events, skills

AVAILABLE THEMES (prioritize underused ones):
{theme_block}

TRANSCRIPT TO ANALYZE:
{excerpt}

If the transcript ends with {TRUNCATION_MARKER}, only analyse what is shown and do not invent how the story ends.

Respond with ONLY valid JSON in this exact format:
{{
  "themes": ["4-6 specific diverse themes avoiding overused ones"],
  "emotions": ["3-6 main emotions expressed throughout the story"],
  "topics": ["4-8 key topics, events, or subjects discussed"],
  "quotes": ["2-4 most meaningful or powerful direct quotes from the text"],
  "summary": "2-3 sentence summary capturing the essence and journey",
  "insights": ["3-5 key insights, wisdom, or lessons that emerge"],
  "cultural_elements": ["any cultural references, traditions, or considerations mentioned"],
  "sensitivity_flags": ["any content requiring careful handling - trauma, violence, etc."],
  "confidence_score": 0.85,
  "quality_score": 0.90
}}

Be especially mindful of:
- Trauma-informed language and approach
- Cultural sensitivity and respect
- Focus on strengths and resilience rather than deficits
- Preserving the storyteller's voice and dignity"""

    def parse_response(self, raw_response: str, text: str, item_id: str = "") -> AnalysisResult:
        """
        Parse the model reply, falling back to a placeholder analysis

        Args:
            raw_response: Raw LLM response text
            text: Transcript text (used by the fallback)
            item_id: Transcript id

        Returns:
            Parsed AnalysisResult, or the deterministic fallback
        """
        try:
            data = self._load_json_object(raw_response)
            return self._build_result(data, item_id)
        except AnalysisParseError as e:
            logger.warning(f"JSON parse error for transcript {item_id or '?'} ({e}), creating fallback analysis")
            return create_fallback_analysis(text, item_id)

    def _load_json_object(self, raw_response: str) -> Dict[str, Any]:
        """Best-effort JSON parsing that ignores Markdown fences"""
        cleaned = raw_response.strip()
        if "```" in cleaned:
            json_match = re.search(r'```(?:json)?\s*(\{.*\})\s*```', cleaned, re.DOTALL)
            if json_match:
                cleaned = json_match.group(1)

        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError as e:
            raise AnalysisParseError(f"invalid JSON: {e.msg}") from e

        if not isinstance(data, dict):
            raise AnalysisParseError(f"expected a JSON object, got {type(data).__name__}")
        return data

    def _build_result(self, data: Dict[str, Any], item_id: str) -> AnalysisResult:
        """Turn the parsed JSON object into an AnalysisResult"""
        fields = {name: _string_list(data.get(name)) for name in LIST_FIELDS}

        summary = data.get("summary") or ""
        if not isinstance(summary, str):
            raise AnalysisParseError("summary must be a string")

        quality = data.get("quality_score", data.get("diversity_score", 0.0))
        return AnalysisResult(
            item_id=item_id,
            summary=summary.strip(),
            confidence_score=data.get("confidence_score", 0.0),
            quality_or_diversity_score=quality,
            raw_themes=list(fields["themes"]),
            **fields,
        )
