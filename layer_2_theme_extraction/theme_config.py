"""
Theme matching configuration
Semantic groups, sentinel values and the fixed fallback analysis
"""
import re

# Related words for common catalog themes. Keys are normalized theme names
# (lower case, spaces replaced by underscores); a label containing any of the
# listed words is mapped to the catalog theme with that name.
SEMANTIC_GROUPS = {
    "resilience": ["strength", "overcoming", "perseverance", "survival", "endurance", "recovery", "bounce back"],
    "community": ["support", "togetherness", "collective", "neighborhood", "social", "connection", "belonging"],
    "identity": ["self", "who i am", "personal", "individual", "character", "personality", "authenticity"],
    "healing": ["recovery", "wellness", "therapy", "treatment", "getting better", "health", "restoration"],
    "wisdom": ["learning", "insight", "knowledge", "understanding", "life lessons", "experience"],
    "family": ["relatives", "parents", "children", "siblings", "kinship", "bloodline", "household"],
    "love": ["affection", "care", "romance", "partnership", "devotion", "attachment", "relationships"],
    "hope": ["optimism", "faith", "future", "possibility", "dreams", "aspirations", "belief"],
    "loss": ["grief", "death", "passing", "bereavement", "mourning", "missing", "absence"],
    "change": ["transformation", "transition", "evolution", "growth", "development", "adaptation"],
    "courage": ["bravery", "fearlessness", "boldness", "valor", "heroism", "standing up"],
    "creativity": ["art", "expression", "imagination", "innovation", "artistic", "creative"],
    "justice": ["fairness", "equality", "rights", "advocacy", "activism", "social justice"],
    "environment": ["nature", "climate", "sustainability", "ecology", "conservation", "planet"],
    "violence": ["abuse", "assault", "harm", "aggression", "conflict", "trauma"],
    "poverty": ["financial hardship", "economic struggle", "money problems", "lack of resources"],
    "migration": ["moving", "relocation", "immigration", "displacement", "journey", "new country"],
    "gender": ["masculine", "feminine", "gender identity", "expression", "lgbtq", "sexuality"],
    "mental_health": ["depression", "anxiety", "mental illness", "psychological", "emotional wellbeing"],
    "innovation": ["technology", "invention", "breakthrough", "advancement", "progress"],
}

# Reply the assisted matcher asks for when no catalog theme fits
NO_MATCH_SENTINEL = "NO_MATCH"

# Marker appended to transcripts cut at the character budget
TRUNCATION_MARKER = "[CONTENT TRUNCATED FOR ANALYSIS]"

# Fixed values used when the model reply can't be parsed
FALLBACK_THEMES = ["Personal Story", "Life Experience"]
FALLBACK_EMOTIONS = ["Mixed emotions"]
FALLBACK_TOPICS = ["Personal narrative"]
FALLBACK_INSIGHTS = ["Story contains valuable personal experience"]
FALLBACK_SENSITIVITY_FLAG = "Requires manual review"
FALLBACK_SCORE = 0.3

_WHITESPACE = re.compile(r"\s+")


def normalize_label(label: str) -> str:
    """Lower-case and collapse whitespace in a theme label"""
    return _WHITESPACE.sub(" ", (label or "").strip().lower())


def semantic_group_key(theme_name: str) -> str:
    """Key of SEMANTIC_GROUPS a catalog theme name maps to"""
    return _WHITESPACE.sub("_", (theme_name or "").strip().lower())


def get_semantic_words(theme_name: str) -> list[str]:
    """
    Related words for a catalog theme

    Args:
        theme_name: Catalog theme name

    Returns:
        Related words, or an empty list if the theme has no semantic group
    """
    return SEMANTIC_GROUPS.get(semantic_group_key(theme_name), [])
