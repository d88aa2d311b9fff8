"""
Application settings and configuration

This file contains all the settings for the story analysis pipeline.
Think of it like a control panel where you can adjust how the system works.

Most settings can be changed by creating a .env file in the project root.
If a setting isn't in .env, it uses the default value shown here.
"""
import os
from dotenv import load_dotenv

# Load environment variables from .env file (if it exists)
# This lets you configure the app without changing code
load_dotenv()


def _optional_int(name: str):
    """Read an integer setting that may be left unset"""
    value = os.getenv(name, "").strip()
    return int(value) if value else None


class Settings:
    """
    Application configuration settings

    This class holds all the configuration for the entire application.
    You can change these values by setting environment variables in a .env file.
    """

    # ============================================================
    # Storage Settings
    # ============================================================
    # The durable store is a set of JSON files inside DATA_DIR:
    # transcripts and themes are read, analyses and quotes are written
    DATA_DIR = os.getenv("DATA_DIR", "data")  # Main data folder
    TRANSCRIPTS_FILE = os.getenv("TRANSCRIPTS_FILE", os.path.join(DATA_DIR, "transcripts.json"))
    THEMES_FILE = os.getenv("THEMES_FILE", os.path.join(DATA_DIR, "themes.json"))
    ANALYSES_FILE = os.getenv("ANALYSES_FILE", os.path.join(DATA_DIR, "story_analysis.json"))
    QUOTES_FILE = os.getenv("QUOTES_FILE", os.path.join(DATA_DIR, "quotes.json"))
    CACHE_DIR = os.path.join(DATA_DIR, "cache")  # Checkpoints and other run state
    CHECKPOINT_FILE = os.getenv("CHECKPOINT_FILE", os.path.join(CACHE_DIR, "analysis_progress.json"))

    # ============================================================
    # Gemini API Settings
    # ============================================================
    # Google's Gemini AI is used to:
    # - Analyse each story (themes, emotions, quotes, insights)
    # - Map unusual theme labels onto the catalog (assisted matching)
    GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")  # Your Google API key (required!)
    GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")  # Which AI model to use
    LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.4"))
    LLM_MAX_OUTPUT_TOKENS = int(os.getenv("LLM_MAX_OUTPUT_TOKENS", "1000"))  # Kept low to stay under rate limits
    LLM_REQUEST_TIMEOUT = float(os.getenv("LLM_REQUEST_TIMEOUT", "60.0"))  # Seconds per call

    # ============================================================
    # Rate Limiting & Retries
    # ============================================================
    # The API only accepts a limited number of requests per minute.
    # We wait RATE_LIMIT_BASE_DELAY seconds between stories and back off
    # exponentially (base * multiplier^(attempt-1)) when a call fails.
    RATE_LIMIT_BASE_DELAY = float(os.getenv("RATE_LIMIT_BASE_DELAY", "12.0"))
    RATE_LIMIT_BACKOFF_MULTIPLIER = float(os.getenv("RATE_LIMIT_BACKOFF_MULTIPLIER", "2.0"))
    LLM_RETRY_ATTEMPTS = int(os.getenv("LLM_RETRY_ATTEMPTS", "5"))  # Attempts per story before giving up

    # ============================================================
    # Theme Diversity Settings
    # ============================================================
    # A theme used more than THEME_OVERUSE_THRESHOLD times is only accepted
    # as the first theme of a story. Stories with fewer than
    # MIN_THEMES_PER_STORY themes are topped up with themes used fewer than
    # THEME_UNDERUSE_THRESHOLD times.
    THEME_OVERUSE_THRESHOLD = int(os.getenv("THEME_OVERUSE_THRESHOLD", "10"))
    THEME_UNDERUSE_THRESHOLD = int(os.getenv("THEME_UNDERUSE_THRESHOLD", "3"))
    MIN_THEMES_PER_STORY = int(os.getenv("MIN_THEMES_PER_STORY", "2"))
    OVERUSED_THEMES_IN_PROMPT = int(os.getenv("OVERUSED_THEMES_IN_PROMPT", "5"))  # Named in the prompt as "avoid"
    ASSISTED_MATCH_MIN_LENGTH = int(os.getenv("ASSISTED_MATCH_MIN_LENGTH", "5"))
    ENABLE_ASSISTED_MATCHING = os.getenv("ENABLE_ASSISTED_MATCHING", "true").lower() == "true"
    THEME_BACKFILL_SEED = _optional_int("THEME_BACKFILL_SEED")  # Unset = different picks every run

    # ============================================================
    # Analysis Settings
    # ============================================================
    TRANSCRIPT_CHAR_BUDGET = int(os.getenv("TRANSCRIPT_CHAR_BUDGET", "3500"))  # Characters sent per story
    ANALYSIS_TYPE = os.getenv("ANALYSIS_TYPE", "theme_extraction")
    ANALYSIS_VERSION = os.getenv("ANALYSIS_VERSION", "2.0")
    APPROVAL_CONFIDENCE_THRESHOLD = float(os.getenv("APPROVAL_CONFIDENCE_THRESHOLD", "0.7"))
    MIN_QUOTE_LENGTH = int(os.getenv("MIN_QUOTE_LENGTH", "10"))  # Shorter quotes are not saved

    # ============================================================
    # Logging Settings
    # ============================================================
    # How much detail to log
    # Options: DEBUG (very detailed), INFO (normal), WARNING (only problems), ERROR (only errors)
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE = os.getenv("LOG_FILE", "logs/analysis.log")  # Where to save log files

    @staticmethod
    def ensure_directories():
        """
        Create necessary directories if they don't exist

        This makes sure all the folders we need exist.
        This prevents errors when trying to save files.
        """
        os.makedirs(Settings.DATA_DIR, exist_ok=True)
        os.makedirs(Settings.CACHE_DIR, exist_ok=True)
        checkpoint_dir = os.path.dirname(Settings.CHECKPOINT_FILE)
        if checkpoint_dir:
            os.makedirs(checkpoint_dir, exist_ok=True)
        # Create logs folder (extract folder name from log file path)
        os.makedirs(os.path.dirname(Settings.LOG_FILE) if os.path.dirname(Settings.LOG_FILE) else "logs", exist_ok=True)


# Global settings instance
settings = Settings()
