"""
Layer 1: Data access
- JSON data store (transcripts, theme catalog, analyses, quotes)
- Theme catalog accessor and usage statistics
- PII redaction for extracted quotes
"""
from .storage import AnalysisDataStore, StorageError, ConfigurationError
from .theme_catalog import ThemeCatalog, aggregate_theme_usage, get_overused_theme_names, validate_catalog
from .validator import PIIDetector, QuoteValidator

__all__ = [
    'AnalysisDataStore',
    'StorageError',
    'ConfigurationError',
    'ThemeCatalog',
    'aggregate_theme_usage',
    'get_overused_theme_names',
    'validate_catalog',
    'PIIDetector',
    'QuoteValidator',
]
