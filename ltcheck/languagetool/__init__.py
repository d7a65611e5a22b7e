"""
LanguageTool remote services: the check API, the premium word list and the
synonym lookups.
"""

from .client import CheckerMatch, Language, LanguageToolClient, parse_match
from .words import WordListClient
from .synonyms import (
    SYNONYMS,
    EnglishSynonyms,
    GermanSynonyms,
    SynonymService,
    get_synonym_service,
    sentence_around,
)

__all__ = [
    'CheckerMatch',
    'Language',
    'LanguageToolClient',
    'parse_match',
    'WordListClient',
    'SYNONYMS',
    'EnglishSynonyms',
    'GermanSynonyms',
    'SynonymService',
    'get_synonym_service',
    'sentence_around',
]
