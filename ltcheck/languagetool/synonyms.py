"""
Synonym Services
================
Ranked replacement candidates for a single word in its sentence.

- English: LanguageTool's phrasal paraphraser (JSON POST)
- German: synonyms.languagetool.org (GET with the surrounding words)
"""

import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import requests

from config_logging import SynonymError
from ltcheck.editor import TextRange

DEFAULT_TIMEOUT = 10.0


def _words_before(text: str) -> List[str]:
    return re.split(r'\s+', text)


class SynonymService(ABC):
    """A synonym lookup for one language."""

    url: str = ""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT):
        self.timeout = timeout

    @abstractmethod
    def query(self, sentence: str, selection: TextRange) -> List[str]:
        """Synonyms for ``sentence[selection.start:selection.end]``."""

    def _json(self, response: requests.Response) -> Any:
        try:
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as e:
            raise SynonymError(f"Requesting synonyms failed: {e}", url=self.url) from e


class EnglishSynonyms(SynonymService):
    url = "https://qb-grammar-en.languagetool.org/phrasal-paraphraser/subscribe"

    def build_request(self, sentence: str, selection: TextRange) -> Dict[str, Any]:
        index = len(_words_before(sentence[:selection.start]))
        word = sentence[selection.start:selection.end]
        return {
            'message': {
                'indices': [index],
                'mode': 0,
                'phrases': [word],
                'text': sentence,
            },
            'meta': {
                'clientStatus': 'string',
                'product': 'string',
                'traceID': 'string',
                'userID': 'string',
            },
            'response_queue': 'string',
        }

    def query(self, sentence: str, selection: TextRange) -> List[str]:
        try:
            response = requests.post(self.url, json=self.build_request(sentence, selection),
                                     timeout=self.timeout)
        except requests.RequestException as e:
            raise SynonymError(f"Requesting synonyms failed: {e}", url=self.url) from e

        payload = self._json(response)
        try:
            suggestions = payload['data']['suggestions']
            return [s for group in suggestions for s in group if isinstance(s, str)]
        except (KeyError, TypeError) as e:
            raise SynonymError(f"Unexpected synonym response: {e}", url=self.url) from e


class GermanSynonyms(SynonymService):
    url = "https://synonyms.languagetool.org/synonyms/de"

    def query(self, sentence: str, selection: TextRange) -> List[str]:
        word = sentence[selection.start:selection.end].strip()
        params = {
            'before': '+'.join(_words_before(sentence[:selection.start])),
            'after': '+'.join(_words_before(sentence[selection.end:])),
        }
        try:
            response = requests.get(f"{self.url}/{word}", params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise SynonymError(f"Requesting synonyms failed: {e}", url=self.url) from e

        payload = self._json(response)
        try:
            return [t['term'] for synset in payload['synsets'] for t in synset['terms']
                    if isinstance(t.get('term'), str)]
        except (KeyError, TypeError, AttributeError) as e:
            raise SynonymError(f"Unexpected synonym response: {e}", url=self.url) from e


SYNONYMS: Dict[str, SynonymService] = {
    'en': EnglishSynonyms(),
    'de': GermanSynonyms(),
}


def get_synonym_service(language: Optional[str]) -> Optional[SynonymService]:
    if not language:
        return None
    return SYNONYMS.get(language)


def sentence_around(line_text: str, line_start: int, selection: TextRange):
    """
    The sentence of ``line_text`` holding ``selection``.

    Returns ``(sentence, relative_selection)``; the sentence starts after the
    last period before the selection and ends at the next period.
    """
    before = line_text[:selection.start - line_start]
    prefix = before.rfind('.') + 1
    raw = line_text[prefix:]
    sentence = raw.lstrip()
    offset = line_start + prefix + len(raw) - len(sentence)
    relative = TextRange(selection.start - offset, selection.end - offset)

    sentence = sentence.rstrip()
    suffix = sentence.find('.', relative.end)
    if suffix != -1:
        sentence = sentence[:suffix + 1]
    return sentence, relative
