"""
Word List Endpoints
===================
The premium account's personal word list (``/v2/words``).
"""

from typing import Any, Dict, List

from config_logging import ConfigurationError, TransportError
from ltcheck.languagetool.client import LanguageToolClient

WORDS_LIMIT = 1000


class WordListClient(LanguageToolClient):
    """List, add and delete words of the remote dictionary."""

    def _credentials(self) -> Dict[str, str]:
        server = self.config.server
        if not server.has_credentials:
            raise ConfigurationError("Syncing words is only supported for premium users",
                                     setting='server.api_key')
        return {'username': server.username, 'apiKey': server.api_key}

    def list_words(self) -> List[str]:
        url = f"{self.server_url}/v2/words"
        params = dict(self._credentials(), limit=str(WORDS_LIMIT))
        payload = self._request('GET', url, params=params)
        words = payload.get('words') if isinstance(payload, dict) else None
        if not isinstance(words, list):
            raise TransportError("Requesting words failed: malformed response", url=url)
        return [w for w in words if isinstance(w, str)]

    def add_word(self, word: str) -> bool:
        return self._change('add', word, 'added')

    def delete_word(self, word: str) -> bool:
        return self._change('delete', word, 'deleted')

    def _change(self, action: str, word: str, field: str) -> bool:
        url = f"{self.server_url}/v2/words/{action}"
        data = dict(self._credentials(), word=word)
        payload: Any = self._request('POST', url, data=data)
        result = payload.get(field) if isinstance(payload, dict) else None
        if not isinstance(result, bool):
            raise TransportError(f"Changing words failed: malformed response to {action}", url=url)
        return result
