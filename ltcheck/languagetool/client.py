"""
LanguageTool Client for ltcheck
===============================
HTTP client for the LanguageTool check API (https://languagetool.org/http-api/).

Features:
- Sends annotated text (``data`` parameter) so markup is never checked
- Applies the configured language, variants, rules and categories
- Refuses requests larger than the endpoint allows
- Maps the response into ``CheckerMatch`` objects in stream offsets

Every network, status or response-format failure becomes a ``TransportError``.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from config_logging import CheckRequestError, TransportError, get_logger
from ltcheck.annotated import AnnotatedText
from ltcheck.config import LTConfig, get_config

__version__ = "1.0.0"

logger = get_logger('ltcheck.languagetool')

USER_AGENT = f"ltcheck/{__version__}"


@dataclass
class CheckerMatch:
    """An issue reported by LanguageTool, in offsets of the checked stream."""
    offset: int
    length: int
    title: str = ""
    message: str = ""
    replacements: List[str] = field(default_factory=list)
    category_id: str = ""
    rule_id: str = ""

    @property
    def end(self) -> int:
        return self.offset + self.length

    def to_dict(self) -> Dict[str, Any]:
        return {
            'offset': self.offset,
            'length': self.length,
            'title': self.title,
            'message': self.message,
            'replacements': list(self.replacements),
            'category_id': self.category_id,
            'rule_id': self.rule_id,
        }


@dataclass
class Language:
    """A language supported by the server."""
    name: str
    code: str
    long_code: str

    def to_dict(self) -> Dict[str, str]:
        return {'name': self.name, 'code': self.code, 'long_code': self.long_code}


def parse_match(data: Dict[str, Any]) -> CheckerMatch:
    """One entry of the response's ``matches`` array."""
    rule = data.get('rule') or {}
    return CheckerMatch(
        offset=int(data['offset']),
        length=int(data['length']),
        title=str(data.get('shortMessage') or ''),
        message=str(data.get('message') or ''),
        replacements=[str(r['value']) for r in data.get('replacements') or [] if 'value' in r],
        category_id=str((rule.get('category') or {}).get('id') or ''),
        rule_id=str(rule.get('id') or ''),
    )


class LanguageToolClient:
    """
    Client for one LanguageTool server.

    Args:
        config: settings to use (defaults to the global configuration)
    """

    def __init__(self, config: Optional[LTConfig] = None):
        self.config = config or get_config()

    @property
    def server_url(self) -> str:
        return self.config.server.server_url

    def build_params(self, data: str, language: Optional[str] = None) -> Dict[str, str]:
        """Form parameters of a check request."""
        check = self.config.check
        server = self.config.server
        lang = language or check.static_language or 'auto'

        params = {
            'data': data,
            'language': lang,
            'enabledOnly': 'false',
            'level': 'picky' if check.picky_mode else 'default',
        }
        if check.mother_tongue:
            params['motherTongue'] = check.mother_tongue
        if check.enabled_categories:
            params['enabledCategories'] = check.enabled_categories
        if check.disabled_categories:
            params['disabledCategories'] = check.disabled_categories
        if check.enabled_rules:
            params['enabledRules'] = check.enabled_rules
        if check.disabled_rules:
            params['disabledRules'] = check.disabled_rules
        if lang == 'auto':
            params['preferredVariants'] = ','.join(check.language_variety.values())
        if server.has_credentials:
            params['username'] = server.username
            params['apiKey'] = server.api_key
        return params

    def check(self, annotated: AnnotatedText, language: Optional[str] = None) -> List[CheckerMatch]:
        """
        Check annotated text.

        Args:
            annotated: the region to check
            language: language code, overriding the configured one

        Returns:
            Matches in offsets of ``annotated.interpreted()``
        """
        data = annotated.stringify()
        endpoint = self.config.server.endpoint
        url = f"{self.server_url}/v2/check"
        if len(data) > endpoint.max_size:
            raise CheckRequestError(
                f"Text too long for LanguageTool: {len(data)} characters, max is "
                f"{endpoint.max_size}. Select a portion of the document and try again.",
                url=url, size=len(data), max_size=endpoint.max_size)

        with logger.log_operation('languagetool_check', characters=len(data)):
            payload = self._request('POST', url, data=self.build_params(data, language))

            matches = payload.get('matches') if isinstance(payload, dict) else None
            if not isinstance(matches, list):
                raise TransportError("Error processing response from LanguageTool: no matches", url=url)
            try:
                return [parse_match(m) for m in matches]
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                raise TransportError(f"Error parsing response from LanguageTool: {e}", url=url) from e

    def languages(self) -> List[Language]:
        """Languages supported by the server."""
        url = f"{self.server_url}/v2/languages"
        payload = self._request('GET', url)
        if not isinstance(payload, list):
            raise TransportError("Error processing response from LanguageTool: expected a list", url=url)
        try:
            return [Language(l['name'], l['code'], l['longCode']) for l in payload]
        except (KeyError, TypeError) as e:
            raise TransportError(f"Error parsing languages: {e}", url=url) from e

    def _request(self, method: str, url: str, **kwargs) -> Any:
        """Perform a request and decode its JSON body."""
        timeout = self.config.server.timeout
        headers = {'Accept': 'application/json', 'User-Agent': USER_AGENT}
        try:
            if method == 'GET':
                response = requests.get(url, timeout=timeout, headers=headers, **kwargs)
            else:
                response = requests.post(url, timeout=timeout, headers=headers, **kwargs)
            response.raise_for_status()
        except requests.Timeout as e:
            raise TransportError(f"Request to LanguageTool timed out ({timeout}s)", url=url) from e
        except requests.RequestException as e:
            raise TransportError(
                f"Request to LanguageTool failed: please check your connection and server URL. {e}",
                url=url) from e

        try:
            return response.json()
        except ValueError as e:
            raise TransportError("Error processing response from LanguageTool", url=url) from e
