"""
Tests for the LanguageTool Clients
==================================
Check requests, the word list endpoints and the synonym services, with
``requests`` patched out.
"""

from unittest.mock import MagicMock, patch

import pytest
import requests

from config_logging import CheckRequestError, ConfigurationError, SynonymError, TransportError
from ltcheck.annotated import AnnotatedText, MarkupSegment, TextSegment
from ltcheck.config import LTConfig
from ltcheck.editor import TextRange
from ltcheck.languagetool import (
    EnglishSynonyms,
    GermanSynonyms,
    LanguageToolClient,
    WordListClient,
    get_synonym_service,
    parse_match,
)


def response(payload=None, error=None):
    mock = MagicMock()
    if error is not None:
        mock.raise_for_status.side_effect = error
    if isinstance(payload, Exception):
        mock.json.side_effect = payload
    else:
        mock.json.return_value = payload
    return mock


MATCH = {
    'offset': 10,
    'length': 4,
    'shortMessage': 'Spelling mistake',
    'message': 'Possible spelling mistake found.',
    'replacements': [{'value': 'tests'}, {'value': 'text'}],
    'rule': {'id': 'MORFOLOGIK_RULE_EN_US', 'category': {'id': 'TYPOS'}},
}


@pytest.fixture
def annotated() -> AnnotatedText:
    return AnnotatedText([TextSegment('This is a '), MarkupSegment('*'), TextSegment('tset')])


class TestParseMatch:

    def test_parse_match(self):
        match = parse_match(MATCH)
        assert (match.offset, match.length, match.end) == (10, 4, 14)
        assert match.title == 'Spelling mistake'
        assert match.replacements == ['tests', 'text']
        assert match.category_id == 'TYPOS'
        assert match.rule_id == 'MORFOLOGIK_RULE_EN_US'

    def test_parse_match_minimal(self):
        match = parse_match({'offset': 0, 'length': 1})
        assert match.replacements == []
        assert match.category_id == ''


class TestCheckRequest:

    def test_default_params(self, lt_config):
        params = LanguageToolClient(lt_config).build_params('{}')
        assert params['language'] == 'auto'
        assert params['level'] == 'default'
        assert params['preferredVariants'] == 'en-US,de-DE,pt-PT,ca-ES'
        assert 'username' not in params

    def test_configured_params(self, lt_config):
        lt_config.check.static_language = 'de-DE'
        lt_config.check.picky_mode = True
        lt_config.check.mother_tongue = 'en-US'
        lt_config.check.disabled_rules = 'WHITESPACE_RULE'
        lt_config.server.username = 'alice'
        lt_config.server.api_key = 'key'
        params = LanguageToolClient(lt_config).build_params('{}')
        assert params['language'] == 'de-DE'
        assert params['level'] == 'picky'
        assert params['motherTongue'] == 'en-US'
        assert params['disabledRules'] == 'WHITESPACE_RULE'
        assert params['apiKey'] == 'key'
        assert 'preferredVariants' not in params

    def test_check(self, lt_config, annotated):
        with patch('ltcheck.languagetool.client.requests.post',
                   return_value=response({'matches': [MATCH]})) as post:
            matches = LanguageToolClient(lt_config).check(annotated)

        assert matches[0].offset == 10
        args, kwargs = post.call_args
        assert args[0] == 'https://api.languagetool.org/v2/check'
        assert kwargs['data']['data'] == annotated.stringify()
        assert kwargs['timeout'] == lt_config.server.timeout

    def test_request_too_large(self, lt_config):
        big = AnnotatedText([TextSegment('x' * 20001)])
        with patch('ltcheck.languagetool.client.requests.post') as post:
            with pytest.raises(CheckRequestError) as exc_info:
                LanguageToolClient(lt_config).check(big)
        assert exc_info.value.status_code == 413
        post.assert_not_called()

    def test_timeout(self, lt_config, annotated):
        with patch('ltcheck.languagetool.client.requests.post', side_effect=requests.Timeout()):
            with pytest.raises(TransportError) as exc_info:
                LanguageToolClient(lt_config).check(annotated)
        assert 'timed out' in exc_info.value.message

    def test_connection_error(self, lt_config, annotated):
        with patch('ltcheck.languagetool.client.requests.post',
                   side_effect=requests.ConnectionError('refused')):
            with pytest.raises(TransportError):
                LanguageToolClient(lt_config).check(annotated)

    def test_http_error(self, lt_config, annotated):
        failing = response({}, error=requests.HTTPError('500 Server Error'))
        with patch('ltcheck.languagetool.client.requests.post', return_value=failing):
            with pytest.raises(TransportError):
                LanguageToolClient(lt_config).check(annotated)

    def test_invalid_json(self, lt_config, annotated):
        with patch('ltcheck.languagetool.client.requests.post', return_value=response(ValueError('no json'))):
            with pytest.raises(TransportError):
                LanguageToolClient(lt_config).check(annotated)

    def test_missing_matches(self, lt_config, annotated):
        with patch('ltcheck.languagetool.client.requests.post', return_value=response({'software': {}})):
            with pytest.raises(TransportError):
                LanguageToolClient(lt_config).check(annotated)

    def test_languages(self, lt_config):
        payload = [{'name': 'English (US)', 'code': 'en', 'longCode': 'en-US'}]
        with patch('ltcheck.languagetool.client.requests.get', return_value=response(payload)) as get:
            languages = LanguageToolClient(lt_config).languages()
        assert languages[0].to_dict() == {'name': 'English (US)', 'code': 'en', 'long_code': 'en-US'}
        assert get.call_args[0][0].endswith('/v2/languages')


class TestWordListClient:

    @pytest.fixture
    def premium(self) -> LTConfig:
        config = LTConfig()
        config.server.server_url = 'https://api.languagetoolplus.com'
        config.server.username = 'alice'
        config.server.api_key = 'key'
        return config

    def test_requires_credentials(self, lt_config):
        with pytest.raises(ConfigurationError):
            WordListClient(lt_config).list_words()

    def test_list_words(self, premium):
        with patch('ltcheck.languagetool.client.requests.get',
                   return_value=response({'words': ['foo', 'bar']})) as get:
            assert WordListClient(premium).list_words() == ['foo', 'bar']
        params = get.call_args[1]['params']
        assert params == {'username': 'alice', 'apiKey': 'key', 'limit': '1000'}

    def test_add_and_delete(self, premium):
        with patch('ltcheck.languagetool.client.requests.post',
                   side_effect=[response({'added': True}), response({'deleted': False})]) as post:
            client = WordListClient(premium)
            assert client.add_word('foo') is True
            assert client.delete_word('bar') is False
        first, second = post.call_args_list
        assert first[0][0] == 'https://api.languagetoolplus.com/v2/words/add'
        assert first[1]['data']['word'] == 'foo'
        assert second[0][0].endswith('/v2/words/delete')

    def test_malformed_response(self, premium):
        with patch('ltcheck.languagetool.client.requests.post', return_value=response({'ok': 1})):
            with pytest.raises(TransportError):
                WordListClient(premium).add_word('foo')


class TestSynonyms:

    def test_english_request(self):
        body = EnglishSynonyms().build_request("This is a test.", TextRange(10, 14))
        assert body['message']['phrases'] == ['test']
        assert body['message']['text'] == "This is a test."
        assert body['message']['indices'] == [4]

    def test_english_query(self):
        payload = {'data': {'suggestions': [['exam', 'trial'], ['check']]}}
        with patch('ltcheck.languagetool.synonyms.requests.post', return_value=response(payload)):
            result = EnglishSynonyms().query("This is a test.", TextRange(10, 14))
        assert result == ['exam', 'trial', 'check']

    def test_german_query(self):
        payload = {'synsets': [{'terms': [{'term': 'Prüfung'}, {'term': 'Probe'}]}]}
        with patch('ltcheck.languagetool.synonyms.requests.get', return_value=response(payload)) as get:
            result = GermanSynonyms().query("Das ist ein Test.", TextRange(12, 16))
        assert result == ['Prüfung', 'Probe']
        assert get.call_args[0][0] == 'https://synonyms.languagetool.org/synonyms/de/Test'

    def test_failure(self):
        with patch('ltcheck.languagetool.synonyms.requests.post',
                   side_effect=requests.ConnectionError('down')):
            with pytest.raises(SynonymError):
                EnglishSynonyms().query("This is a test.", TextRange(10, 14))

    def test_unexpected_payload(self):
        with patch('ltcheck.languagetool.synonyms.requests.get', return_value=response({'nope': []})):
            with pytest.raises(SynonymError):
                GermanSynonyms().query("Das ist ein Test.", TextRange(12, 16))

    def test_service_lookup(self):
        assert isinstance(get_synonym_service('en'), EnglishSynonyms)
        assert get_synonym_service(None) is None
        assert get_synonym_service('fr') is None
