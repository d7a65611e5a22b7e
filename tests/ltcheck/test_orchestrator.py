"""
Tests for the Check Orchestrator
================================
Checks end to end with a scripted checker: offset translation, marker
updates, debounced automatic checks, failures, accept, synonyms and the
personal dictionary.
"""

from types import SimpleNamespace

import pytest

from config_logging import (
    OffsetCorruptionError,
    RecentErrors,
    SynonymError,
    TransportError,
    ValidationError,
)
from ltcheck.decorations import DecorationStore, Match
from ltcheck.editor import ChangeSet, TextDocument, TextRange
from ltcheck.languagetool.client import CheckerMatch
from ltcheck.orchestrator import CheckOrchestrator


EXAMPLE = "This is a *test*.\n\n- item one\n- item two"


class FakeSynonyms:
    def __init__(self, result=None, error=None):
        self.result = result or []
        self.error = error
        self.queries = []

    def query(self, sentence, selection):
        self.queries.append((sentence, selection))
        if self.error is not None:
            raise self.error
        return list(self.result)


class FakeWords:
    def __init__(self, remote=(), error=None):
        self.remote = list(remote)
        self.error = error
        self.added = []

    def list_words(self):
        if self.error is not None:
            raise self.error
        return list(self.remote)

    def add_word(self, word):
        self.added.append(word)
        return True

    def delete_word(self, word):
        return True


def typo(offset, length, replacements=('fix',)):
    return CheckerMatch(offset=offset, length=length, title='Spelling', message='Possible typo',
                        replacements=list(replacements), category_id='TYPOS', rule_id='MORFOLOGIK')


@pytest.fixture
def build(lt_config, make_client, manual_timers):
    """Builds an orchestrator over a fresh document and store."""
    def _build(text, matches=(), error=None, **kwargs):
        env = SimpleNamespace(notices=[], statuses=[], recent=RecentErrors())
        env.document = TextDocument(text)
        env.store = DecorationStore()
        env.client = make_client(matches, error)
        env.config = lt_config
        env.timers = manual_timers.created
        env.orchestrator = CheckOrchestrator(
            env.document, env.store, client=env.client, config=lt_config,
            on_status=env.statuses.append,
            on_notice=lambda message, duration: env.notices.append((message, duration)),
            timer_factory=manual_timers, recent_errors=env.recent, **kwargs)
        return env
    return _build


class TestRunCheck:
    """Tests for explicit checks."""

    def test_end_to_end_offsets(self, build):
        env = build(EXAMPLE, [typo(10, 4, ['tests']), typo(30, 8)])
        added = env.orchestrator.run_check()

        assert env.client.checked[0].interpreted() == "This is a test.\n\n• item one\n• item two\n\n"
        assert [(u.source_from, u.source_to) for u in added] == [(11, 15), (32, 40)]
        assert added[0].match.text == 'test'
        assert added[0].match.replacements == ('tests',)
        assert EXAMPLE[32:40] == 'item two'
        assert env.statuses == ['working', 'idle']

    def test_out_of_range_match_dropped(self, build):
        env = build("Short text.", [typo(100, 5), typo(0, 5)])
        added = env.orchestrator.run_check()
        assert [(u.source_from, u.source_to) for u in added] == [(0, 5)]

    def test_range_check_shifts_and_clears_only_region(self, build):
        text = "First line.\nSecond line here."
        env = build(text, [typo(0, 6)])
        env.store.add(Match('First', 0, 5, category_id='TYPOS'))
        env.store.add(Match('line', 19, 23, category_id='TYPOS'))

        env.orchestrator.run_check(TextRange(12, len(text)))

        assert env.client.checked[0].source() == "Second line here."
        assert [u.key for u in env.store] == [(0, 5), (12, 18)]

    def test_selection_used_without_range(self, build):
        env = build("One. Two words here.", [typo(0, 3)])
        env.orchestrator.run_check(selection=TextRange(5, 20))
        assert env.client.checked[0].source() == "Two words here."
        assert [u.key for u in env.store] == [(5, 8)]

    def test_blank_region_skipped(self, build):
        env = build("Text\n\n   \n", [typo(0, 1)])
        assert env.orchestrator.run_check(TextRange(5, 10)) == []
        assert env.client.checked == []
        assert env.statuses == []

    def test_full_check_replaces_all_markers(self, build):
        env = build("Some text.", [typo(0, 4)])
        env.store.add(Match('old', 5, 9))
        env.orchestrator.run_check()
        assert [u.key for u in env.store] == [(0, 4)]

    def test_transport_error_reported(self, build):
        env = build("Some text.", error=TransportError("Request failed", url='http://lt'))
        env.store.add(Match('Some', 0, 4))

        assert env.orchestrator.run_check() == []
        assert env.notices == [("Request failed", 5000)]
        assert len(env.recent) == 1
        assert env.statuses == ['working', 'idle']
        assert [u.key for u in env.store] == [(0, 4)]

    def test_recent_errors_redact_credentials(self, build):
        env = build("Some text.", error=TransportError("Rejected key secret123 for alice"))
        env.config.server.username = 'alice'
        env.config.server.api_key = 'secret123'
        env.orchestrator.run_check()
        entry = env.recent.entries()[0]
        assert 'secret123' not in entry
        assert 'alice' not in entry

    def test_offset_corruption_propagates_from_explicit_check(self, build):
        def broken(text):
            raise OffsetCorruptionError("bad offsets")
        env = build("Some text.", annotate_fn=broken)
        with pytest.raises(OffsetCorruptionError):
            env.orchestrator.run_check()
        assert env.statuses == ['working', 'idle']

    def test_results_cached(self, build):
        env = build("Some text.", [typo(0, 4)])
        env.orchestrator.run_check()
        env.orchestrator.run_check()
        assert len(env.client.checked) == 1

        env.config.check.picky_mode = True
        env.orchestrator.run_check()
        assert len(env.client.checked) == 2


class TestAutoCheck:
    """Tests for debounced checks after edits."""

    def edit(self, env, changes):
        env.document.apply(changes)
        env.store.dispatch(changes=changes)
        env.orchestrator.on_change(changes)

    def test_disabled_by_default(self, build):
        env = build("Alpha beta.")
        self.edit(env, ChangeSet.insert(5, 's'))
        assert env.timers == []

    def test_whitespace_only_edit_ignored(self, build):
        env = build("Alpha beta.")
        env.config.check.auto_check = True
        self.edit(env, ChangeSet.insert(5, ' '))
        assert env.timers == []

    def test_checks_edited_line(self, build):
        env = build("Alpha beta.\nGamma delta.", [typo(0, 6)])
        env.config.check.auto_check = True
        self.edit(env, ChangeSet.insert(5, 's'))

        timer = env.timers[0]
        assert timer.started
        assert timer.interval == pytest.approx(3.0)
        timer.fire()

        assert env.client.checked[0].source() == "Alphas beta."
        assert [u.key for u in env.store] == [(0, 6)]
        assert env.orchestrator.pending_range is None

    def test_debounce_merges_pending_ranges(self, build):
        env = build("Alpha beta.\nGamma delta.")
        env.config.check.auto_check = True
        self.edit(env, ChangeSet.insert(5, 's'))
        self.edit(env, ChangeSet.insert(18, 'x'))

        assert len(env.timers) == 2
        assert env.timers[0].cancelled
        assert env.orchestrator.pending_range == TextRange(5, 19)

        env.timers[1].fire()
        assert env.client.checked[0].source() == "Alphas beta.\nGammax delta."

    def test_delay_clamped_to_maximum(self, build):
        env = build("Alpha beta.")
        env.config.check.auto_check = True
        env.config.check.auto_check_delay_ms = 60000
        self.edit(env, ChangeSet.insert(5, 's'))
        assert env.timers[0].interval == pytest.approx(5.0)

    def test_list_item_expansion(self, build):
        env = build("- item one\n  continued\n- item two")
        assert env.orchestrator.expand_range(TextRange(14, 14)) == TextRange(0, 22)

    def test_offset_corruption_reported(self, build):
        def broken(text):
            raise OffsetCorruptionError("bad offsets")
        env = build("Alpha beta.", annotate_fn=broken)
        env.config.check.auto_check = True
        self.edit(env, ChangeSet.insert(5, 's'))
        env.timers[0].fire()
        assert env.notices == [("bad offsets", 5000)]
        assert len(env.recent) == 1

    def test_other_failures_reported(self, build):
        def rejecting(text):
            raise ValidationError("unusable region")
        env = build("Alpha beta.", annotate_fn=rejecting)
        env.config.check.auto_check = True
        self.edit(env, ChangeSet.insert(5, 's'))
        env.timers[0].fire()
        assert env.notices == [("unusable region", 5000)]
        assert "unusable region" in env.recent.entries()[0]
        assert env.statuses[-1] == 'idle'

    def test_cancel(self, build):
        env = build("Alpha beta.")
        env.config.check.auto_check = True
        self.edit(env, ChangeSet.insert(5, 's'))
        env.orchestrator.cancel()
        assert env.timers[0].cancelled
        assert env.orchestrator.pending_range is None


class TestAccept:
    """Tests for applying replacements."""

    def test_accept_replacement(self, build):
        env = build("Ths is fine.", [typo(0, 3, ['This', 'Thus'])])
        env.orchestrator.run_check()
        assert env.orchestrator.can_accept(1, 1)

        env.orchestrator.accept_replacement(1, 1)
        assert env.document.text() == "Thus is fine."
        assert len(env.store) == 0

    def test_accept_shifts_other_markers(self, build):
        env = build("Ths is fne.", [typo(0, 3, ['This']), typo(7, 3, ['fine'])])
        env.orchestrator.run_check()
        env.orchestrator.accept_replacement(0, 0)
        assert env.document.text() == "This is fne."
        assert [u.key for u in env.store] == [(8, 11)]

    def test_accept_without_marker(self, build):
        env = build("Fine text.")
        assert not env.orchestrator.can_accept(0, 0)
        with pytest.raises(ValidationError):
            env.orchestrator.accept_replacement(0, 0)

    def test_accept_missing_replacement(self, build):
        env = build("Ths is fine.", [typo(0, 3, ['This'])])
        env.orchestrator.run_check()
        with pytest.raises(ValidationError):
            env.orchestrator.accept_replacement(1, 3)

    def test_next_underline_and_ignore(self, build):
        env = build("Ths is fne.", [typo(0, 3), typo(7, 3)])
        env.orchestrator.run_check()
        assert env.orchestrator.next_underline(0).key == (7, 10)
        env.orchestrator.ignore(TextRange(7, 10))
        assert env.orchestrator.next_underline(0) is None
        assert len(env.orchestrator.clear_all()) == 1


class TestSynonyms:
    """Tests for synonym suggestions."""

    def test_synonyms_for_word(self, build):
        service = FakeSynonyms(['examination', 'trial'])
        env = build("This is a test. Another one.", synonym_services={'en': service})
        env.config.synonyms.language = 'en'

        underline = env.orchestrator.request_synonyms(TextRange(10, 14))

        assert service.queries == [("This is a test.", TextRange(10, 14))]
        assert underline.match.title == 'Synonyms'
        assert underline.match.replacements == ('examination', 'trial')
        assert underline.key == (10, 14)

    def test_sentence_after_period(self, build):
        service = FakeSynonyms(['single'])
        env = build("This is a test. Another one.", synonym_services={'en': service})
        env.config.synonyms.language = 'en'
        env.orchestrator.request_synonyms(TextRange(24, 27))
        assert service.queries == [("Another one.", TextRange(8, 11))]

    def test_multiple_words_refused(self, build):
        service = FakeSynonyms(['x'])
        env = build("This is a test.", synonym_services={'en': service})
        env.config.synonyms.language = 'en'
        assert env.orchestrator.request_synonyms(TextRange(5, 14)) is None
        assert service.queries == []

    def test_disabled(self, build):
        service = FakeSynonyms(['x'])
        env = build("This is a test.", synonym_services={'en': service})
        assert env.orchestrator.request_synonyms(TextRange(10, 14)) is None

    def test_lookup_failure_reported(self, build):
        service = FakeSynonyms(error=SynonymError("Requesting synonyms failed"))
        env = build("This is a test.", synonym_services={'en': service})
        env.config.synonyms.language = 'en'
        assert env.orchestrator.request_synonyms(TextRange(10, 14)) is None
        assert env.notices == [("Requesting synonyms failed", 5000)]


class TestDictionary:
    """Tests for adding words to the personal dictionary."""

    def test_add_word_clears_spelling_markers(self, build):
        env = build("Obsidan and Obsidan.")
        env.store.add(Match('Obsidan', 0, 7, category_id='TYPOS'))
        env.store.add(Match('Obsidan', 12, 19, category_id='TYPOS'))
        env.store.add(Match('and', 8, 11, category_id='GRAMMAR'))

        removed = env.orchestrator.add_to_dictionary('Obsidan')

        assert len(removed) == 2
        assert env.config.dictionary.words == ['Obsidan']
        assert [u.key for u in env.store] == [(8, 11)]

    def test_empty_word(self, build):
        env = build("Text.")
        with pytest.raises(ValidationError):
            env.orchestrator.add_to_dictionary('  ')

    def premium(self, config):
        config.server.server_url = 'https://api.languagetoolplus.com'
        config.server.username = 'alice'
        config.server.api_key = 'key'
        config.dictionary.sync = True

    def test_add_word_synchronizes(self, build):
        words = FakeWords(remote=['remote'])
        env = build("Text.", words_api=words)
        self.premium(env.config)

        env.orchestrator.add_to_dictionary('local')

        assert words.added == ['local']
        assert env.config.dictionary.words == ['local', 'remote']
        assert env.config.dictionary.remote_snapshot == ['local', 'remote']

    def test_sync_failure_reported(self, build):
        words = FakeWords(error=TransportError("offline"))
        env = build("Text.", words_api=words)
        self.premium(env.config)

        env.orchestrator.add_to_dictionary('local')

        assert env.config.dictionary.words == ['local']
        assert len(env.notices) == 1
        assert len(env.recent) == 1
