"""
Tests for the Decoration Store
==============================
Marker insertion rules, remapping through edits and the clearing effects.
"""

import pytest

from ltcheck.decorations import (
    AddUnderline,
    ClearUnderlines,
    ClearUnderlinesInRange,
    DecorationStore,
    IgnoreUnderline,
    Match,
    UnderlineState,
)
from ltcheck.editor import ChangeSet, TextRange


def make_match(start, end, text='word', category='GRAMMAR', rule='SOME_RULE', replacements=('fix',)):
    return Match(text=text, source_from=start, source_to=end, title='Title', message='Message',
                 replacements=tuple(replacements), category_id=category, rule_id=rule)


@pytest.fixture
def store() -> DecorationStore:
    return DecorationStore()


class TestInsertion:
    """Tests for adding markers."""

    def test_add(self, store):
        underline = store.add(make_match(2, 6))
        assert underline.state == UnderlineState.ACTIVE
        assert [u.key for u in store] == [(2, 6)]

    def test_duplicate_range_kept_once(self, store):
        result = store.dispatch(effects=(AddUnderline(make_match(2, 6)),
                                         AddUnderline(make_match(2, 6, rule='OTHER'))))
        assert len(result.added) == 1
        assert result.rejected[0][1] == 'duplicate'
        assert len(store) == 1

    def test_empty_range_rejected(self, store):
        assert store.add(make_match(3, 3)) is None

    def test_excluded_structure(self):
        store = DecorationStore(classify=lambda pos: 'code' if pos >= 10 else '')
        assert store.add(make_match(2, 6)) is not None
        assert store.add(make_match(8, 12)) is None
        assert store.add(make_match(12, 14)) is None

    def test_excluded_on_first_character(self):
        store = DecorationStore(classify=lambda pos: 'inline-code' if pos < 3 else '')
        result = store.dispatch(effects=(AddUnderline(make_match(2, 6)),))
        assert result.rejected[0][1] == 'excluded'

    def test_dictionary_words(self):
        store = DecorationStore(dictionary=lambda: ['Obsidian'])
        assert store.add(make_match(0, 8, text='Obsidian', category='TYPOS')) is None
        assert store.add(make_match(0, 8, text='Obsidian', category='GRAMMAR')) is not None
        assert store.add(make_match(10, 15, text='Obsid', category='TYPOS')) is not None

    def test_table_whitespace(self):
        store = DecorationStore(classify=lambda pos: 'table')
        assert store.add(make_match(0, 2, rule='WHITESPACE_RULE')) is None
        assert store.add(make_match(0, 2)) is not None


class TestRemapping:
    """Tests for markers following edits."""

    def test_edit_before_shifts(self, store):
        store.add(make_match(10, 14))
        result = store.dispatch(changes=ChangeSet.insert(0, 'abc'))
        assert not result.removed
        assert [u.key for u in store] == [(13, 17)]

    def test_edit_after_keeps(self, store):
        store.add(make_match(10, 14))
        store.dispatch(changes=ChangeSet.insert(20, 'abc'))
        assert [u.key for u in store] == [(10, 14)]

    def test_edit_inside_invalidates(self, store):
        store.add(make_match(10, 14))
        result = store.dispatch(changes=ChangeSet.replace(11, 12, 'x'))
        assert len(store) == 0
        assert result.removed[0].state == UnderlineState.INVALIDATED

    def test_edit_touching_boundary_invalidates(self, store):
        store.add(make_match(10, 14))
        store.dispatch(changes=ChangeSet.insert(14, 's'))
        assert len(store) == 0

    def test_selection_elsewhere_keeps_touched_marker(self, store):
        store.add(make_match(10, 14))
        changes = ChangeSet.insert(14, 's')
        store.dispatch(changes=changes, selection=TextRange(40, 40))
        assert [u.key for u in store] == [(10, 14)]

    def test_selection_at_edit_invalidates(self, store):
        store.add(make_match(10, 14))
        store.dispatch(changes=ChangeSet.insert(14, 's'), selection=TextRange(15, 15))
        assert len(store) == 0

    def test_deletion_collapsing_marker(self, store):
        store.add(make_match(10, 14))
        store.dispatch(changes=ChangeSet.delete(5, 20), selection=TextRange(100, 100))
        assert len(store) == 0

    def test_ignored_ranges_follow_edits(self, store):
        store.ignore(TextRange(10, 14))
        store.dispatch(changes=ChangeSet.insert(0, 'ab'))
        assert [(r.source_from, r.source_to) for r in store.ignored_ranges()] == [(12, 16)]
        assert store.add(make_match(12, 16)) is None


class TestEffects:
    """Tests for clear, ignore and matching effects."""

    def test_clear_all(self, store):
        store.add(make_match(0, 2))
        store.add(make_match(5, 8))
        removed = store.clear_all()
        assert len(removed) == 2
        assert len(store) == 0

    def test_clear_in_range(self, store):
        store.add(make_match(0, 2))
        store.add(make_match(5, 8))
        store.add(make_match(20, 24))
        store.clear_in_range(TextRange(4, 10))
        assert [u.key for u in store] == [(0, 2), (20, 24)]

    def test_clear_then_add_in_one_dispatch(self, store):
        store.add(make_match(5, 8))
        result = store.dispatch(effects=(ClearUnderlinesInRange(TextRange(0, 10)),
                                         AddUnderline(make_match(5, 8))))
        assert len(result.removed) == 1 and len(result.added) == 1
        assert len(store) == 1

    def test_ignore(self, store):
        store.add(make_match(5, 8))
        removed = store.dispatch(effects=(IgnoreUnderline(TextRange(5, 8)),)).removed
        assert removed[0].state == UnderlineState.IGNORED
        assert store.add(make_match(5, 8)) is None

    def test_clear_matching(self, store):
        store.add(make_match(0, 4, text='teh', category='TYPOS'))
        store.add(make_match(10, 14, text='teh', category='GRAMMAR'))
        store.clear_matching(lambda u: u.match.category_id == 'TYPOS')
        assert [u.key for u in store] == [(10, 14)]

    def test_unknown_effect(self, store):
        with pytest.raises(TypeError):
            store.dispatch(effects=('bogus',))

    def test_version_increments(self, store):
        store.dispatch(effects=(ClearUnderlines(),))
        store.dispatch(effects=(ClearUnderlines(),))
        assert store.version == 2


class TestQueries:
    """Tests for lookups used by the editor."""

    def test_underline_at(self, store):
        store.add(make_match(5, 8))
        assert len(store.underline_at(5)) == 1
        assert len(store.underline_at(8)) == 1
        assert store.underline_at(9) == []

    def test_next_underline(self, store):
        store.add(make_match(20, 24))
        store.add(make_match(5, 8))
        assert store.next_underline(0).key == (5, 8)
        assert store.next_underline(5).key == (20, 24)
        assert store.next_underline(30) is None

    def test_underlines_between(self, store):
        store.add(make_match(5, 8))
        store.add(make_match(20, 24))
        assert [u.key for u in store.underlines_between(0, 10)] == [(5, 8)]

    def test_to_list(self, store):
        store.add(make_match(5, 8))
        data = store.to_list()[0]
        assert data['from'] == 5 and data['to'] == 8
        assert data['state'] == 'active'
        assert data['match']['replacements'] == ['fix']
