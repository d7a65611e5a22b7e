"""
Tests for Annotated Text
========================
Segment building, merging, offsets and serialization.
"""

import json

import pytest

from config_logging import OffsetCorruptionError
from ltcheck.annotated import AnnotatedText, MarkupSegment, TextSegment


@pytest.fixture
def sample() -> AnnotatedText:
    """'Hello **world**' with the emphasis markers hidden."""
    annotated = AnnotatedText()
    annotated.push_text('Hello ')
    annotated.push_markup('**')
    annotated.push_text('world')
    annotated.push_markup('**', '')
    annotated.push_markup('', '\n\n')
    return annotated


class TestSegments:
    """Tests for TextSegment and MarkupSegment."""

    def test_text_segment_lengths(self):
        segment = TextSegment('abc')
        assert segment.source_length == 3
        assert segment.interpreted == 'abc'
        assert segment.to_json() == {'text': 'abc'}

    def test_markup_segment_interpretation(self):
        segment = MarkupSegment('[[x]]', 'x')
        assert segment.source_length == 5
        assert segment.interpreted == 'x'
        assert segment.to_json() == {'markup': '[[x]]', 'interpretAs': 'x'}

    def test_markup_without_interpretation(self):
        segment = MarkupSegment('**')
        assert segment.interpreted == ''
        assert segment.to_json() == {'markup': '**'}

    def test_wrong_types_rejected(self):
        with pytest.raises(TypeError):
            TextSegment(3)
        with pytest.raises(TypeError):
            MarkupSegment('x', 5)
        with pytest.raises(TypeError):
            AnnotatedText(['plain string'])


class TestBuilding:
    """Tests for pushing and optimizing segments."""

    def test_empty_pushes_ignored(self):
        annotated = AnnotatedText()
        annotated.push_text('')
        annotated.push_markup('')
        assert len(annotated) == 0

    def test_markup_with_only_interpretation_kept(self):
        annotated = AnnotatedText()
        annotated.push_markup('', '\n')
        assert annotated.interpreted() == '\n'
        assert annotated.source_length() == 0

    def test_declared_source_length_checked(self):
        with pytest.raises(OffsetCorruptionError):
            AnnotatedText([TextSegment('abc')], source_length=4)

    def test_optimize_merges_neighbours(self):
        annotated = AnnotatedText([
            TextSegment('a'), TextSegment('b'),
            MarkupSegment('*'), MarkupSegment('*', '\n'),
            TextSegment('c'),
        ])
        annotated.optimize()
        assert annotated.segments == (
            TextSegment('ab'), MarkupSegment('**', '\n'), TextSegment('c'))

    def test_optimize_keeps_interpreted_markup_apart(self):
        annotated = AnnotatedText([MarkupSegment('', '• '), MarkupSegment('- ')])
        annotated.optimize()
        assert len(annotated) == 2

    def test_optimize_drops_empty_segments(self):
        annotated = AnnotatedText([TextSegment(''), MarkupSegment(''), TextSegment('x')])
        annotated.optimize()
        assert annotated.segments == (TextSegment('x'),)

    def test_optimize_is_idempotent(self, sample):
        sample.optimize()
        once = sample.segments
        sample.optimize()
        assert sample.segments == once

    def test_optimize_preserves_stream_and_source(self, sample):
        interpreted, source = sample.interpreted(), sample.source()
        sample.optimize()
        assert sample.interpreted() == interpreted
        assert sample.source() == source


class TestMeasuring:
    """Tests for lengths and verification."""

    def test_lengths(self, sample):
        assert sample.interpreted() == 'Hello world\n\n'
        assert sample.length() == 13
        assert sample.source_length() == len('Hello **world**')

    def test_interpreted_tail(self, sample):
        assert sample.interpreted_tail(3) == 'd\n\n'
        assert sample.interpreted_tail(100) == 'Hello world\n\n'

    def test_verify_accepts_matching_source(self, sample):
        sample.verify('Hello **world**')

    def test_verify_rejects_length_mismatch(self, sample):
        with pytest.raises(OffsetCorruptionError):
            sample.verify('Hello **world**!')

    def test_verify_rejects_content_mismatch(self, sample):
        with pytest.raises(OffsetCorruptionError) as exc_info:
            sample.verify('Hello __world__')
        assert exc_info.value.code == 'OFFSET_CORRUPTION'


class TestOffsets:
    """Tests for slices and stream-to-source translation."""

    def test_extract_slice_matches_stream(self, sample):
        stream = sample.interpreted()
        for start, end in [(0, 5), (6, 11), (3, 9), (0, 13)]:
            assert sample.extract_slice(start, end) == stream[start:end].strip()

    def test_extract_slice_out_of_range(self, sample):
        assert sample.extract_slice(10, 50) is None

    def test_extract_slice_invalid(self, sample):
        with pytest.raises(ValueError):
            sample.extract_slice(5, 2)

    def test_to_source_range_in_text(self, sample):
        # 'world' in the stream is 6..11, in the source 8..13
        assert sample.to_source_range(6, 11) == (8, 13)
        assert sample.to_source_range(0, 5) == (0, 5)

    def test_to_source_range_across_markup(self, sample):
        assert sample.to_source_range(4, 8) == (4, 10)

    def test_to_source_range_at_end(self, sample):
        assert sample.to_source_range(13, 13) == (15, 15)

    def test_to_source_range_out_of_bounds(self, sample):
        with pytest.raises(ValueError):
            sample.to_source_range(0, 14)

    def test_interpretation_widens_to_markup(self):
        annotated = AnnotatedText([TextSegment('see '), MarkupSegment('[[Page]]', 'DUMMY')])
        assert annotated.to_source_range(4, 9) == (4, 12)


class TestSerialization:
    """Tests for the request representation."""

    def test_to_json(self, sample):
        data = sample.to_json()
        assert data['annotation'][0] == {'text': 'Hello '}
        assert data['annotation'][1] == {'markup': '**'}
        assert data['annotation'][3] == {'markup': '**', 'interpretAs': ''}

    def test_stringify_keeps_unicode(self):
        annotated = AnnotatedText([MarkupSegment('', '• '), TextSegment('Größe')])
        text = annotated.stringify()
        assert '•' in text and 'Größe' in text
        assert json.loads(text) == annotated.to_json()
