"""
Annotated Text
==============
The flattened text-plus-markup representation sent to LanguageTool.

An ``AnnotatedText`` is an ordered list of segments. Each segment occupies a
known number of source characters and contributes a known string to the
stream the checker sees:

- ``TextSegment``: prose, identical in the source and in the stream.
- ``MarkupSegment``: formatting that is not checked; the checker sees
  ``interpret_as`` (often empty, a newline or a bullet) instead of ``raw``.

Offsets returned by the checker refer to the stream; ``to_source_range``
translates them back to the checked source region.
"""

import json
from bisect import bisect_left, bisect_right
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Tuple, Union

from config_logging import OffsetCorruptionError

__version__ = "1.0.0"


@dataclass(frozen=True)
class TextSegment:
    """Verbatim prose forwarded to the checker."""
    content: str

    def __post_init__(self):
        if not isinstance(self.content, str):
            raise TypeError(f"TextSegment content must be str, not {type(self.content).__name__}")

    @property
    def source_length(self) -> int:
        return len(self.content)

    @property
    def raw(self) -> str:
        return self.content

    @property
    def interpreted(self) -> str:
        return self.content

    def to_json(self) -> dict:
        return {'text': self.content}


@dataclass(frozen=True)
class MarkupSegment:
    """Source text hidden from the checker, optionally replaced by ``interpret_as``."""
    raw: str
    interpret_as: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.raw, str):
            raise TypeError(f"MarkupSegment raw must be str, not {type(self.raw).__name__}")
        if self.interpret_as is not None and not isinstance(self.interpret_as, str):
            raise TypeError("MarkupSegment interpret_as must be str or None")

    @property
    def source_length(self) -> int:
        return len(self.raw)

    @property
    def interpreted(self) -> str:
        return self.interpret_as or ''

    def to_json(self) -> dict:
        data = {'markup': self.raw}
        if self.interpret_as is not None:
            data['interpretAs'] = self.interpret_as
        return data


Segment = Union[TextSegment, MarkupSegment]


class AnnotatedText:
    """Ordered segments of one checked region."""

    def __init__(self, segments: Iterable[Segment] = (), source_length: Optional[int] = None):
        self._segments: List[Segment] = []
        for segment in segments:
            if not isinstance(segment, (TextSegment, MarkupSegment)):
                raise TypeError(f"Not a segment: {segment!r}")
            self._segments.append(segment)
        self._index: Optional[Tuple[List[int], List[int], List[int]]] = None

        if source_length is not None and self.source_length() != source_length:
            raise OffsetCorruptionError(
                f"Segments cover {self.source_length()} source characters, "
                f"declared {source_length}",
                declared=source_length, actual=self.source_length())

    @property
    def segments(self) -> Tuple[Segment, ...]:
        return tuple(self._segments)

    def __iter__(self) -> Iterator[Segment]:
        return iter(self._segments)

    def __len__(self) -> int:
        return len(self._segments)

    def __eq__(self, other) -> bool:
        if not isinstance(other, AnnotatedText):
            return NotImplemented
        return self._segments == other._segments

    def __repr__(self) -> str:
        return f"AnnotatedText({self._segments!r})"

    # -------------------------------------------------------------------------
    # Building
    # -------------------------------------------------------------------------

    def push_text(self, text: str):
        if not text:
            return
        self._segments.append(TextSegment(text))
        self._index = None

    def push_markup(self, raw: str, interpret_as: Optional[str] = None):
        if not raw and not interpret_as:
            return
        self._segments.append(MarkupSegment(raw, interpret_as))
        self._index = None

    def optimize(self):
        """Merge compatible neighbours to shorten the request."""
        output: List[Segment] = []
        for segment in self._segments:
            if isinstance(segment, TextSegment) and not segment.content:
                continue
            if isinstance(segment, MarkupSegment) and not segment.raw and segment.interpret_as is None:
                continue

            last = output[-1] if output else None
            if isinstance(last, TextSegment) and isinstance(segment, TextSegment):
                output[-1] = TextSegment(last.content + segment.content)
            elif (isinstance(last, MarkupSegment) and isinstance(segment, MarkupSegment)
                  and last.interpret_as is None):
                output[-1] = MarkupSegment(last.raw + segment.raw, segment.interpret_as)
            else:
                output.append(segment)
        self._segments = output
        self._index = None

    # -------------------------------------------------------------------------
    # Measuring
    # -------------------------------------------------------------------------

    def length(self) -> int:
        """Length of the stream the checker sees."""
        return sum(len(s.interpreted) for s in self._segments)

    def source_length(self) -> int:
        return sum(s.source_length for s in self._segments)

    def interpreted(self) -> str:
        return ''.join(s.interpreted for s in self._segments)

    def source(self) -> str:
        return ''.join(s.raw for s in self._segments)

    def interpreted_tail(self, limit: int) -> str:
        """Last ``limit`` characters of the stream."""
        pieces = []
        remaining = limit
        for segment in reversed(self._segments):
            if remaining <= 0:
                break
            text = segment.interpreted
            if not text:
                continue
            pieces.append(text[-remaining:])
            remaining -= len(text)
        return ''.join(reversed(pieces))

    def verify(self, source: str):
        """Fail fast when the segments do not reproduce ``source`` exactly."""
        if self.source_length() != len(source):
            raise OffsetCorruptionError(
                f"Annotation covers {self.source_length()} characters, source has {len(source)}",
                declared=len(source), actual=self.source_length())
        offset = 0
        for segment in self._segments:
            raw = segment.raw
            if source[offset:offset + len(raw)] != raw:
                raise OffsetCorruptionError(
                    f"Segment at source offset {offset} does not match the source",
                    offset=offset, raw=raw, expected=source[offset:offset + len(raw)])
            offset += len(raw)

    # -------------------------------------------------------------------------
    # Offsets
    # -------------------------------------------------------------------------

    def extract_slice(self, start: int, end: int) -> Optional[str]:
        """Stripped stream text between two stream offsets, None if out of range."""
        if start < 0 or end < start:
            raise ValueError(f"Invalid slice {start}..{end}")

        segments = self._segments
        i = 0
        position = 0
        while i < len(segments):
            size = len(segments[i].interpreted)
            if position + size <= start:
                position += size
                i += 1
            else:
                break

        collected_from = position
        pieces = []
        while i < len(segments) and position < end:
            text = segments[i].interpreted
            pieces.append(text)
            position += len(text)
            i += 1

        if position < end:
            return None
        text = ''.join(pieces)
        return text[start - collected_from:end - collected_from].strip()

    def _build_index(self) -> Tuple[List[int], List[int], List[int]]:
        if self._index is None:
            starts, ends, sources = [], [], []
            stream = 0
            source = 0
            for segment in self._segments:
                size = len(segment.interpreted)
                starts.append(stream)
                ends.append(stream + size)
                sources.append(source)
                stream += size
                source += segment.source_length
            self._index = (starts, ends, sources)
        return self._index

    def _source_start(self, position: int) -> int:
        starts, ends, sources = self._build_index()
        i = bisect_right(ends, position)
        if i >= len(self._segments):
            return self.source_length()
        segment = self._segments[i]
        if isinstance(segment, TextSegment):
            return sources[i] + (position - starts[i])
        return sources[i]

    def _source_end(self, position: int) -> int:
        starts, ends, sources = self._build_index()
        i = bisect_left(starts, position) - 1
        if i < 0:
            return 0
        segment = self._segments[i]
        if isinstance(segment, TextSegment):
            return sources[i] + (position - starts[i])
        return sources[i] + segment.source_length

    def to_source_range(self, start: int, end: int) -> Tuple[int, int]:
        """Translate a stream range into a source range of the region.

        A boundary inside a markup interpretation widens to the markup span.
        """
        total = self.length()
        if start < 0 or end < start or end > total:
            raise ValueError(f"Stream range {start}..{end} outside 0..{total}")
        source_from = self._source_start(start)
        if end == start:
            return source_from, source_from
        return source_from, max(source_from, self._source_end(end))

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    def to_json(self) -> dict:
        return {'annotation': [s.to_json() for s in self._segments]}

    def stringify(self) -> str:
        return json.dumps(self.to_json(), ensure_ascii=False)
