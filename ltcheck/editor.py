"""
Editor Primitives
=================
The small host-editor surface the checking engine relies on:

- ``TextRange``: a ``[start, end)`` span; also used for selections
- ``Edit`` / ``ChangeSet``: edits in old-document coordinates and position mapping
- ``TextDocument``: an in-memory document that applies change sets

Any real editor integration only needs to provide the same methods.
"""

import threading
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

__version__ = "1.0.0"


@dataclass(frozen=True)
class TextRange:
    """A span of document offsets. ``start == end`` is a caret."""
    start: int
    end: int

    def __post_init__(self):
        if self.start < 0 or self.end < self.start:
            raise ValueError(f"Invalid range {self.start}..{self.end}")

    @property
    def length(self) -> int:
        return self.end - self.start

    @property
    def is_empty(self) -> bool:
        return self.start == self.end

    def overlaps(self, other: 'TextRange') -> bool:
        """Inclusive on both ends: touching ranges overlap."""
        return self.start <= other.end and other.start <= self.end

    def contains(self, pos: int) -> bool:
        return self.start <= pos <= self.end

    def union(self, other: 'TextRange') -> 'TextRange':
        return TextRange(min(self.start, other.start), max(self.end, other.end))

    def to_dict(self) -> Dict[str, int]:
        return {'start': self.start, 'end': self.end}


@dataclass(frozen=True)
class Edit:
    """Replace ``[start, end)`` of the old document with ``insert``."""
    start: int
    end: int
    insert: str = ''

    def __post_init__(self):
        if self.start < 0 or self.end < self.start:
            raise ValueError(f"Invalid edit {self.start}..{self.end}")

    @property
    def delta(self) -> int:
        return len(self.insert) - (self.end - self.start)

    def to_dict(self) -> Dict[str, Any]:
        return {'start': self.start, 'end': self.end, 'insert': self.insert}


class ChangeSet:
    """Non-overlapping edits against one document version, applied together."""

    def __init__(self, edits: Iterable[Edit] = ()):
        self.edits: List[Edit] = sorted(edits, key=lambda e: (e.start, e.end))
        for before, after in zip(self.edits, self.edits[1:]):
            if after.start < before.end:
                raise ValueError(f"Overlapping edits at {after.start}")

    @classmethod
    def insert(cls, pos: int, text: str) -> 'ChangeSet':
        return cls([Edit(pos, pos, text)])

    @classmethod
    def delete(cls, start: int, end: int) -> 'ChangeSet':
        return cls([Edit(start, end, '')])

    @classmethod
    def replace(cls, start: int, end: int, text: str) -> 'ChangeSet':
        return cls([Edit(start, end, text)])

    @classmethod
    def from_dicts(cls, data: Iterable[Dict[str, Any]]) -> 'ChangeSet':
        return cls([Edit(int(d['start']), int(d['end']), str(d.get('insert', ''))) for d in data])

    def __iter__(self):
        return iter(self.edits)

    def __len__(self) -> int:
        return len(self.edits)

    def __bool__(self) -> bool:
        return bool(self.edits)

    def map_pos(self, pos: int, assoc: int = -1) -> int:
        """
        Map an old-document position into the new document.

        A position touched by an edit moves to the start of the replacement
        (``assoc < 0``) or just past the inserted text (``assoc > 0``).
        """
        delta = 0
        for edit in self.edits:
            if edit.start > pos:
                break
            if edit.end < pos:
                delta += edit.delta
                continue
            new_start = edit.start + delta
            return new_start + len(edit.insert) if assoc > 0 else new_start
        return pos + delta

    def map_range(self, text_range: TextRange) -> Optional[TextRange]:
        """Map a range; start sticks after insertions, None when it collapses."""
        start = self.map_pos(text_range.start, 1)
        end = self.map_pos(text_range.end, -1)
        if end <= start:
            return None
        return TextRange(start, end)

    def touches(self, text_range: TextRange) -> List[Edit]:
        """Edits overlapping ``text_range`` (inclusive, old coordinates)."""
        return [e for e in self.edits if e.start <= text_range.end and text_range.start <= e.end]

    def new_range(self, edit: Edit) -> TextRange:
        """Where the inserted text of ``edit`` lands in the new document."""
        delta = sum(e.delta for e in self.edits if e.end <= edit.start and e is not edit)
        start = edit.start + delta
        return TextRange(start, start + len(edit.insert))

    def inserted_text(self) -> str:
        return ''.join(e.insert for e in self.edits)

    def changed_range(self) -> Optional[TextRange]:
        """Smallest new-document range covering every edit."""
        if not self.edits:
            return None
        first = self.new_range(self.edits[0])
        last = self.new_range(self.edits[-1])
        return TextRange(first.start, max(first.end, last.end))

    def apply(self, text: str) -> str:
        pieces = []
        position = 0
        for edit in self.edits:
            if edit.end > len(text):
                raise ValueError(f"Edit {edit.start}..{edit.end} beyond document length {len(text)}")
            pieces.append(text[position:edit.start])
            pieces.append(edit.insert)
            position = edit.end
        pieces.append(text[position:])
        return ''.join(pieces)

    def to_list(self) -> List[Dict[str, Any]]:
        return [e.to_dict() for e in self.edits]


@dataclass(frozen=True)
class DocumentLine:
    number: int  # 1-based
    start: int
    end: int     # before the line break
    text: str


class TextDocument:
    """In-memory document, the reference host used by sessions and tests."""

    def __init__(self, text: str = ''):
        self._text = text
        self._lock = threading.RLock()
        self.version = 0

    def text(self) -> str:
        return self._text

    def slice(self, start: int, end: int) -> str:
        return self._text[start:end]

    def length(self) -> int:
        return len(self._text)

    def line_at(self, pos: int) -> DocumentLine:
        if pos < 0 or pos > len(self._text):
            raise ValueError(f"Position {pos} outside document of length {len(self._text)}")
        start = self._text.rfind('\n', 0, pos) + 1
        end = self._text.find('\n', pos)
        if end < 0:
            end = len(self._text)
        return DocumentLine(self._text.count('\n', 0, start) + 1, start, end, self._text[start:end])

    def lines_between(self, start: int, end: int) -> Tuple[int, int]:
        """Start of the line holding ``start`` and end of the line holding ``end``."""
        return self.line_at(start).start, self.line_at(end).end

    def apply(self, changes: ChangeSet) -> str:
        with self._lock:
            self._text = changes.apply(self._text)
            self.version += 1
            return self._text
