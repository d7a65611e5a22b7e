"""
Decoration Store
================
Live markers (underlines) for checker matches, kept in sync with the document.

Every state change goes through ``DecorationStore.dispatch``: an optional
change set first remaps (or invalidates) the existing markers, then the
effects are applied in order. Insertion is refused for duplicate ranges,
structurally excluded zones (front matter, code, math, ...), ignored ranges,
dictionary words and whitespace hints inside tables.
"""

import re
import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Collection, Dict, Iterator, List, Optional, Tuple, Union

from config_logging import get_logger
from ltcheck.editor import ChangeSet, TextRange

__version__ = "1.0.0"

logger = get_logger('ltcheck.decorations')

# Structural classes that never receive markers
EXCLUDED_STRUCTURE_RE = re.compile(r'frontmatter|code|math|templater|blockid|hashtag|internal')

SPELLING_CATEGORY = 'TYPOS'
WHITESPACE_RULE = 'WHITESPACE_RULE'


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class Match:
    """A checker issue positioned in document offsets."""
    text: str
    source_from: int
    source_to: int
    title: str = ''
    message: str = ''
    replacements: Tuple[str, ...] = ()
    category_id: str = ''
    rule_id: str = ''

    @property
    def range(self) -> TextRange:
        return TextRange(self.source_from, self.source_to)

    def shifted(self, delta: int) -> 'Match':
        return replace(self, source_from=self.source_from + delta, source_to=self.source_to + delta)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'text': self.text,
            'from': self.source_from,
            'to': self.source_to,
            'title': self.title,
            'message': self.message,
            'replacements': list(self.replacements),
            'category_id': self.category_id,
            'rule_id': self.rule_id,
        }


class UnderlineState(Enum):
    PROPOSED = 'proposed'
    ACTIVE = 'active'
    ACCEPTED = 'accepted'
    IGNORED = 'ignored'
    INVALIDATED = 'invalidated'
    CLEARED = 'cleared'


@dataclass
class Underline:
    """A live marker. Its range follows edits; the match keeps check-time data."""
    source_from: int
    source_to: int
    match: Match
    state: UnderlineState = UnderlineState.PROPOSED

    @property
    def range(self) -> TextRange:
        return TextRange(self.source_from, self.source_to)

    @property
    def key(self) -> Tuple[int, int]:
        return (self.source_from, self.source_to)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'from': self.source_from,
            'to': self.source_to,
            'state': self.state.value,
            'match': self.match.to_dict(),
        }


@dataclass(frozen=True)
class IgnoredRange:
    source_from: int
    source_to: int

    @property
    def range(self) -> TextRange:
        return TextRange(self.source_from, self.source_to)


# =============================================================================
# EFFECTS
# =============================================================================

@dataclass(frozen=True)
class AddUnderline:
    match: Match


@dataclass(frozen=True)
class ClearUnderlines:
    pass


@dataclass(frozen=True)
class ClearUnderlinesInRange:
    range: TextRange
    reason: UnderlineState = UnderlineState.CLEARED


@dataclass(frozen=True)
class IgnoreUnderline:
    range: TextRange


@dataclass(frozen=True)
class ClearMatching:
    predicate: Callable[[Underline], bool]


Effect = Union[AddUnderline, ClearUnderlines, ClearUnderlinesInRange, IgnoreUnderline, ClearMatching]


@dataclass
class DispatchResult:
    """What one dispatch changed."""
    added: List[Underline] = field(default_factory=list)
    removed: List[Underline] = field(default_factory=list)
    rejected: List[Tuple[Match, str]] = field(default_factory=list)


# =============================================================================
# STORE
# =============================================================================

class DecorationStore:
    """
    Markers of one document.

    Args:
        classify: structural classification at an offset of the current document
        dictionary: returns the personal dictionary words
    """

    def __init__(self, classify: Optional[Callable[[int], str]] = None,
                 dictionary: Optional[Callable[[], Collection[str]]] = None):
        self.classify = classify or (lambda pos: '')
        self.dictionary = dictionary or (lambda: ())
        self._underlines: Dict[Tuple[int, int], Underline] = {}
        self._ignored: Dict[Tuple[int, int], IgnoredRange] = {}
        self._lock = threading.RLock()
        self.version = 0

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def dispatch(self, changes: Optional[ChangeSet] = None, selection: Optional[TextRange] = None,
                 effects: Tuple[Effect, ...] = ()) -> DispatchResult:
        """Apply a change set and then ``effects`` as one atomic update."""
        result = DispatchResult()
        with self._lock:
            if changes:
                self._remap(changes, selection, result)
            for effect in effects:
                if isinstance(effect, AddUnderline):
                    self._add(effect.match, result)
                elif isinstance(effect, ClearUnderlines):
                    self._remove(lambda u: True, UnderlineState.CLEARED, result)
                elif isinstance(effect, ClearUnderlinesInRange):
                    self._remove(lambda u, r=effect.range: u.range.overlaps(r), effect.reason, result)
                elif isinstance(effect, IgnoreUnderline):
                    ignored = IgnoredRange(effect.range.start, effect.range.end)
                    self._ignored[(ignored.source_from, ignored.source_to)] = ignored
                    self._remove(lambda u, r=effect.range: u.range.overlaps(r), UnderlineState.IGNORED, result)
                elif isinstance(effect, ClearMatching):
                    self._remove(effect.predicate, UnderlineState.CLEARED, result)
                else:
                    raise TypeError(f"Unknown effect: {effect!r}")
            self.version += 1
        return result

    def _invalidated(self, text_range: TextRange, changes: ChangeSet,
                     selection: Optional[TextRange]) -> bool:
        touching = changes.touches(text_range)
        if not touching:
            return False
        if selection is None:
            return True
        return any(changes.new_range(edit).overlaps(selection) for edit in touching)

    def _remap(self, changes: ChangeSet, selection: Optional[TextRange], result: DispatchResult):
        underlines: Dict[Tuple[int, int], Underline] = {}
        for underline in self._underlines.values():
            mapped = None
            if not self._invalidated(underline.range, changes, selection):
                mapped = changes.map_range(underline.range)
            if mapped is None or (mapped.start, mapped.end) in underlines:
                underline.state = UnderlineState.INVALIDATED
                result.removed.append(underline)
                continue
            underline.source_from, underline.source_to = mapped.start, mapped.end
            underlines[underline.key] = underline
        self._underlines = underlines

        ignored: Dict[Tuple[int, int], IgnoredRange] = {}
        for item in self._ignored.values():
            if self._invalidated(item.range, changes, selection):
                continue
            mapped = changes.map_range(item.range)
            if mapped is not None:
                ignored[(mapped.start, mapped.end)] = IgnoredRange(mapped.start, mapped.end)
        self._ignored = ignored

    def _rejection(self, match: Match) -> Optional[str]:
        key = (match.source_from, match.source_to)
        if match.source_to <= match.source_from:
            return 'empty'
        if key in self._underlines:
            return 'duplicate'
        first = self.classify(match.source_from)
        last = self.classify(max(match.source_from, match.source_to - 1))
        if EXCLUDED_STRUCTURE_RE.search(first) or EXCLUDED_STRUCTURE_RE.search(last):
            return 'excluded'
        if key in self._ignored:
            return 'ignored'
        if match.category_id == SPELLING_CATEGORY and match.text in self.dictionary():
            return 'dictionary'
        if match.rule_id == WHITESPACE_RULE and 'table' in first.split():
            return 'table-whitespace'
        return None

    def _add(self, match: Match, result: DispatchResult):
        underline = Underline(match.source_from, match.source_to, match)
        reason = self._rejection(match)
        if reason is not None:
            logger.debug(f"Rejected match {match.rule_id} at {match.source_from}..{match.source_to}: {reason}")
            result.rejected.append((match, reason))
            return
        underline.state = UnderlineState.ACTIVE
        self._underlines[underline.key] = underline
        result.added.append(underline)

    def _remove(self, predicate: Callable[[Underline], bool], state: UnderlineState,
                result: DispatchResult):
        for key, underline in list(self._underlines.items()):
            if predicate(underline):
                underline.state = state
                del self._underlines[key]
                result.removed.append(underline)

    # -------------------------------------------------------------------------
    # Shortcuts
    # -------------------------------------------------------------------------

    def add(self, match: Match) -> Optional[Underline]:
        result = self.dispatch(effects=(AddUnderline(match),))
        return result.added[0] if result.added else None

    def clear_all(self) -> List[Underline]:
        return self.dispatch(effects=(ClearUnderlines(),)).removed

    def clear_in_range(self, text_range: TextRange) -> List[Underline]:
        return self.dispatch(effects=(ClearUnderlinesInRange(text_range),)).removed

    def ignore(self, text_range: TextRange) -> List[Underline]:
        return self.dispatch(effects=(IgnoreUnderline(text_range),)).removed

    def clear_matching(self, predicate: Callable[[Underline], bool]) -> List[Underline]:
        return self.dispatch(effects=(ClearMatching(predicate),)).removed

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def __iter__(self) -> Iterator[Underline]:
        with self._lock:
            underlines = sorted(self._underlines.values(), key=lambda u: u.key)
        return iter(underlines)

    def __len__(self) -> int:
        return len(self._underlines)

    def ignored_ranges(self) -> List[IgnoredRange]:
        with self._lock:
            return sorted(self._ignored.values(), key=lambda r: (r.source_from, r.source_to))

    def underline_at(self, offset: int) -> List[Underline]:
        """Markers containing ``offset`` (ends included)."""
        return [u for u in self if u.range.contains(offset)]

    def underlines_between(self, start: int, end: int) -> List[Underline]:
        query = TextRange(start, end)
        return [u for u in self if u.range.overlaps(query)]

    def next_underline(self, offset: int) -> Optional[Underline]:
        """First marker starting after ``offset``."""
        for underline in self:
            if underline.source_from > offset:
                return underline
        return None

    def to_list(self) -> List[Dict[str, Any]]:
        return [u.to_dict() for u in self]
