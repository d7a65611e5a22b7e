"""
Check Orchestrator
==================
Runs checks for one document and applies their results to its markers.

Features:
- Debounced automatic checks of the edited lines (threading.Timer)
- Explicit checks of a range, the selection or the whole document
- Small LRU cache of recent results keyed by region text and settings
- Accept / ignore / clear / navigate markers
- Synonym suggestions and personal dictionary additions

Transport failures are logged, kept in the recent-error log and shown as a
notice; markers stay untouched. Offset corruption aborts the check.
"""

import json
import re
import threading
from collections import OrderedDict
from dataclasses import asdict
from typing import Callable, Dict, List, Optional, Tuple

from config_logging import (
    DictionarySyncError,
    LTCheckError,
    RecentErrors,
    SynonymError,
    TransportError,
    ValidationError,
    get_logger,
)
from ltcheck.annotated import AnnotatedText
from ltcheck.config import LTConfig, clamp_auto_check_delay, get_config
from ltcheck.decorations import (
    SPELLING_CATEGORY,
    AddUnderline,
    ClearUnderlines,
    ClearUnderlinesInRange,
    DecorationStore,
    Match,
    Underline,
    UnderlineState,
)
from ltcheck.dictionary import add_word, can_sync, sync_dictionary
from ltcheck.editor import ChangeSet, TextDocument, TextRange
from ltcheck.languagetool.client import CheckerMatch, LanguageToolClient
from ltcheck.languagetool.synonyms import SYNONYMS, SynonymService, sentence_around
from ltcheck.markdown import annotate, parse

__version__ = "1.0.0"

logger = get_logger('ltcheck.orchestrator')

CACHE_SIZE = 10
NOTICE_DURATION_MS = 5000
SYNONYM_CATEGORY = 'SYNONYMS'

STATUS_WORKING = 'working'
STATUS_IDLE = 'idle'


class CheckOrchestrator:
    """
    Drives checks of one document.

    Args:
        document: host document (``TextDocument`` or compatible)
        store: the document's markers
        client: checker client (defaults to a ``LanguageToolClient``)
        config: settings (defaults to the global configuration)
        on_status: called with 'working' / 'idle'
        on_notice: called with a message and a display duration in ms
        timer_factory: ``threading.Timer`` compatible factory for debouncing
    """

    def __init__(self, document: TextDocument, store: DecorationStore,
                 client: Optional[LanguageToolClient] = None,
                 config: Optional[LTConfig] = None,
                 annotate_fn: Callable[[str], AnnotatedText] = annotate,
                 on_status: Optional[Callable[[str], None]] = None,
                 on_notice: Optional[Callable[[str, int], None]] = None,
                 timer_factory: Callable = threading.Timer,
                 recent_errors: Optional[RecentErrors] = None,
                 synonym_services: Optional[Dict[str, SynonymService]] = None,
                 words_api=None):
        self.document = document
        self.store = store
        self.config = config or get_config()
        self.client = client or LanguageToolClient(self.config)
        self.annotate = annotate_fn
        self.on_status = on_status or (lambda status: None)
        self.on_notice = on_notice or (lambda message, duration_ms: None)
        self.timer_factory = timer_factory
        self.recent_errors = recent_errors if recent_errors is not None else RecentErrors()
        self.synonym_services = synonym_services if synonym_services is not None else SYNONYMS
        self.words_api = words_api

        self.status = STATUS_IDLE
        self._pending: Optional[TextRange] = None
        self._timer = None
        self._lock = threading.RLock()
        self._cache: 'OrderedDict[Tuple[str, str], List[Match]]' = OrderedDict()

    # -------------------------------------------------------------------------
    # Automatic checks
    # -------------------------------------------------------------------------

    @property
    def delay_seconds(self) -> float:
        delay_ms = clamp_auto_check_delay(self.config.check.auto_check_delay_ms,
                                          self.config.server.server_url)
        return delay_ms / 1000

    @property
    def pending_range(self) -> Optional[TextRange]:
        return self._pending

    def on_change(self, changes: ChangeSet):
        """Schedule a check of the edited region after the document changed."""
        if not self.config.check.auto_check or not changes.inserted_text().strip():
            return

        with self._lock:
            edited = changes.changed_range()
            if self._pending is not None:
                start = changes.map_pos(self._pending.start, -1)
                end = max(start, changes.map_pos(self._pending.end, 1))
                edited = edited.union(TextRange(start, end))
            self._pending = edited

            if self._timer is not None:
                self._timer.cancel()
            self._timer = self.timer_factory(self.delay_seconds, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def _fire(self):
        with self._lock:
            pending, self._pending = self._pending, None
            self._timer = None
        if pending is None:
            return

        region = self.expand_range(pending)
        try:
            self.run_check(region)
        except LTCheckError as e:
            logger.exception(f"Automatic check aborted: {e}")
            self._report(e)

    def expand_range(self, text_range: TextRange) -> TextRange:
        """Grow a range to whole lines and to the list items it touches."""
        length = self.document.length()
        start = min(text_range.start, length)
        end = min(text_range.end, length)
        start, end = self.document.lines_between(start, end)

        for node in parse(self.document.text()).walk():
            if node.type != 'listItem':
                continue
            if node.start <= start < node.end:
                start = min(start, node.start)
                end = max(end, node.end)
            elif node.start <= end <= node.end:
                end = max(end, node.end)
        return TextRange(start, min(end, length))

    def cancel(self):
        """Drop a scheduled automatic check."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = None
            self._pending = None

    # -------------------------------------------------------------------------
    # Checks
    # -------------------------------------------------------------------------

    def _set_status(self, status: str):
        self.status = status
        self.on_status(status)

    def _report(self, error: LTCheckError):
        server = self.config.server
        self.recent_errors.push(error, settings=self.config.public_dict(),
                                secrets=(server.username, server.api_key))
        self.on_notice(error.message, NOTICE_DURATION_MS)

    def _cache_key(self, text: str) -> Tuple[str, str]:
        settings = asdict(self.config.check)
        settings['server_url'] = self.config.server.server_url
        return text, json.dumps(settings, sort_keys=True, default=str)

    def translate(self, annotated: AnnotatedText, text: str,
                  checker_match: CheckerMatch) -> Optional[Match]:
        """Position a checker match in ``text``; None when it is out of range."""
        if checker_match.offset < 0 or checker_match.end > annotated.length():
            logger.warning(f"Dropping match {checker_match.rule_id} outside the checked text",
                           offset=checker_match.offset, length=checker_match.length)
            return None
        start, end = annotated.to_source_range(checker_match.offset, checker_match.end)
        return Match(
            text=text[start:end],
            source_from=start,
            source_to=end,
            title=checker_match.title,
            message=checker_match.message,
            replacements=tuple(checker_match.replacements),
            category_id=checker_match.category_id,
            rule_id=checker_match.rule_id,
        )

    def check_text(self, text: str) -> List[Match]:
        """Matches of ``text`` in offsets relative to it."""
        key = self._cache_key(text)
        with self._lock:
            if key in self._cache:
                self._cache.move_to_end(key)
                return self._cache[key]

        annotated = self.annotate(text)
        matches = []
        for checker_match in self.client.check(annotated):
            match = self.translate(annotated, text, checker_match)
            if match is not None:
                matches.append(match)

        with self._lock:
            self._cache[key] = matches
            self._cache.move_to_end(key)
            while len(self._cache) > CACHE_SIZE:
                self._cache.popitem(last=False)
        return matches

    def run_check(self, text_range: Optional[TextRange] = None,
                  selection: Optional[TextRange] = None) -> List[Underline]:
        """
        Check a range (or the selection, or the whole document).

        Returns the markers added.
        """
        if text_range is None and selection is not None and not selection.is_empty:
            text_range = selection
        length = self.document.length()
        if text_range is not None:
            text_range = TextRange(min(text_range.start, length), min(text_range.end, length))
            offset = text_range.start
            text = self.document.slice(text_range.start, text_range.end)
        else:
            offset = 0
            text = self.document.text()

        if not text.strip():
            return []

        self._set_status(STATUS_WORKING)
        try:
            with logger.log_operation('run_check', offset=offset, characters=len(text)):
                matches = self.check_text(text)
        except TransportError as e:
            self._report(e)
            return []
        finally:
            self._set_status(STATUS_IDLE)

        effects = [ClearUnderlinesInRange(text_range) if text_range is not None else ClearUnderlines()]
        length = self.document.length()
        for match in matches:
            positioned = match.shifted(offset)
            if positioned.source_to > length:
                logger.warning(f"Dropping match {match.rule_id} beyond the document end",
                               start=positioned.source_from, end=positioned.source_to)
                continue
            effects.append(AddUnderline(positioned))

        result = self.store.dispatch(effects=tuple(effects))
        return result.added

    # -------------------------------------------------------------------------
    # Marker actions
    # -------------------------------------------------------------------------

    def can_accept(self, offset: int, index: int) -> bool:
        underlines = self.store.underline_at(offset)
        return len(underlines) == 1 and 0 <= index < len(underlines[0].match.replacements)

    def accept_replacement(self, offset: int, index: int) -> Underline:
        """Apply replacement ``index`` (0-based) of the single marker at ``offset``."""
        underlines = self.store.underline_at(offset)
        if len(underlines) != 1:
            raise ValidationError("Exactly one suggestion must be at the cursor",
                                  field='offset', offset=offset, found=len(underlines))
        underline = underlines[0]
        replacements = underline.match.replacements
        if not 0 <= index < len(replacements):
            raise ValidationError(f"Suggestion has no replacement #{index + 1}",
                                  field='index', available=len(replacements))

        changes = ChangeSet.replace(underline.source_from, underline.source_to, replacements[index])
        with self._lock:
            self.store.dispatch(effects=(ClearUnderlinesInRange(underline.range, UnderlineState.ACCEPTED),))
            self.document.apply(changes)
            self.store.dispatch(changes=changes)
        return underline

    def ignore(self, text_range: TextRange) -> List[Underline]:
        return self.store.ignore(text_range)

    def clear_all(self) -> List[Underline]:
        return self.store.clear_all()

    def clear_in_range(self, text_range: TextRange) -> List[Underline]:
        return self.store.clear_in_range(text_range)

    def underline_at(self, offset: int) -> List[Underline]:
        return self.store.underline_at(offset)

    def next_underline(self, offset: int) -> Optional[Underline]:
        return self.store.next_underline(offset)

    # -------------------------------------------------------------------------
    # Synonyms and dictionary
    # -------------------------------------------------------------------------

    def request_synonyms(self, selection: TextRange) -> Optional[Underline]:
        """Add a synonym marker for a selected single word."""
        service = self.synonym_services.get(self.config.synonyms.language or '')
        if service is None or selection.is_empty:
            return None
        word = self.document.slice(selection.start, selection.end)
        if re.search(r'[\s.]', word):
            return None

        line = self.document.line_at(selection.start)
        sentence, relative = sentence_around(line.text, line.start, selection)
        try:
            replacements = service.query(sentence, relative)
        except SynonymError as e:
            logger.warning(f"Synonym lookup failed: {e}")
            self._report(e)
            return None

        match = Match(
            text=word,
            source_from=selection.start,
            source_to=selection.end,
            title='Synonyms',
            message='',
            replacements=tuple(replacements),
            category_id=SYNONYM_CATEGORY,
            rule_id=SYNONYM_CATEGORY,
        )
        result = self.store.dispatch(effects=(AddUnderline(match),))
        return result.added[0] if result.added else None

    def add_to_dictionary(self, word: str) -> List[Underline]:
        """Add a word to the personal dictionary and retract its spelling markers."""
        word = word.strip()
        if not word:
            raise ValidationError("Word must not be empty", field='word')
        add_word(self.config, word)

        if can_sync(self.config):
            try:
                sync_dictionary(self.config, self.words_api)
            except DictionarySyncError as e:
                logger.warning(f"Dictionary synchronization failed: {e}")
                self._report(e)

        return self.store.clear_matching(
            lambda u: u.match.category_id == SPELLING_CATEGORY and u.match.text == word)
