"""
Editor Session
==============
One open document with its markers and checker.

Edits go through ``apply_edits``: the document changes, the markers are
remapped (or invalidated) in the same step, and an automatic check of the
edited lines is scheduled.
"""

import threading
import uuid
from typing import Any, Callable, Dict, List, Optional

from config_logging import RecentErrors, get_logger
from ltcheck.config import LTConfig, get_config
from ltcheck.decorations import DecorationStore
from ltcheck.editor import ChangeSet, TextDocument, TextRange
from ltcheck.markdown import StructureIndex
from ltcheck.orchestrator import CheckOrchestrator

__version__ = "1.0.0"

logger = get_logger('ltcheck.session')


class EditorSession:
    """
    A document, its markers and the orchestrator checking it.

    Keyword arguments not listed here are passed to ``CheckOrchestrator``.
    """

    def __init__(self, text: str = '', config: Optional[LTConfig] = None,
                 session_id: Optional[str] = None, **orchestrator_kwargs):
        self.id = session_id or uuid.uuid4().hex[:12]
        self.config = config or get_config()
        self.document = TextDocument(text)
        self.recent_errors = orchestrator_kwargs.pop('recent_errors', None) or RecentErrors()
        self.notices: List[Dict[str, Any]] = []
        self._structure: Optional[StructureIndex] = None
        self._structure_version = -1
        self._lock = threading.RLock()

        self.store = DecorationStore(classify=self.classify,
                                     dictionary=lambda: self.config.dictionary.words)
        orchestrator_kwargs.setdefault('on_notice', self._notice)
        self.orchestrator = CheckOrchestrator(self.document, self.store, config=self.config,
                                              recent_errors=self.recent_errors,
                                              **orchestrator_kwargs)

    def _notice(self, message: str, duration_ms: int):
        self.notices.append({'message': message, 'duration_ms': duration_ms})

    def classify(self, pos: int) -> str:
        """Structural classes at ``pos`` in the current document version."""
        with self._lock:
            if self._structure is None or self._structure_version != self.document.version:
                self._structure = StructureIndex(self.document.text())
                self._structure_version = self.document.version
            return self._structure.classify(pos)

    def apply_edits(self, changes: ChangeSet, selection: Optional[TextRange] = None):
        """Apply user edits and keep the markers in step."""
        with self._lock:
            self.document.apply(changes)
            result = self.store.dispatch(changes=changes, selection=selection)
        if result.removed:
            logger.debug(f"{len(result.removed)} markers invalidated by edit", session=self.id)
        self.orchestrator.on_change(changes)
        return result

    def close(self):
        self.orchestrator.cancel()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'version': self.document.version,
            'length': self.document.length(),
            'status': self.orchestrator.status,
            'underlines': self.store.to_list(),
        }


class SessionRegistry:
    """Thread-safe map of open sessions."""

    def __init__(self, factory: Callable[..., EditorSession] = EditorSession):
        self.factory = factory
        self._sessions: Dict[str, EditorSession] = {}
        self._lock = threading.Lock()

    def create(self, text: str = '', **kwargs) -> EditorSession:
        session = self.factory(text, **kwargs)
        with self._lock:
            self._sessions[session.id] = session
        logger.info("Session opened", session=session.id, characters=len(text))
        return session

    def get(self, session_id: str) -> Optional[EditorSession]:
        with self._lock:
            return self._sessions.get(session_id)

    def close(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.close()
        return True

    def __len__(self) -> int:
        return len(self._sessions)
