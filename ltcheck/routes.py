"""
ltcheck Flask Routes
====================
HTTP surface for editor integrations.

Endpoints:
- POST   /api/ltcheck/sessions                         - Open a document session
- GET    /api/ltcheck/sessions/<id>                    - Session state and markers
- DELETE /api/ltcheck/sessions/<id>                    - Close a session
- POST   /api/ltcheck/sessions/<id>/edits              - Apply edits (markers follow)
- POST   /api/ltcheck/sessions/<id>/check              - Check a range, the selection or all
- GET    /api/ltcheck/sessions/<id>/underlines         - Markers (optionally at an offset)
- GET    /api/ltcheck/sessions/<id>/underlines/next    - Next marker after an offset
- POST   /api/ltcheck/sessions/<id>/accept             - Apply a replacement
- POST   /api/ltcheck/sessions/<id>/ignore             - Ignore markers in a range
- POST   /api/ltcheck/sessions/<id>/clear              - Clear markers (all or in a range)
- POST   /api/ltcheck/sessions/<id>/synonyms           - Synonyms for the selected word
- POST   /api/ltcheck/sessions/<id>/dictionary         - Add a word to the dictionary
- GET    /api/ltcheck/sessions/<id>/errors             - Recent failures ("copy logs")
- POST   /api/ltcheck/annotate                         - Annotated form of a text
- GET    /api/ltcheck/languages                        - Languages of the server
- GET    /api/ltcheck/health                           - Health check
"""

import time
from functools import wraps
from typing import Any, Dict, Optional

from flask import Blueprint, current_app, g, jsonify, request
from werkzeug.exceptions import BadRequest

from config_logging import LTCheckError, NotFoundError, ValidationError, get_logger
from ltcheck import module_versions
from ltcheck.editor import ChangeSet, TextRange
from ltcheck.languagetool.client import LanguageToolClient
from ltcheck.markdown import annotate
from ltcheck.session import EditorSession, SessionRegistry

__version__ = "1.0.0"

logger = get_logger('ltcheck.routes')

lt_blueprint = Blueprint('ltcheck', __name__)

REGISTRY_KEY = 'ltcheck_registry'


# =============================================================================
# STANDARDIZED ERROR HANDLING DECORATOR
# =============================================================================

def handle_lt_errors(f):
    """Turn errors of a route into the JSON error envelope."""
    @wraps(f)
    def decorated(*args, **kwargs):
        start_time = time.time()
        try:
            result = f(*args, **kwargs)

            elapsed = time.time() - start_time
            if elapsed > 5.0:
                logger.warning(f"Slow ltcheck API call: {f.__name__} took {elapsed:.1f}s")

            return result

        except LTCheckError as e:
            if e.status_code >= 500:
                logger.error(f"{e.code} in {f.__name__}: {e}")
            else:
                logger.warning(f"{e.code} in {f.__name__}: {e}")
            body = e.to_dict()
            body['error']['correlation_id'] = getattr(g, 'correlation_id', 'unknown')
            return jsonify(body), e.status_code
        except BadRequest as e:
            logger.warning(f"Invalid JSON in {f.__name__}: {e}")
            return jsonify({
                'success': False,
                'error': {
                    'code': 'INVALID_JSON',
                    'message': 'Request body must be a JSON object',
                    'correlation_id': getattr(g, 'correlation_id', 'unknown')
                }
            }), 400
        except Exception as e:
            logger.exception(f"Unexpected error in {f.__name__}: {e}")
            return jsonify({
                'success': False,
                'error': {
                    'code': 'INTERNAL_ERROR',
                    'message': 'An unexpected error occurred',
                    'correlation_id': getattr(g, 'correlation_id', 'unknown')
                }
            }), 500

    return decorated


@lt_blueprint.before_request
def assign_correlation_id():
    g.correlation_id = request.headers.get('X-Correlation-ID') or logger.new_correlation_id()


# =============================================================================
# HELPERS
# =============================================================================

def get_registry() -> SessionRegistry:
    registry = current_app.extensions.get(REGISTRY_KEY)
    if registry is None:
        registry = SessionRegistry()
        current_app.extensions[REGISTRY_KEY] = registry
    return registry


def _session(session_id: str) -> EditorSession:
    session = get_registry().get(session_id)
    if session is None:
        raise NotFoundError(f"Unknown session: {session_id}", session=session_id)
    return session


def _body() -> Dict[str, Any]:
    data = request.get_json(force=True) if request.data else {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _int(data: Dict[str, Any], name: str, default: Optional[int] = None) -> int:
    value = data.get(name, default)
    if value is None:
        raise ValidationError(f"Missing '{name}'", field=name)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"'{name}' must be an integer", field=name)


def _range(data: Any, name: str) -> Optional[TextRange]:
    """A ``{"start": .., "end": ..}`` object, or None when absent."""
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ValidationError(f"'{name}' must be an object with start and end", field=name)
    try:
        return TextRange(int(data['start']), int(data['end']))
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid '{name}': {e}", field=name)


def _underline(underline) -> Optional[Dict[str, Any]]:
    return underline.to_dict() if underline is not None else None


# =============================================================================
# SESSIONS
# =============================================================================

@lt_blueprint.route('/sessions', methods=['POST'])
@handle_lt_errors
def create_session():
    data = _body()
    text = data.get('text', '')
    if not isinstance(text, str):
        raise ValidationError("'text' must be a string", field='text')
    session = get_registry().create(text)
    return jsonify({'success': True, 'session': session.to_dict()}), 201


@lt_blueprint.route('/sessions/<session_id>', methods=['GET'])
@handle_lt_errors
def get_session(session_id):
    return jsonify({'success': True, 'session': _session(session_id).to_dict()})


@lt_blueprint.route('/sessions/<session_id>', methods=['DELETE'])
@handle_lt_errors
def close_session(session_id):
    if not get_registry().close(session_id):
        raise NotFoundError(f"Unknown session: {session_id}", session=session_id)
    return jsonify({'success': True})


@lt_blueprint.route('/sessions/<session_id>/edits', methods=['POST'])
@handle_lt_errors
def apply_edits(session_id):
    session = _session(session_id)
    data = _body()
    edits = data.get('edits')
    if not isinstance(edits, list):
        raise ValidationError("'edits' must be a list", field='edits')
    try:
        changes = ChangeSet.from_dicts(edits)
        result = session.apply_edits(changes, _range(data.get('selection'), 'selection'))
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid edits: {e}", field='edits')
    return jsonify({
        'success': True,
        'version': session.document.version,
        'invalidated': [u.to_dict() for u in result.removed],
        'underlines': session.store.to_list(),
    })


@lt_blueprint.route('/sessions/<session_id>/check', methods=['POST'])
@handle_lt_errors
def run_check(session_id):
    session = _session(session_id)
    data = _body()
    added = session.orchestrator.run_check(_range(data.get('range'), 'range'),
                                           _range(data.get('selection'), 'selection'))
    return jsonify({
        'success': True,
        'added': [u.to_dict() for u in added],
        'underlines': session.store.to_list(),
        'notices': session.notices[-1:],
    })


@lt_blueprint.route('/sessions/<session_id>/underlines', methods=['GET'])
@handle_lt_errors
def list_underlines(session_id):
    session = _session(session_id)
    if 'offset' not in request.args:
        underlines = session.store.to_list()
    else:
        offset = _int(request.args, 'offset')
        underlines = [u.to_dict() for u in session.orchestrator.underline_at(offset)]
    return jsonify({'success': True, 'underlines': underlines})


@lt_blueprint.route('/sessions/<session_id>/underlines/next', methods=['GET'])
@handle_lt_errors
def next_underline(session_id):
    session = _session(session_id)
    offset = _int(request.args, 'offset', 0)
    return jsonify({'success': True, 'underline': _underline(session.orchestrator.next_underline(offset))})


@lt_blueprint.route('/sessions/<session_id>/accept', methods=['POST'])
@handle_lt_errors
def accept(session_id):
    session = _session(session_id)
    data = _body()
    underline = session.orchestrator.accept_replacement(_int(data, 'offset'), _int(data, 'index', 0))
    return jsonify({
        'success': True,
        'accepted': underline.to_dict(),
        'text': session.document.text(),
        'underlines': session.store.to_list(),
    })


@lt_blueprint.route('/sessions/<session_id>/ignore', methods=['POST'])
@handle_lt_errors
def ignore(session_id):
    session = _session(session_id)
    text_range = _range(_body().get('range'), 'range')
    if text_range is None:
        raise ValidationError("Missing 'range'", field='range')
    removed = session.orchestrator.ignore(text_range)
    return jsonify({'success': True, 'ignored': [u.to_dict() for u in removed]})


@lt_blueprint.route('/sessions/<session_id>/clear', methods=['POST'])
@handle_lt_errors
def clear(session_id):
    session = _session(session_id)
    text_range = _range(_body().get('range'), 'range')
    if text_range is None:
        removed = session.orchestrator.clear_all()
    else:
        removed = session.orchestrator.clear_in_range(text_range)
    return jsonify({'success': True, 'cleared': len(removed)})


@lt_blueprint.route('/sessions/<session_id>/synonyms', methods=['POST'])
@handle_lt_errors
def synonyms(session_id):
    session = _session(session_id)
    selection = _range(_body().get('selection'), 'selection')
    if selection is None:
        raise ValidationError("Missing 'selection'", field='selection')
    underline = session.orchestrator.request_synonyms(selection)
    return jsonify({'success': True, 'underline': _underline(underline),
                    'notices': session.notices[-1:]})


@lt_blueprint.route('/sessions/<session_id>/dictionary', methods=['POST'])
@handle_lt_errors
def add_to_dictionary(session_id):
    session = _session(session_id)
    word = _body().get('word')
    if not isinstance(word, str):
        raise ValidationError("'word' must be a string", field='word')
    removed = session.orchestrator.add_to_dictionary(word)
    return jsonify({
        'success': True,
        'words': list(session.config.dictionary.words),
        'cleared': len(removed),
    })


@lt_blueprint.route('/sessions/<session_id>/errors', methods=['GET'])
@handle_lt_errors
def recent_errors(session_id):
    session = _session(session_id)
    return jsonify({'success': True, 'errors': session.recent_errors.entries()})


# =============================================================================
# STATELESS
# =============================================================================

@lt_blueprint.route('/annotate', methods=['POST'])
@handle_lt_errors
def annotate_text():
    text = _body().get('text', '')
    if not isinstance(text, str):
        raise ValidationError("'text' must be a string", field='text')
    annotated = annotate(text)
    return jsonify({'success': True, 'annotated': annotated.to_json(),
                    'interpreted': annotated.interpreted()})


@lt_blueprint.route('/languages', methods=['GET'])
@handle_lt_errors
def languages():
    return jsonify({'success': True,
                    'languages': [l.to_dict() for l in LanguageToolClient().languages()]})


@lt_blueprint.route('/health', methods=['GET'])
def health():
    return jsonify({'success': True, 'status': 'ok', 'version': __version__,
                    'sessions': len(get_registry()), 'modules': module_versions()})
