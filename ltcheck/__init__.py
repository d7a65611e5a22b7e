"""
ltcheck - LanguageTool checking for Markdown editors
====================================================
Version: 1.0.0

Checks Markdown documents with a LanguageTool server and keeps the results
as live markers on the document:
- markdown: position-preserving parser and annotated-text builder
- languagetool: check API, premium word list and synonym clients
- decorations: markers that follow edits
- orchestrator: debounced checks, accept / ignore / synonyms / dictionary
- dictionary: three-way synchronization of the personal dictionary
- session / routes: document sessions and their Flask API

Submodules are imported on first attribute access.
"""

import importlib

__version__ = "1.0.0"

SUBMODULES = (
    'annotated',
    'config',
    'decorations',
    'dictionary',
    'editor',
    'languagetool',
    'markdown',
    'orchestrator',
    'routes',
    'session',
)


def __getattr__(name):
    if name in SUBMODULES:
        module = importlib.import_module(f'{__name__}.{name}')
        globals()[name] = module
        return module
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__():
    return sorted(set(globals()) | set(SUBMODULES))


def module_versions():
    """``{submodule: version}``; a submodule that fails to import maps to its error."""
    versions = {}
    for name in SUBMODULES:
        try:
            versions[name] = getattr(__getattr__(name), '__version__', __version__)
        except ImportError as e:
            versions[name] = f"unavailable: {e}"
    return versions
