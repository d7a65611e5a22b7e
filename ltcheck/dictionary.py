"""
Dictionary Reconciliation
=========================
Three-way merge of the personal dictionary with the premium account's word
list, using the snapshot taken at the last successful synchronization to tell
deletions from additions on either side.
"""

from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Set

from config_logging import DictionarySyncError, LTCheckError, get_logger
from ltcheck.config import LTConfig

__version__ = "1.0.0"

logger = get_logger('ltcheck.dictionary')


def sort_words(words: Iterable[str]) -> List[str]:
    """Deduplicated, sorted case-insensitively."""
    return sorted(set(words), key=lambda w: (w.casefold(), w))


@dataclass
class DictionarySnapshot:
    local: Set[str] = field(default_factory=set)
    remote: Set[str] = field(default_factory=set)
    last_synced: Set[str] = field(default_factory=set)


@dataclass
class ReconcileResult:
    merged: List[str]
    deleted_remote: List[str]
    added_remote: List[str]
    changed: bool


class DictionaryReconciler:
    """
    Merges a local word list with the remote one.

    Args:
        words_api: object with ``list_words``, ``add_word`` and ``delete_word``
    """

    def __init__(self, words_api):
        self.words_api = words_api

    def _call(self, step: str, word: Optional[str], func: Callable, *args):
        try:
            return func(*args)
        except LTCheckError as e:
            raise DictionarySyncError(
                f"Dictionary synchronization failed at '{step}': {e.message}",
                step=step, word=word) from e

    def reconcile(self, local: Iterable[str], last_synced: Iterable[str]) -> ReconcileResult:
        local = set(local)
        last_synced = set(last_synced)
        remote = set(self._call('list', None, self.words_api.list_words))
        snapshot = DictionarySnapshot(local, remote, last_synced)

        # Removed locally since the last sync and still present remotely
        local_removed = (snapshot.last_synced - snapshot.local) & snapshot.remote
        for word in sort_words(local_removed):
            self._call('delete', word, self.words_api.delete_word, word)

        # Removed remotely since the last sync
        remote_removed = snapshot.last_synced - snapshot.remote

        remote_working = snapshot.remote - local_removed
        local_working = snapshot.local - remote_removed

        missing_remote = local_working - remote_working
        for word in sort_words(missing_remote):
            self._call('add', word, self.words_api.add_word, word)

        merged = sort_words(remote_working | local_working)
        logger.info(f"Dictionary synchronized: {len(merged)} words",
                    deleted=len(local_removed), added=len(missing_remote))
        return ReconcileResult(
            merged=merged,
            deleted_remote=sort_words(local_removed),
            added_remote=sort_words(missing_remote),
            changed=len(merged) != len(snapshot.local),
        )


def can_sync(config: LTConfig) -> bool:
    """Synchronization needs the option, a premium endpoint and credentials."""
    return (config.dictionary.sync
            and config.server.endpoint.name == 'premium'
            and config.server.has_credentials)


def sync_dictionary(config: LTConfig, words_api=None) -> bool:
    """
    Bring ``config.dictionary`` up to date.

    Returns whether the number of local words changed. Without synchronization
    the local list is only deduplicated and sorted.
    """
    dictionary = config.dictionary
    if not can_sync(config):
        normalized = sort_words(dictionary.words)
        changed = len(normalized) != len(dictionary.words)
        dictionary.words = normalized
        return changed

    if words_api is None:
        from ltcheck.languagetool.words import WordListClient
        words_api = WordListClient(config)

    result = DictionaryReconciler(words_api).reconcile(dictionary.words, dictionary.remote_snapshot)
    dictionary.words = result.merged
    dictionary.remote_snapshot = list(result.merged)
    return result.changed


def add_word(config: LTConfig, word: str) -> bool:
    """Add ``word`` to the local dictionary; False if it was already there."""
    word = word.strip()
    if not word or word in config.dictionary.words:
        return False
    config.dictionary.words = sort_words(config.dictionary.words + [word])
    return True
