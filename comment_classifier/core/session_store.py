"""
Session Store — lazy singleton registry of active-learning sessions.
====================================================================
The HTTP service keeps one session per name; a session is created the
first time documents are loaded into it and reused afterwards. The
service's sync handlers run in a threadpool, so the registry is locked.
"""
import threading
from typing import Iterable, Optional

from comment_classifier.active_learning.session import ActiveLearningSession, SessionConfig
from comment_classifier.core.documents import Document
from comment_classifier.core.errors import InvalidInputError

DEFAULT_SESSION = "default"

_sessions: dict[str, ActiveLearningSession] = {}
_lock = threading.Lock()


def create_session(
    documents: Iterable[Document],
    name: str = DEFAULT_SESSION,
    config: Optional[SessionConfig] = None,
    test_ids: Optional[Iterable] = None,
) -> ActiveLearningSession:
    """Create (or replace) the session registered under `name`."""
    session = ActiveLearningSession(documents, config=config, test_ids=test_ids)
    with _lock:
        _sessions[name] = session
    return session


def get_session(name: str = DEFAULT_SESSION) -> ActiveLearningSession:
    """
    Raises:
        InvalidInputError: no session under that name
    """
    with _lock:
        session = _sessions.get(name)
    if session is None:
        raise InvalidInputError(f"Unknown session: '{name}'", available=list_sessions())
    return session


def find_session(name: str = DEFAULT_SESSION) -> Optional[ActiveLearningSession]:
    with _lock:
        return _sessions.get(name)


def list_sessions() -> list[str]:
    with _lock:
        return list(_sessions)


def reset() -> None:
    with _lock:
        _sessions.clear()
