"""Redaction of private state before it leaves the provider window."""

from __future__ import annotations

import logging
from typing import Iterable

from .exceptions import RedactionPathError, record_error
from .models import PrivatePath, State

logger = logging.getLogger(__name__)


def _without_path(state: State, path: tuple[str, ...]) -> State:
    """Copy-on-write removal of the last key of a path."""
    copy = dict(state)
    current = copy
    for key in path[:-1]:
        child = current.get(key)
        if not isinstance(child, dict):
            raise RedactionPathError(path, missing_key=key)
        current[key] = dict(child)
        current = current[key]
    current.pop(path[-1], None)
    return copy


def clean_state(state: State, private_paths: Iterable[PrivatePath] | None) -> State:
    """Return a copy of state with every private key and path removed.

    Entries are either top-level keys or key sequences. Dicts along a path
    are copied before the final key is deleted, so the live state is never
    modified. A path through a missing key is logged and skipped.

    Args:
        state: The state to redact.
        private_paths: Keys and paths to remove.

    Returns:
        The redacted copy.
    """
    cleaned = dict(state)
    for entry in private_paths or ():
        if isinstance(entry, str):
            cleaned.pop(entry, None)
            continue

        path = tuple(entry)
        if not path:
            continue
        try:
            cleaned = _without_path(cleaned, path)
        except RedactionPathError as e:
            logger.warning("Skipping private path %s: %s", list(path), e)
            record_error(e)

    return cleaned
