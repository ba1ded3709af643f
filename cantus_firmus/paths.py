"""Path discovery and accessor naming.

Walks a state mapping to enumerate nested paths, and turns keys or paths
into accessor names such as ``setCount`` or ``getNested_value``.
"""

from __future__ import annotations

from typing import Any, Iterable, Sequence

from .models import State, StatePath

PATH_SEPARATOR = "_"

_MISSING = object()


def format_state_name(name: str, prefix: str = "") -> str | None:
    """Capitalize a key and prepend a prefix.

    Keys that already start with a character equal to its own uppercase form
    (an uppercase letter, an underscore, a digit) return None, which means
    no accessor is generated for them.

    Args:
        name: A state key or ``_``-joined path.
        prefix: Verb to prepend, usually ``"get"`` or ``"set"``.

    Returns:
        The accessor name, or None when the key opts out.
    """
    if not name or name[0] == name[0].upper():
        return None
    return prefix + name[0].upper() + name[1:]


def join_path(path: str | Sequence[str]) -> str:
    """Join a path into its ``_``-separated name. Plain keys pass through."""
    if isinstance(path, str):
        return path
    return PATH_SEPARATOR.join(path)


def get_nested_routes(state: State) -> list[StatePath]:
    """Enumerate every nested path in a state mapping.

    Paths to intermediate dicts are included along with their leaves. Lists
    and non-dict values end the traversal. Top-level keys are not paths.

    Example:
        >>> get_nested_routes({"a": 1, "b": {"c": {"d": 2}}})
        [('b', 'c'), ('b', 'c', 'd')]
    """
    paths: list[StatePath] = []

    def traverse(element: Any, current: StatePath) -> None:
        if len(current) > 1:
            paths.append(current)
        if not isinstance(element, dict):
            return
        for key in element:
            traverse(element[key], current + (key,))

    traverse(state, ())
    return paths


def get_nested_value(state: State, path: Sequence[str], default: Any = _MISSING) -> Any:
    """Read the value at a path.

    Raises:
        KeyError: If a key along the path is missing and no default is given.
    """
    current: Any = state
    for key in path:
        if not isinstance(current, dict) or key not in current:
            if default is _MISSING:
                raise KeyError(key)
            return default
        current = current[key]
    return current


def set_nested_value(state: State, path: Sequence[str], value: Any) -> State:
    """Return a copy of state with the value at path replaced.

    Every dict along the path is shallow-copied; siblings keep their
    references and the input is left untouched.
    """
    if not path:
        raise ValueError("path must contain at least one key")

    copy = dict(state)
    current = copy
    for key in path[:-1]:
        child = current.get(key)
        current[key] = dict(child) if isinstance(child, dict) else {}
        current = current[key]
    current[path[-1]] = value
    return copy


def normalize_names(names: Iterable[str | Sequence[str]] | None) -> set[str]:
    """Turn a list of keys and paths into the set of joined names."""
    return {join_path(name) for name in names or ()}
