"""Getter and setter factories.

Builds the accessor registry for a state shape: one getter and one setter
per top-level key (``getCount``/``setCount``) and, when enabled, per nested
path (``getNested_value``/``setNested_value``). Generated accessors take the
provider as their first argument and are bound with `bind_methods`.
"""

from __future__ import annotations

import logging
from functools import partial
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterable, Mapping, Sequence

from .exceptions import OverwriteConflictError
from .models import MethodGroup, OverwriteProtection, State, StatePath
from .paths import (
    format_state_name,
    get_nested_routes,
    get_nested_value,
    join_path,
    normalize_names,
    set_nested_value,
)

if TYPE_CHECKING:
    from .models import Options
    from .state.provider import Provider

logger = logging.getLogger(__name__)

Getter = Callable[["Provider"], Any]
Setter = Callable[..., Awaitable[State]]


def bind_methods(methods: Mapping[str, Callable[..., Any]], owner: Any) -> MethodGroup:
    """Bind each method to an owner passed as the first argument."""
    return MethodGroup({name: partial(method, owner) for name, method in methods.items()})


# =============================================================================
# Getters
# =============================================================================


def _key_getter(key: str) -> Getter:
    def getter(provider: Provider) -> Any:
        return provider.state.get(key)

    return getter


def _path_getter(path: StatePath) -> Getter:
    def getter(provider: Provider) -> Any:
        return get_nested_value(provider.state, path, default=None)

    return getter


def create_state_getters(
    state: State,
    ignored_names: Iterable[str | Sequence[str]] | None = None,
    include_nested: bool = True,
) -> dict[str, Getter]:
    """Create a getter for every key (and nested path) of a state shape.

    Getters read the provider's live state on every call rather than a
    value captured when they were created.

    Args:
        state: The initial state whose shape defines the getters.
        ignored_names: Keys or paths (joined with ``_`` or as sequences)
            that get no getter.
        include_nested: Whether nested paths get getters too.

    Returns:
        Mapping of accessor name to unbound getter.
    """
    ignored = normalize_names(ignored_names)
    getters: dict[str, Getter] = {}

    for key in state:
        name = format_state_name(key, "get")
        if name and key not in ignored:
            getters[name] = _key_getter(key)

    if include_nested:
        for path in get_nested_routes(state):
            joined = join_path(path)
            name = format_state_name(joined, "get")
            if name and joined not in ignored:
                getters[name] = _path_getter(path)

    return getters


# =============================================================================
# Setters
# =============================================================================


def _key_setter(key: str) -> Setter:
    async def setter(
        provider: Provider,
        value: Any,
        callback: Callable[[State], Any] | None = None,
    ) -> State:
        if callable(value):
            return await provider.set_state(value, callback)
        return await provider.set_state({key: value}, callback)

    return setter


def _path_setter(path: StatePath) -> Setter:
    async def setter(
        provider: Provider,
        value: Any,
        callback: Callable[[State], Any] | None = None,
    ) -> State:
        if callable(value):
            return await provider.set_state(value, callback)
        new_state = set_nested_value(provider.state, path, value)
        return await provider.set_state(new_state, callback)

    return setter


def create_state_setters(
    state: State,
    ignored_names: Iterable[str | Sequence[str]] | None = None,
    include_nested: bool = False,
) -> dict[str, Setter]:
    """Create a setter for every key (and nested path) of a state shape.

    A setter takes ``(value, callback=None)`` once bound and returns the
    new state. A callable value is treated as an updater
    ``prev_state -> partial_state`` and handed to ``set_state`` unchanged.

    Args:
        state: The initial state whose shape defines the setters.
        ignored_names: Keys or paths that get no setter.
        include_nested: Whether nested paths get setters too.

    Returns:
        Mapping of accessor name to unbound setter coroutine function.
    """
    ignored = normalize_names(ignored_names)
    setters: dict[str, Setter] = {}

    for key in state:
        name = format_state_name(key, "set")
        if name and key not in ignored:
            setters[name] = _key_setter(key)

    if include_nested:
        for path in get_nested_routes(state):
            joined = join_path(path)
            name = format_state_name(joined, "set")
            if name and joined not in ignored:
                setters[name] = _path_setter(path)

    return setters


# =============================================================================
# Override Policy
# =============================================================================


def apply_override_policy(
    generated: Mapping[str, Callable[..., Any]],
    custom: Mapping[str, Callable[..., Any]],
    *,
    allow_overwrite: bool = True,
    protection_level: int = OverwriteProtection.WARN,
    development_warnings: bool = True,
) -> dict[str, Callable[..., Any]]:
    """Merge custom setters over generated ones.

    When overwriting is not allowed, colliding custom setters are dropped
    and the generated setter is kept.

    Raises:
        OverwriteConflictError: On a collision with protection level 2 or more.
    """
    if allow_overwrite:
        return {**generated, **custom}

    kept: dict[str, Callable[..., Any]] = {}
    for name, method in custom.items():
        if name not in generated:
            kept[name] = method
            continue

        if protection_level >= OverwriteProtection.STRICT:
            raise OverwriteConflictError(name, protection_level=protection_level)
        if protection_level == OverwriteProtection.WARN and development_warnings:
            logger.warning(
                "The user defined setter '%s' was blocked from overwriting a "
                "dynamically generated setter of the same name. Set "
                "allow_setter_overwrite=True to change this behavior.",
                name,
            )

    return {**generated, **kept}


def build_accessors(
    state: State,
    options: Options,
    *,
    custom_getters: Mapping[str, Callable[..., Any]] | None = None,
    custom_setters: Mapping[str, Callable[..., Any]] | None = None,
    ignored_getters: Iterable[str | Sequence[str]] | None = None,
    ignored_setters: Iterable[str | Sequence[str]] | None = None,
) -> tuple[dict[str, Callable[..., Any]], dict[str, Callable[..., Any]]]:
    """Build the unbound getter and setter registries for a state shape.

    Returns:
        Tuple of (getters, setters).
    """
    custom_getters = dict(custom_getters or {})
    custom_setters = dict(custom_setters or {})

    if options.dynamic_getters:
        getters = {
            **create_state_getters(state, ignored_getters, options.nested_getters),
            **custom_getters,
        }
    else:
        getters = custom_getters

    if options.dynamic_setters:
        generated = create_state_setters(state, ignored_setters, options.nested_setters)
        setters = apply_override_policy(
            generated,
            custom_setters,
            allow_overwrite=options.allow_setter_overwrite,
            protection_level=options.overwrite_protection_level,
            development_warnings=options.development_warnings,
        )
    else:
        setters = custom_setters

    logger.debug("Built %d getters and %d setters", len(getters), len(setters))
    return getters, setters
