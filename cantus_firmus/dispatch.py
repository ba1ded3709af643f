"""Reducer dispatchers.

Each registered reducer gets a `Dispatcher` whose ``dispatch`` computes the
reducer's result and commits it as a full state replacement. Dispatch skips
the merge semantics and the storage persistence of ``set_state``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Mapping

from .models import MethodGroup, Reducer, State

if TYPE_CHECKING:
    from .state.provider import Provider

logger = logging.getLogger(__name__)


@dataclass
class Dispatcher:
    """A reducer paired with the provider it commits to."""

    name: str
    reducer: Reducer
    _provider: Provider = field(repr=False)

    async def dispatch(self, state: State, action: Any = None) -> State:
        """Run the reducer and replace the provider's state with its result.

        Args:
            state: The state handed to the reducer, usually the current state.
            action: The action describing the change.

        Returns:
            The new state.
        """
        new_state = self.reducer(state, action)
        logger.debug("Dispatching reducer %s", self.name)
        return self._provider.commit(new_state, replace=True)


def generate_dispatchers(provider: Provider, reducers: Mapping[str, Reducer]) -> MethodGroup:
    """Create a dispatcher for each reducer, keyed by reducer name."""
    return MethodGroup(
        {name: Dispatcher(name, reducer, provider) for name, reducer in reducers.items()}
    )
