"""Window identity adapters."""

from __future__ import annotations

import os

WINDOW_NAME_ENV = "CANTUS_WINDOW_NAME"
WINDOW_FEATURES_ENV = "CANTUS_WINDOW_FEATURES"


class ProcessIdentity:
    """Window name of the current process.

    Stored in the ``CANTUS_WINDOW_NAME`` environment variable, which is how
    `SubprocessWindowSpawner` names the children it starts.
    """

    def __init__(self, env_var: str = WINDOW_NAME_ENV) -> None:
        self.env_var = env_var

    @property
    def name(self) -> str | None:
        return os.environ.get(self.env_var) or None

    @name.setter
    def name(self, value: str | None) -> None:
        if value:
            os.environ[self.env_var] = value
        else:
            os.environ.pop(self.env_var, None)

    def __repr__(self) -> str:
        return f"ProcessIdentity(name={self.name!r})"


class StaticIdentity:
    """Window name held in memory, for tests and embedded hosts."""

    def __init__(self, name: str | None = None) -> None:
        self.name = name

    def __repr__(self) -> str:
        return f"StaticIdentity(name={self.name!r})"
