"""State management package.

`CantusFirmus` configures a state and builds a `Provider`, which owns the
state at runtime and exposes its accessors, methods and dispatchers.
"""

from cantus_firmus.state.builder import CantusFirmus
from cantus_firmus.state.provider import RESERVED_NAMES, Provider, check_reserved

__all__ = [
    "CantusFirmus",
    "Provider",
    "RESERVED_NAMES",
    "check_reserved",
]
