"""Testing utilities for cantus_firmus.

Mock window adapters for unit testing without spawning processes. For the
shared medium, use `cantus_firmus.storage.MemoryMedium`.
"""

from cantus_firmus.testing.mock_windows import MockWindowHandle, MockWindowSpawner

__all__ = [
    "MockWindowHandle",
    "MockWindowSpawner",
]
