"""Shared medium adapters.

`FileStore` shares state between processes through a directory of JSON
files. `MemoryMedium` shares it between windows living in one process.
Both implement `cantus_firmus.ports.SharedChannel`.
"""

from cantus_firmus.storage.file_store import FileStore
from cantus_firmus.storage.memory_store import MemoryMedium, MemoryStore

__all__ = [
    "FileStore",
    "MemoryMedium",
    "MemoryStore",
]
