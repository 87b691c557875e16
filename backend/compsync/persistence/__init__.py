"""
Persistence helpers: atomic JSON files and the debounced saver.
"""

from .atomic import atomic_write_json, read_json
from .errors import LoadError, PersistenceError, SaveError
from .saver import DebouncedSaver

__all__ = [
    "atomic_write_json",
    "read_json",
    "DebouncedSaver",
    "PersistenceError",
    "LoadError",
    "SaveError",
]
