"""
Persistence package exposing the JSON run state store.
"""

from .store import RunStateStore, StateFileError

__all__ = ["RunStateStore", "StateFileError"]
