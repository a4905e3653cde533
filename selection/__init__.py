"""Drive tree state and selection resolution."""

from .selection_store import DriveTreeStore
from .resolver import ResolvedSelection, resolve_selection

__all__ = [
    'DriveTreeStore',
    'ResolvedSelection',
    'resolve_selection'
]
