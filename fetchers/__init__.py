"""Fetchers package for listing drive folders and discovering selected subtrees."""

from .drive_fetcher import DriveFetcher
from .tree_discovery import TreeDiscovery

__all__ = [
    'DriveFetcher',
    'TreeDiscovery'
]
