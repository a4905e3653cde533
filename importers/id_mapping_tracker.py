"""
ID mapping tracker for Drive to Wiki import.

This module tracks the mapping between drive folder tokens and the wiki node
tokens created for them during the import process.
"""

import logging
from typing import Dict, Any, Optional


class IdMappingTracker:
    """Tracks mappings between drive folder tokens and wiki node tokens."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        """
        Initialize ID mapping tracker.

        Args:
            logger: Optional logger instance (defaults to module logger)
        """
        self.logger = logger or logging.getLogger('feishu_wiki_migrator.importers.id_mapping_tracker')

        # Mapping: drive folder token -> wiki node token
        self._folder_to_node: Dict[str, str] = {}

        # Reverse mapping: wiki node token -> drive folder token
        self._node_to_folder: Dict[str, str] = {}

        # Space mappings: subtree root token -> wiki space id
        self._space_mappings: Dict[str, str] = {}

        self.logger.debug("Initialized IdMappingTracker")

    def add_node_mapping(self, folder_token: str, node_token: str) -> None:
        """
        Store mapping for a drive folder to its wiki node.

        Args:
            folder_token: Drive folder token
            node_token: Created wiki node token
        """
        self._folder_to_node[folder_token] = node_token
        self._node_to_folder[node_token] = folder_token

        self.logger.debug(f"Node mapping added: {folder_token} -> {node_token}")

    def add_space_mapping(self, root_token: str, space_id: str) -> None:
        """
        Store mapping for a subtree root to its wiki space.

        Args:
            root_token: Drive token of the subtree root
            space_id: Wiki space id
        """
        self._space_mappings[root_token] = space_id
        self.logger.debug(f"Space mapping added: {root_token} -> space:{space_id}")

    def get_node_token(self, folder_token: str) -> Optional[str]:
        """
        Get wiki node token for a drive folder token.

        Returns:
            Wiki node token or None if not found
        """
        return self._folder_to_node.get(folder_token)

    def get_folder_token(self, node_token: str) -> Optional[str]:
        return self._node_to_folder.get(node_token)

    def get_space_id(self, root_token: str) -> Optional[str]:
        return self._space_mappings.get(root_token)

    def get_all_mappings(self) -> Dict[str, Any]:
        """
        Get complete mapping structure.

        Returns:
            Dict with 'nodes', 'spaces' keys containing all mappings
        """
        return {
            'nodes': dict(self._folder_to_node),
            'spaces': dict(self._space_mappings)
        }

    def get_statistics(self) -> Dict[str, int]:
        return {
            'total_nodes': len(self._folder_to_node),
            'total_spaces': len(self._space_mappings)
        }

    def node_exists(self, folder_token: str) -> bool:
        """
        Check if a drive folder has been mapped.

        Args:
            folder_token: Drive folder token

        Returns:
            True if mapping exists
        """
        return folder_token in self._folder_to_node

    def __len__(self) -> int:
        return len(self._folder_to_node)

    def __contains__(self, folder_token: str) -> bool:
        return self.node_exists(folder_token)


__all__ = ['IdMappingTracker']
