"""
Drive tree state for one browsing session.

The store owns every node it creates. Roots are the user's drive root and any
shared folders; children are attached lazily as folders are listed. Selection
is tri-state: checking a node checks its whole subtree, and ancestors show
``selected`` when all of their children are selected or ``indeterminate`` when
only some are.
"""

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from models import FOLDER_TYPE, DriveNode, SelectionSummary, normalize_item

logger = logging.getLogger('feishu_wiki_migrator.selection.selection_store')


class DriveTreeStore:
    """Node forest with selection propagation and a single selected root."""

    def __init__(self):
        self.roots: List[DriveNode] = []
        self.selected_root_token: Optional[str] = None
        self._nodes: List[DriveNode] = []
        self._root_tokens = set()
        self._listeners: List[Callable[[SelectionSummary], None]] = []

    @property
    def nodes(self) -> List[DriveNode]:
        """All registered nodes in registration order."""
        return list(self._nodes)

    def on_change(self, callback: Callable[[SelectionSummary], None]) -> None:
        """Register a listener called with the summary after selection changes."""
        self._listeners.append(callback)

    def reset(self) -> None:
        """Drop every node and the current selection."""
        self.roots = []
        self._nodes = []
        self._root_tokens.clear()
        self.selected_root_token = None
        self._notify()

    def add_root(self, token: str, name: Optional[str] = None, node_type: str = FOLDER_TYPE) -> Optional[DriveNode]:
        """
        Add a top-level folder to the forest.

        Args:
            token: Folder token
            name: Display name (defaults to the token)
            node_type: Node type, ``folder`` unless told otherwise

        Returns:
            The new root node, or None if the token is empty or already present
        """
        if not token:
            logger.warning(f"Invalid folder token: {token!r}")
            return None
        if token in self._root_tokens:
            logger.warning(f"Folder already in tree: {token}")
            return None

        node = self._register(DriveNode(token=token, name=name or token, type=node_type or FOLDER_TYPE))
        self._root_tokens.add(token)
        self.roots.append(node)
        self._notify()
        return node

    def attach_children(self, node: DriveNode, items: Iterable[Dict[str, Any]]) -> List[DriveNode]:
        """
        Replace a folder's children with normalized listing items.

        Items without a resolvable token are skipped. Children of a selected
        folder start out selected.

        Args:
            node: Folder node that was listed
            items: Raw listing items

        Returns:
            The attached child nodes
        """
        for old_child in node.children:
            self._unregister_subtree(old_child)
        node.children = []

        skipped = 0
        for item in items:
            normalized = normalize_item(item)
            if normalized is None:
                skipped += 1
                continue
            child = self._register(DriveNode(
                token=normalized.token,
                name=normalized.name,
                type=normalized.type,
                parent=node,
                raw=item
            ))
            node.children.append(child)
            if node.selected:
                self._set_selection(child, True)

        if skipped:
            logger.warning(f"Skipped {skipped} item(s) without a token in {node.name}")

        node.loaded = True
        self._update_parent_selection(node)
        self._refresh_selected_root()
        self._notify()
        return list(node.children)

    def toggle(self, node: DriveNode, checked: bool) -> bool:
        """
        Check or uncheck a node and its whole subtree.

        A check under a different tree root than the current selection is
        rejected and leaves all flags untouched.

        Returns:
            True if the change was applied
        """
        root_token = node.root().token
        if checked and self.selected_root_token and self.selected_root_token != root_token:
            logger.warning(
                f"Only one root folder can be selected at a time "
                f"(current root: {self.selected_root_token}, attempted root: {root_token})"
            )
            return False

        if checked and not self.selected_root_token:
            self.selected_root_token = root_token

        self._set_selection(node, checked)
        self._update_parent_selection(node.parent)
        self._refresh_selected_root()
        self._notify()
        return True

    def clear_selection(self) -> None:
        for node in self._nodes:
            node.selected = False
            node.indeterminate = False
        self.selected_root_token = None
        self._notify()

    def collapse_all(self) -> None:
        for node in self._nodes:
            node.expanded = False

    def selection_roots(self) -> List[DriveNode]:
        """Selected nodes that have no selected ancestor."""
        return [node for node in self._nodes if node.selected and not node.has_selected_ancestor()]

    def selected_nodes(self) -> List[DriveNode]:
        return [node for node in self._nodes if node.selected]

    def find(self, token: str) -> Optional[DriveNode]:
        """Find the first registered node with ``token``."""
        for node in self._nodes:
            if node.token == token:
                return node
        return None

    def find_root(self, token: Optional[str]) -> Optional[DriveNode]:
        for node in self.roots:
            if node.token == token:
                return node
        return None

    def summary(self) -> SelectionSummary:
        """Counts of selected folders and files, labelled with the selected root."""
        selected = self.selected_nodes()
        if not selected:
            return SelectionSummary()

        folder_count = sum(1 for node in selected if node.is_folder)
        root_node = self.find_root(self.selected_root_token)
        root_label = root_node.name if root_node else self.selected_root_token
        return SelectionSummary(
            root_label=root_label,
            folder_count=folder_count,
            file_count=len(selected) - folder_count
        )

    def _register(self, node: DriveNode) -> DriveNode:
        self._nodes.append(node)
        return node

    def _unregister_subtree(self, node: DriveNode) -> None:
        doomed = {id(n) for n in node.iter_descendants(include_self=True)}
        self._nodes = [n for n in self._nodes if id(n) not in doomed]

    def _set_selection(self, node: DriveNode, selected: bool) -> None:
        for current in node.iter_descendants(include_self=True):
            current.selected = bool(selected)
            current.indeterminate = False

    def _update_parent_selection(self, node: Optional[DriveNode]) -> None:
        """Recompute flags from children, walking up to the tree root."""
        while node is not None and node.children:
            total = len(node.children)
            selected_count = sum(1 for child in node.children if child.selected)
            indeterminate_count = sum(1 for child in node.children if child.indeterminate)

            if selected_count == total:
                node.selected, node.indeterminate = True, False
            elif selected_count == 0 and indeterminate_count == 0:
                node.selected, node.indeterminate = False, False
            else:
                node.selected, node.indeterminate = False, True

            node = node.parent

    def _refresh_selected_root(self) -> None:
        selected = self.selected_nodes()
        self.selected_root_token = selected[0].root().token if selected else None

    def _notify(self) -> None:
        if not self._listeners:
            return
        summary = self.summary()
        for listener in self._listeners:
            listener(summary)


__all__ = ['DriveTreeStore']
