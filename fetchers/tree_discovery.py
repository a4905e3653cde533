"""
Tree discovery: expand a resolved selection into a full selection plan.

Every selected folder is listed recursively in depth-first order. Files get
contiguous ``index`` values in the order they are encountered; that index is
the only ordering key used later when copies are reconciled and moved.
"""

import logging
from typing import Iterator, List, Optional, Set, Tuple

from models import (
    DriveNode,
    FilePlanEntry,
    FolderPlanEntry,
    SelectionPlan,
    normalize_item,
    normalize_wiki_obj_type
)

logger = logging.getLogger('feishu_wiki_migrator.fetchers.tree_discovery')


class TreeDiscovery:
    """Builds a SelectionPlan by traversing the selected part of the drive."""

    def __init__(self, fetcher, context):
        """
        Args:
            fetcher: DriveFetcher used for folder listings
            context: RunContext checked before every listing call and item
        """
        self.fetcher = fetcher
        self.context = context

    def build_selection_plan(self, resolved) -> SelectionPlan:
        """
        Discover folders and files under every selection root.

        Args:
            resolved: ResolvedSelection from the selection resolver

        Returns:
            SelectionPlan with folder entries keyed by token and files in
            discovery order

        Raises:
            TransportError: If a folder listing fails
            MigrationCancelled: If the run is cancelled
        """
        self.context.check()
        plan = SelectionPlan(root_token=resolved.root_token, root_node=resolved.root_node)
        visited: Set[str] = set()

        for node in resolved.selection_roots:
            self.context.check()
            parent_token = node.parent.token if node.parent is not None else None
            if node.is_folder:
                self._record_folder_chain(node.parent, plan)
                self.traverse(node.token, node.name, parent_token, plan, visited)
            else:
                self._record_file(
                    plan,
                    token=node.token,
                    name=node.name,
                    source_type=node.type,
                    parent_token=parent_token or plan.root_token
                )
                self._record_folder_chain(node.parent, plan)

        logger.info(
            f"Discovered {len(plan.folders)} folder(s) and {len(plan.files)} file(s) "
            f"under {plan.root_name}"
        )
        return plan

    def traverse(
        self,
        folder_token: str,
        name: str,
        parent_token: Optional[str],
        plan: SelectionPlan,
        visited: Set[str]
    ) -> None:
        """
        Depth-first, order-preserving traversal of one folder.

        A stack of per-folder item iterators replaces recursion; a folder is
        listed in full when it is entered, and its entry is recorded before
        any of its children.
        """
        stack: List[Tuple[str, Iterator[dict]]] = []

        def enter(token: str, folder_name: str, parent: Optional[str]) -> None:
            self.context.check()
            if token in visited:
                logger.debug(f"Folder already traversed, skipping: {token}")
                return
            visited.add(token)
            if token != plan.root_token:
                plan.folders[token] = FolderPlanEntry(
                    token=token,
                    name=folder_name or token,
                    parent_token=parent or plan.root_token
                )
            items = self.fetcher.fetch_folder_items(token, label=f"Folder listing ({token})")
            stack.append((token, iter(items)))

        enter(folder_token, name, parent_token)

        while stack:
            current_token, items = stack[-1]
            item = next(items, None)
            if item is None:
                stack.pop()
                continue

            self.context.check()
            normalized = normalize_item(item)
            if normalized is None:
                logger.warning(f"Skipping item without a token in folder {current_token}: {item}")
                continue

            if normalized.is_folder:
                enter(normalized.token, normalized.name, current_token)
            else:
                self._record_file(
                    plan,
                    token=normalized.token,
                    name=normalized.name,
                    source_type=normalized.type,
                    parent_token=current_token
                )

    def _record_file(self, plan: SelectionPlan, token: str, name: str, source_type: str, parent_token: str) -> None:
        # A file reachable twice (original and shortcut) is planned once
        if token in plan.files:
            logger.debug(f"File already planned, skipping duplicate: {token}")
            return
        plan.files[token] = FilePlanEntry(
            token=token,
            name=name or token,
            type=normalize_wiki_obj_type(source_type),
            parent_token=parent_token,
            index=len(plan.files),
            source_type=source_type
        )

    def _record_folder_chain(self, node: Optional[DriveNode], plan: SelectionPlan) -> None:
        """Record ``node`` and its ancestors up to, not including, the subtree root."""
        current = node
        while current is not None and current.token != plan.root_token:
            if current.token not in plan.folders:
                plan.folders[current.token] = FolderPlanEntry(
                    token=current.token,
                    name=current.name or current.token,
                    parent_token=current.parent.token if current.parent is not None else plan.root_token
                )
            current = current.parent


__all__ = ['TreeDiscovery']
