"""
Hierarchy Mapper for drive folders to wiki nodes.

Orders the planned folder entries so that every folder's wiki node is created
after the node of its parent. Folders directly under the subtree root become
top-level nodes of the space.
"""

import logging
from collections import defaultdict
from typing import Dict, Iterator, List, Optional

from errors import PlanError
from models import FolderPlanEntry


class FolderHierarchyMapper:
    """
    Level-by-level topological ordering of folder plan entries.

    Each entry depends on at most one other entry (its parent). Entries whose
    parent is the subtree root form the first level; creating an entry
    unlocks its children for the next level.
    """

    def __init__(
        self,
        folders: Dict[str, FolderPlanEntry],
        root_token: str,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the hierarchy mapper.

        Args:
            folders: Folder plan entries keyed by token, in plan order
            root_token: Token of the subtree root
            logger: Optional logger instance
        """
        self.folders = folders
        self.root_token = root_token
        self.logger = logger or logging.getLogger('feishu_wiki_migrator.importers.hierarchy_mapper')

    def is_top_level(self, entry: FolderPlanEntry) -> bool:
        return not entry.parent_token or entry.parent_token == self.root_token

    def iter_levels(self) -> Iterator[List[FolderPlanEntry]]:
        """
        Yield folder entries level by level, preserving plan order in a level.

        The caller must create every entry of a level before asking for the
        next one.

        Raises:
            PlanError: If some entries can never become ready (a cycle or a
                parent that is not part of the plan)
        """
        position = {token: index for index, token in enumerate(self.folders)}
        pending_deps: Dict[str, int] = {}
        dependents: Dict[str, List[str]] = defaultdict(list)
        ready: List[str] = []

        for token, entry in self.folders.items():
            if self.is_top_level(entry):
                pending_deps[token] = 0
                ready.append(token)
            else:
                pending_deps[token] = 1
                dependents[entry.parent_token].append(token)

        emitted = 0
        level = 0
        while ready:
            level += 1
            ready.sort(key=position.__getitem__)
            batch = [self.folders[token] for token in ready]
            self.logger.debug(f"Folder level {level}: {len(batch)} node(s)")
            yield batch
            emitted += len(batch)

            unlocked = []
            for entry in batch:
                for child in dependents.get(entry.token, []):
                    pending_deps[child] -= 1
                    if pending_deps[child] == 0:
                        unlocked.append(child)
            ready = unlocked

        if emitted < len(self.folders):
            unresolved = [token for token, count in pending_deps.items() if count > 0]
            self.logger.error(
                f"Cannot order {len(unresolved)} folder(s): parents are missing or cyclic: "
                f"{', '.join(unresolved)}"
            )
            raise PlanError(
                f"Wiki node creation cannot make progress; {len(unresolved)} folder(s) have "
                f"unresolvable parents",
                unresolved=unresolved
            )

    def ordered(self) -> List[FolderPlanEntry]:
        """All entries flattened in creation order."""
        return [entry for level in self.iter_levels() for entry in level]


__all__ = ['FolderHierarchyMapper']
