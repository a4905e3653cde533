"""Partition a selection plan into migratable and skipped files."""

import logging
from typing import FrozenSet, Optional

from errors import ValidationError
from models import CopyPlan, SelectionPlan, normalize_wiki_obj_type

logger = logging.getLogger('feishu_wiki_migrator.orchestrator.migration_planner')


class MigrationPlanner:
    """Classifies discovered files against the wiki's supported object types."""

    def __init__(self, supported_types: FrozenSet[str]):
        self.supported_types = frozenset(supported_types)

    def is_supported(self, file_type: Optional[str]) -> bool:
        return normalize_wiki_obj_type(file_type) in self.supported_types

    def ensure_migratable(self, plan: SelectionPlan) -> None:
        """
        Raise ValidationError when no discovered file can be migrated.

        Called before any write to the remote side.
        """
        if not any(self.is_supported(entry.type) for entry in plan.files.values()):
            raise ValidationError("The selection contains no files that can be migrated")

    def partition(self, plan: SelectionPlan) -> CopyPlan:
        """
        Split planned files into supported and skipped, in discovery order.

        Args:
            plan: SelectionPlan from tree discovery

        Returns:
            CopyPlan with ``supported`` and ``skipped`` filled in
        """
        copy_plan = CopyPlan()
        for entry in plan.ordered_files():
            if self.is_supported(entry.type):
                copy_plan.supported.append(entry)
            else:
                copy_plan.skipped.append(entry)

        if copy_plan.skipped:
            logger.warning(
                f"Skipping {len(copy_plan.skipped)} file(s) with unsupported types: "
                + ", ".join(f"{entry.token} ({entry.type})" for entry in copy_plan.skipped)
            )
        logger.info(
            f"Planned {len(copy_plan.supported)} file(s) for migration, "
            f"{len(copy_plan.skipped)} skipped"
        )
        return copy_plan


__all__ = ['MigrationPlanner']
