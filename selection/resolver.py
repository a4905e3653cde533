"""Resolve the tree selection into a single subtree root and its selection roots."""

import logging
from dataclasses import dataclass, field
from typing import List

from errors import ValidationError
from models import DriveNode

logger = logging.getLogger('feishu_wiki_migrator.selection.resolver')


@dataclass
class ResolvedSelection:
    """The tree root shared by the selection, plus the top-most selected nodes."""

    root_token: str
    root_node: DriveNode
    selection_roots: List[DriveNode] = field(default_factory=list)


def resolve_selection(store) -> ResolvedSelection:
    """
    Validate the current selection and find its subtree root.

    Args:
        store: DriveTreeStore holding the selection

    Returns:
        ResolvedSelection

    Raises:
        ValidationError: If nothing is selected, the root cannot be found,
            or the selection spans more than one tree root
    """
    selection_roots = store.selection_roots()
    if not selection_roots:
        raise ValidationError("Select at least one file or folder to migrate")

    root_tokens = []
    for node in selection_roots:
        token = node.root().token
        if token not in root_tokens:
            root_tokens.append(token)

    if len(root_tokens) > 1:
        raise ValidationError(
            f"Selection spans multiple root folders: {', '.join(root_tokens)}"
        )

    root_token = store.selected_root_token or root_tokens[0]
    if root_token != root_tokens[0]:
        raise ValidationError(
            f"Selected root {root_token} does not contain the selection"
        )

    root_node = store.find_root(root_token)
    if root_node is None:
        raise ValidationError(f"Cannot identify the root folder of the selection ({root_token})")

    logger.info(
        f"Resolved selection: root {root_node.name} ({root_token}), "
        f"{len(selection_roots)} selection root(s)"
    )
    return ResolvedSelection(root_token=root_token, root_node=root_node, selection_roots=selection_roots)


__all__ = ['ResolvedSelection', 'resolve_selection']
