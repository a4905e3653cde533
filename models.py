"""Data models for the Drive to Wiki migration pipeline."""

import logging
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

logger = logging.getLogger('feishu_wiki_migrator')


FOLDER_TYPE = "folder"
SHORTCUT_PREFIX = "shortcut:"
SHORTCUT_NAME_SUFFIX = " (shortcut)"
UNMATCHED_INDEX = sys.maxsize
PENDING_TASK_STATUSES = frozenset({'process', 'processing', 'pending', 'running'})


class RunState(Enum):
    """Lifecycle states of a single migration run."""
    SELECTING = "selecting"
    RESOLVING_ROOT = "resolving-root"
    STAGING_CREATED = "staging-created"
    COPYING = "copying"
    VERIFYING = "verifying"
    SPACE_CREATED = "space-created"
    NODES_CREATED = "nodes-created"
    MOVING = "moving"
    POLLING_TASKS = "polling-tasks"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.DONE, RunState.FAILED, RunState.CANCELLED)


class StepState(Enum):
    """Display state of a step in the migration step list."""
    PENDING = "pending"
    ACTIVE = "active"
    DONE = "done"


MIGRATION_STEPS = [
    ('select', 'Resolve selection'),
    ('root-meta', 'Fetch root metadata'),
    ('create-migrate-folder', 'Create staging folder'),
    ('copy-files', 'Copy files'),
    ('copy-check', 'Verify copies'),
    ('create-space', 'Create wiki space'),
    ('create-nodes', 'Create wiki nodes'),
    ('move-docs', 'Move documents to wiki'),
    ('wiki-task', 'Check wiki tasks'),
]


def is_folder_type(item_type: str) -> bool:
    """Check whether a normalized type denotes a folder (or a shortcut to one)."""
    return item_type == FOLDER_TYPE or item_type.endswith(":" + FOLDER_TYPE)


def normalize_file_type(item: Optional[Dict[str, Any]]) -> str:
    """
    Lower-case the listed type, expanding shortcuts to ``shortcut:<target>``.

    Args:
        item: Raw listing item

    Returns:
        Normalized type tag
    """
    if not item:
        return "file"
    base_type = str(item.get('type') or item.get('file_type') or "file").lower()
    shortcut_info = item.get('shortcut_info') or {}
    if base_type == "shortcut" and shortcut_info.get('target_type'):
        return f"{SHORTCUT_PREFIX}{str(shortcut_info['target_type']).lower()}"
    return base_type


def resolve_item_token(item: Dict[str, Any], item_type: str) -> Optional[str]:
    """Return the item's own token, or the target token for shortcuts."""
    raw_token = item.get('token') or item.get('file_token') or item.get('id')
    shortcut_info = item.get('shortcut_info') or {}
    if item_type.startswith(SHORTCUT_PREFIX) and shortcut_info.get('target_token'):
        return shortcut_info['target_token']
    return raw_token


def normalize_wiki_obj_type(item_type: Optional[str]) -> str:
    """Strip the shortcut prefix so the target's type is used."""
    if not item_type:
        return ""
    raw = str(item_type).lower()
    if raw.startswith(SHORTCUT_PREFIX):
        return raw.split(":", 1)[1]
    return raw


@dataclass
class NormalizedItem:
    """A listing item after type/token resolution."""

    token: str
    name: str
    type: str
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_folder(self) -> bool:
        return is_folder_type(self.type)

    @property
    def is_shortcut(self) -> bool:
        return self.type.startswith(SHORTCUT_PREFIX)

    @property
    def resolved_type(self) -> str:
        return normalize_wiki_obj_type(self.type)


def normalize_item(item: Dict[str, Any]) -> Optional[NormalizedItem]:
    """
    Normalize a raw folder listing item.

    Shortcuts take the target's token, and their display name gets a suffix
    marker so they can be told apart from the original.

    Args:
        item: Raw listing item

    Returns:
        NormalizedItem, or None when no token can be resolved
    """
    item_type = normalize_file_type(item)
    token = resolve_item_token(item, item_type)
    if not token:
        return None
    name_base = item.get('name') or item.get('title') or token
    if item_type.startswith(SHORTCUT_PREFIX) and item.get('name'):
        name = f"{name_base}{SHORTCUT_NAME_SUFFIX}"
    else:
        name = name_base
    return NormalizedItem(token=token, name=name, type=item_type, raw=item)


@dataclass(eq=False)
class DriveNode:
    """A file or folder in the drive tree. Parents own their children."""

    token: str
    name: str
    type: str = FOLDER_TYPE
    parent: Optional['DriveNode'] = None
    children: List['DriveNode'] = field(default_factory=list)
    selected: bool = False
    indeterminate: bool = False
    expanded: bool = False
    loaded: bool = False
    raw: Optional[Dict[str, Any]] = None

    def __post_init__(self) -> None:
        self.type = str(self.type or "file").lower()
        if not self.name:
            self.name = self.token

    @property
    def is_folder(self) -> bool:
        return is_folder_type(self.type)

    def root(self) -> 'DriveNode':
        """Walk parent links up to the node with no parent."""
        current = self
        while current.parent is not None:
            current = current.parent
        return current

    def has_selected_ancestor(self) -> bool:
        current = self.parent
        while current is not None:
            if current.selected:
                return True
            current = current.parent
        return False

    def iter_descendants(self, include_self: bool = False) -> Iterator['DriveNode']:
        """Yield descendants depth-first in child order."""
        if include_self:
            yield self
        stack = list(reversed(self.children))
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def __repr__(self) -> str:
        return f"DriveNode(token={self.token!r}, name={self.name!r}, type={self.type!r})"


@dataclass
class FolderPlanEntry:
    """A folder that needs a wiki container in the destination."""

    token: str
    name: str
    parent_token: str

    def to_dict(self) -> Dict[str, Any]:
        return {'token': self.token, 'name': self.name, 'parent_token': self.parent_token}


@dataclass
class FilePlanEntry:
    """A file discovered under the selection, ordered by ``index``."""

    token: str
    name: str
    type: str
    parent_token: str
    index: int
    source_type: Optional[str] = None

    @property
    def is_shortcut(self) -> bool:
        return bool(self.source_type and self.source_type.startswith(SHORTCUT_PREFIX))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'token': self.token,
            'name': self.name,
            'type': self.type,
            'parent_token': self.parent_token,
            'index': self.index,
            'source_type': self.source_type
        }


@dataclass
class SelectionPlan:
    """Folders and files discovered under a single subtree root."""

    root_token: str
    root_node: Optional[DriveNode] = None
    folders: Dict[str, FolderPlanEntry] = field(default_factory=dict)
    files: Dict[str, FilePlanEntry] = field(default_factory=dict)

    @property
    def root_name(self) -> str:
        if self.root_node is not None:
            return self.root_node.name
        return self.root_token

    def ordered_files(self) -> List[FilePlanEntry]:
        return sorted(self.files.values(), key=lambda entry: entry.index)


@dataclass
class CopyTask:
    """An asynchronous copy awaiting a status check."""

    task_id: str
    file: FilePlanEntry
    status: Optional[str] = None


@dataclass
class CopyPlan:
    """Partition of planned files plus copy bookkeeping."""

    supported: List[FilePlanEntry] = field(default_factory=list)
    skipped: List[FilePlanEntry] = field(default_factory=list)
    copy_map: Dict[str, str] = field(default_factory=dict)
    tasks: List[CopyTask] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class CopiedItem:
    """A listed copy reconciled against the plan."""

    token: str
    name: str
    type: str
    parent_token: str
    original_token: Optional[str] = None
    index: int = UNMATCHED_INDEX

    @property
    def matched(self) -> bool:
        return self.original_token is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'token': self.token,
            'name': self.name,
            'type': self.type,
            'parent_token': self.parent_token,
            'original_token': self.original_token,
            'index': self.index if self.index != UNMATCHED_INDEX else None
        }


@dataclass
class CopyVerification:
    """Outcome of re-listing the staging folder."""

    listed: int = 0
    copied_items: List[CopiedItem] = field(default_factory=list)


@dataclass
class MoveReport:
    """Outcome of moving documents into the wiki space."""

    moved: List[CopiedItem] = field(default_factory=list)
    failed: List[CopiedItem] = field(default_factory=list)
    skipped: List[CopiedItem] = field(default_factory=list)
    task_ids: List[str] = field(default_factory=list)


@dataclass
class WikiTaskSummary:
    """Status of one asynchronous move task."""

    task_id: str
    ok: bool
    status: Optional[str] = None
    success: Optional[int] = None
    failed: Optional[int] = None
    fail_reason: Optional[Any] = None
    raw: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'task_id': self.task_id,
            'ok': self.ok,
            'summary': {
                'status': self.status,
                'success': self.success,
                'failed': self.failed,
                'fail_reason': self.fail_reason
            },
            'error': self.error
        }


@dataclass
class SelectionSummary:
    """Selection counts shown next to the tree."""

    root_label: Optional[str] = None
    folder_count: int = 0
    file_count: int = 0

    @property
    def is_empty(self) -> bool:
        return self.folder_count == 0 and self.file_count == 0

    def __str__(self) -> str:
        if self.is_empty:
            return "No selection."
        return (
            f"{self.root_label} | {self.folder_count} folders, "
            f"{self.file_count} files selected."
        )


__all__ = [
    'RunState',
    'StepState',
    'MIGRATION_STEPS',
    'UNMATCHED_INDEX',
    'is_folder_type',
    'normalize_file_type',
    'resolve_item_token',
    'normalize_wiki_obj_type',
    'normalize_item',
    'NormalizedItem',
    'DriveNode',
    'FolderPlanEntry',
    'FilePlanEntry',
    'SelectionPlan',
    'CopyTask',
    'CopyPlan',
    'CopiedItem',
    'CopyVerification',
    'MoveReport',
    'WikiTaskSummary',
    'SelectionSummary'
]
