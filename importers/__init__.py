"""Import package for Drive to Wiki migration.

This package provides the remote side of the migration: the Open API client,
the copy-and-verify stage that stages files in the user's drive, and the wiki
construction stage that rebuilds the folder hierarchy in a new wiki space.

Package Structure:
- feishu_client: REST client for Drive and Wiki API operations
- copy_stage: Copies selected files into a staging folder and verifies them
- hierarchy_mapper: Orders folder entries parent-before-child
- id_mapping_tracker: Tracks drive folder to wiki node mappings
- wiki_builder: Creates the space and nodes and moves documents

Configuration Referenced:
- feishu.*: API base URL and user access token
- migration.*: Batch size, cooldown and polling tunables
- advanced.*: Timeouts, retries and rate limiting
"""

from .feishu_client import ApiResult, FeishuClient
from .copy_stage import CopyStage
from .hierarchy_mapper import FolderHierarchyMapper
from .id_mapping_tracker import IdMappingTracker
from .wiki_builder import WikiBuilder

__all__ = [
    'ApiResult',
    'FeishuClient',
    'CopyStage',
    'FolderHierarchyMapper',
    'IdMappingTracker',
    'WikiBuilder'
]
