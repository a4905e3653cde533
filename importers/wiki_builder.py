"""
Wiki construction stage.

Creates the wiki space, one container node per planned folder, then moves the
verified copies into the space under their containers. Moves are rate
limited: after every batch of moves the stage pauses before continuing.
"""

import logging
from typing import Any, Dict, List, Optional

from errors import PlanError, TransportError
from logger import ProgressTracker, log_api_result
from models import (
    PENDING_TASK_STATUSES,
    CopiedItem,
    FolderPlanEntry,
    MoveReport,
    WikiTaskSummary,
    normalize_wiki_obj_type
)

from .hierarchy_mapper import FolderHierarchyMapper
from .id_mapping_tracker import IdMappingTracker

logger = logging.getLogger('feishu_wiki_migrator.importers.wiki_builder')

CONTAINER_OBJ_TYPE = "docx"
CONTAINER_NODE_TYPE = "origin"


class WikiBuilder:
    """Builds the destination wiki space from a verified copy."""

    def __init__(self, client, context):
        """
        Args:
            client: FeishuClient instance
            context: RunContext for cancellation, tunables and progress
        """
        self.client = client
        self.context = context
        self.settings = context.settings

    def create_space(self, name: str) -> str:
        """
        Create a wiki space named after the subtree root.

        Returns:
            The new space id

        Raises:
            TransportError: If creation fails or no space id is returned
        """
        self.context.check()
        result = self.client.create_wiki_space(name)
        log_api_result("Create wiki space", result, logger)
        if not result.ok:
            raise TransportError("Create wiki space", result.error or f"cannot create space {name}", result)

        data = result.data
        space = data.get('space') if isinstance(data.get('space'), dict) else {}
        space_id = data.get('space_id') or space.get('space_id') or space.get('id') or data.get('id')
        if not space_id:
            raise TransportError("Create wiki space", "response is missing the space id", result)

        logger.info(f"Created wiki space {name} ({space_id})")
        return str(space_id)

    def create_nodes(
        self,
        space_id: str,
        folders: Dict[str, FolderPlanEntry],
        root_token: str,
        node_map: Optional[IdMappingTracker] = None
    ) -> IdMappingTracker:
        """
        Create one container node per folder, parents before children.

        Args:
            space_id: Wiki space id
            folders: Folder plan entries keyed by token
            root_token: Token of the subtree root
            node_map: Tracker that receives each node as it is created;
                a new one when omitted

        Returns:
            IdMappingTracker mapping folder tokens to node tokens

        Raises:
            PlanError: If folders have missing or cyclic parents; raised
                before any node is created
            TransportError: If a node cannot be created
        """
        self.context.check()
        mapper = FolderHierarchyMapper(folders, root_token)
        levels = list(mapper.iter_levels())

        if node_map is None:
            node_map = IdMappingTracker()
        node_map.add_space_mapping(root_token, space_id)
        self.context.set_total('nodes', len(folders))

        with ProgressTracker(len(folders), "wiki nodes") as tracker:
            for level in levels:
                for entry in level:
                    self.context.check()
                    parent_node_token = None
                    if not mapper.is_top_level(entry):
                        parent_node_token = node_map.get_node_token(entry.parent_token)
                        if parent_node_token is None:
                            raise PlanError(
                                f"Parent node of {entry.name} was not created",
                                unresolved=[entry.token]
                            )

                    result = self.client.create_wiki_node(
                        space_id,
                        obj_type=CONTAINER_OBJ_TYPE,
                        node_type=CONTAINER_NODE_TYPE,
                        parent_node_token=parent_node_token,
                        title=entry.name
                    )
                    log_api_result("Create wiki node", result, logger)
                    if not result.ok:
                        tracker.increment(success=False)
                        raise TransportError("Create wiki node", f"{entry.name}: {result.error}", result)

                    node_token = self._extract_node_token(result.data)
                    if not node_token:
                        raise TransportError(
                            "Create wiki node", f"response for {entry.name} is missing the node token", result
                        )

                    node_map.add_node_mapping(entry.token, node_token)
                    tracker.increment()
                    self.context.advance('nodes')

        stats = node_map.get_statistics()
        logger.info(f"Created {stats['total_nodes']} wiki node(s) in {len(levels)} level(s)")
        return node_map

    def move_documents(
        self,
        space_id: str,
        copied_items: List[CopiedItem],
        root_token: str,
        node_map: IdMappingTracker,
        report: Optional[MoveReport] = None
    ) -> MoveReport:
        """
        Move verified copies into the wiki space in discovery order.

        After every ``move_batch_limit`` moves the stage pauses for
        ``move_pause_ms`` when more moves remain; the pause is cancellable.

        Each move is recorded on ``report`` as it happens; a new report is
        used when omitted.

        Raises:
            PlanError: If a non-root parent has no created node
            TransportError: On the first failed move
        """
        self.context.check()
        if report is None:
            report = MoveReport()
        targets = []
        for item in sorted(copied_items, key=lambda copied: copied.index):
            if normalize_wiki_obj_type(item.type) in self.settings.supported_types:
                targets.append(item)
            else:
                logger.warning(f"Skipping move of {item.name}: unsupported type {item.type}")
                report.skipped.append(item)

        self.context.set_total('moves', len(targets))
        batch_limit = self.settings.move_batch_limit

        with ProgressTracker(len(targets), "moves") as tracker:
            for position, item in enumerate(targets, start=1):
                self.context.check()
                parent_wiki_token = None
                if item.parent_token and item.parent_token != root_token:
                    parent_wiki_token = node_map.get_node_token(item.parent_token)
                    if parent_wiki_token is None:
                        raise PlanError(
                            f"No wiki node for the parent folder of {item.name}",
                            unresolved=[item.parent_token]
                        )

                result = self.client.move_docs_to_wiki(
                    space_id,
                    obj_type=normalize_wiki_obj_type(item.type),
                    obj_token=item.token,
                    parent_wiki_token=parent_wiki_token,
                    apply=True
                )
                log_api_result("Move document to wiki", result, logger)
                if not result.ok:
                    report.failed.append(item)
                    tracker.increment(success=False)
                    raise TransportError("Move document to wiki", f"{item.name or item.token}: {result.error}", result)

                task_id = result.data.get('task_id')
                if task_id:
                    report.task_ids.append(task_id)
                report.moved.append(item)
                tracker.increment()
                self.context.advance('moves')

                if position % batch_limit == 0 and position < len(targets):
                    logger.warning(
                        f"Sent {position} move requests, pausing "
                        f"{self.settings.move_pause_ms}ms for the rate limit"
                    )
                    self.context.pause(self.settings.move_pause_seconds)

        return report

    def check_wiki_tasks(self, task_ids: List[str]) -> List[WikiTaskSummary]:
        """
        Query the status of every asynchronous move task, polling while it
        is still running.

        A failed query is logged and recorded on its summary; it does not
        fail the run.
        """
        summaries = []
        attempts = self.settings.wiki_task_poll_attempts
        for task_id in task_ids:
            summary = WikiTaskSummary(task_id=task_id, ok=False, error="task was not queried")
            for attempt in range(1, attempts + 1):
                self.context.check()
                result = self.client.get_wiki_task(task_id, task_type=self.settings.wiki_task_type)
                log_api_result("Wiki task check", result, logger)
                if not result.ok:
                    logger.error(f"Wiki task check failed for {task_id}: {result.error}")
                    summary = WikiTaskSummary(task_id=task_id, ok=False, error=result.error)
                    break

                summary = self.extract_task_summary(task_id, result.body)
                if str(summary.status or '').lower() not in PENDING_TASK_STATUSES:
                    break
                if attempt < attempts:
                    logger.debug(f"Wiki task {task_id} still {summary.status}, polling again")
                    self.context.pause(self.settings.wiki_task_poll_interval)

            if summary.ok and str(summary.status or '').lower() in PENDING_TASK_STATUSES:
                logger.warning(f"Wiki task {task_id} still {summary.status} after polling")
            summaries.append(summary)
        return summaries

    @staticmethod
    def extract_task_summary(task_id: str, body: Any) -> WikiTaskSummary:
        data = body.get('data') if isinstance(body, dict) and body.get('data') is not None else body
        data = data if isinstance(data, dict) else {}
        result = data.get('result') if isinstance(data.get('result'), dict) else data

        success = result.get('success_num')
        if success is None:
            success = result.get('success_count')
        failed = result.get('fail_num')
        if failed is None:
            failed = result.get('fail_count')

        return WikiTaskSummary(
            task_id=task_id,
            ok=True,
            status=result.get('status') or result.get('state'),
            success=success,
            failed=failed,
            fail_reason=result.get('fail_reason') or result.get('fail_reasons') or result.get('fail_msg'),
            raw=result
        )

    @staticmethod
    def _extract_node_token(data: Dict[str, Any]) -> Optional[str]:
        node = data.get('node') if isinstance(data.get('node'), dict) else {}
        wiki_node = data.get('wiki_node') if isinstance(data.get('wiki_node'), dict) else {}
        return (
            node.get('node_token')
            or data.get('node_token')
            or wiki_node.get('node_token')
            or wiki_node.get('token')
        )


__all__ = ['WikiBuilder']
