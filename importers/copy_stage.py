"""
Copy-and-verify stage.

Selected files are copied into a staging folder under the user's drive root,
then the staging folder is listed again and every copy is reconciled with the
file it came from. Copy tokens are matched first; copies without a known
token are matched by exact name and type.
"""

import logging
from typing import Any, Dict, List, Optional

from errors import IntegrityError, TransportError
from logger import ProgressTracker, log_api_result
from models import (
    CopiedItem,
    CopyPlan,
    CopyTask,
    CopyVerification,
    FilePlanEntry,
    PENDING_TASK_STATUSES,
    SelectionPlan,
    UNMATCHED_INDEX,
    is_folder_type,
    normalize_file_type,
    normalize_item,
    normalize_wiki_obj_type
)

logger = logging.getLogger('feishu_wiki_migrator.importers.copy_stage')


class CopyStage:
    """Copies planned files into a staging folder and verifies the result."""

    def __init__(self, client, fetcher, context):
        """
        Args:
            client: FeishuClient instance
            fetcher: DriveFetcher used to re-list the staging folder
            context: RunContext for cancellation and tunables
        """
        self.client = client
        self.fetcher = fetcher
        self.context = context
        self.settings = context.settings

    def create_staging_folder(self, drive_root_token: str, root_name: str) -> Dict[str, Any]:
        """
        Create ``<root name><staging suffix>`` under the user's drive root.

        Returns:
            Dict with ``name``, ``token`` and raw response ``data``

        Raises:
            TransportError: If creation fails or the response has no token
        """
        self.context.check()
        name = f"{root_name}{self.settings.staging_suffix}"
        result = self.client.create_folder(name, drive_root_token)
        log_api_result("Create staging folder", result, logger)
        if not result.ok:
            raise TransportError("Create staging folder", result.error or f"cannot create {name}", result)

        data = result.data
        folder = data.get('folder') if isinstance(data.get('folder'), dict) else {}
        token = data.get('folder_token') or data.get('token') or data.get('file_token') or folder.get('token')
        if not token:
            raise TransportError("Create staging folder", "response is missing the folder token", result)

        logger.info(f"Created staging folder {name} ({token})")
        return {'name': name, 'token': token, 'raw': data}

    def copy_files(self, staging_token: str, copy_plan: CopyPlan) -> CopyPlan:
        """
        Copy every supported file into the staging folder.

        Immediate copies are recorded in ``copy_plan.copy_map``; asynchronous
        ones are queued in ``copy_plan.tasks``.

        Raises:
            TransportError: On the first failed copy
        """
        self.context.check()
        with ProgressTracker(len(copy_plan.supported), "copies") as tracker:
            for entry in copy_plan.supported:
                self.context.check()
                result = self.client.copy_file(
                    entry.token,
                    entry.name,
                    normalize_wiki_obj_type(entry.type),
                    staging_token
                )
                log_api_result("Copy file", result, logger)
                if not result.ok:
                    tracker.increment(success=False)
                    raise TransportError("Copy file", f"{entry.name or entry.token}: {result.error}", result)

                data = result.data
                copied = data.get('file') if isinstance(data.get('file'), dict) else {}
                copied_token = copied.get('token') or data.get('token') or data.get('file_token')
                if copied_token:
                    copy_plan.copy_map[entry.token] = copied_token
                elif data.get('task_id'):
                    copy_plan.tasks.append(CopyTask(task_id=data['task_id'], file=entry))
                else:
                    logger.warning(f"Copy of {entry.name} returned neither a token nor a task id")
                tracker.increment()

        logger.info(
            f"Copied {len(copy_plan.copy_map)} file(s) directly, "
            f"{len(copy_plan.tasks)} asynchronous task(s) queued"
        )
        return copy_plan

    def check_copy_tasks(self, tasks: List[CopyTask]) -> List[Dict[str, Any]]:
        """
        Check every asynchronous copy task, polling while it is still running.

        Returns:
            One dict per task with ``task_id``, ``file`` token and ``status``

        Raises:
            TransportError: If a status check fails
        """
        results = []
        for task in tasks:
            status = None
            for attempt in range(1, self.settings.copy_task_poll_attempts + 1):
                self.context.check()
                result = self.client.check_drive_task(task.task_id)
                log_api_result("Copy task check", result, logger)
                if not result.ok:
                    raise TransportError("Copy task check", f"{task.task_id}: {result.error}", result)

                status = result.data.get('status')
                if str(status or '').lower() not in PENDING_TASK_STATUSES:
                    break
                if attempt < self.settings.copy_task_poll_attempts:
                    logger.debug(f"Copy task {task.task_id} still {status}, polling again")
                    self.context.pause(self.settings.copy_task_poll_interval)

            task.status = status
            if str(status or '').lower() in PENDING_TASK_STATUSES:
                logger.warning(f"Copy task {task.task_id} still {status} after polling")
            results.append({'task_id': task.task_id, 'file': task.file.token, 'status': status})
        return results

    def verify_copies(self, staging_token: str, copy_plan: CopyPlan, plan: SelectionPlan) -> CopyVerification:
        """
        Re-list the staging folder and reconcile copies with their originals.

        Args:
            staging_token: Staging folder token
            copy_plan: CopyPlan with the copy map filled in
            plan: SelectionPlan the copies came from

        Returns:
            CopyVerification with copied items sorted by discovery index

        Raises:
            IntegrityError: If fewer copies are found than were planned
        """
        self.context.check()
        copied_to_original = {copied: original for original, copied in copy_plan.copy_map.items()}
        remaining: List[FilePlanEntry] = list(copy_plan.supported)

        items = self.fetcher.fetch_folder_items(staging_token, label="Copy verification")
        files = [item for item in items if not is_folder_type(normalize_file_type(item))]
        listed = [normalized for normalized in map(normalize_item, files) if normalized is not None]

        matches: Dict[str, FilePlanEntry] = {}
        for normalized in listed:
            original = self._match_by_token(copied_to_original.get(normalized.token), remaining)
            if original is not None:
                matches[normalized.token] = original

        for normalized in listed:
            if normalized.token in matches:
                continue
            original = self._match_by_name_type(normalized.name, normalized.type, remaining)
            if original is not None:
                matches[normalized.token] = original

        copied_items: List[CopiedItem] = []
        for normalized in listed:
            original = matches.get(normalized.token)
            if original is None:
                logger.warning(f"Copied item {normalized.name} ({normalized.token}) has no matching original")

            copied_items.append(CopiedItem(
                token=normalized.token,
                name=normalized.name,
                type=normalized.type,
                parent_token=original.parent_token if original else plan.root_token,
                original_token=original.token if original else copied_to_original.get(normalized.token),
                index=original.index if original else UNMATCHED_INDEX
            ))

        copied_items.sort(key=lambda copied: copied.index)

        logger.info(
            f"Verified {len(copied_items)} copied item(s) "
            f"(expected {len(copy_plan.supported)}, listed {len(files)})"
        )
        if len(copied_items) < len(copy_plan.supported):
            raise IntegrityError(expected=len(copy_plan.supported), actual=len(copied_items))

        return CopyVerification(listed=len(files), copied_items=copied_items)

    @staticmethod
    def _match_by_token(original_token: Optional[str], remaining: List[FilePlanEntry]) -> Optional[FilePlanEntry]:
        """Take the original a copy token maps to, unless it was already matched."""
        if not original_token:
            return None
        for position, entry in enumerate(remaining):
            if entry.token == original_token:
                return remaining.pop(position)
        return None

    @staticmethod
    def _match_by_name_type(name: str, item_type: str, remaining: List[FilePlanEntry]) -> Optional[FilePlanEntry]:
        """Take the first unmatched original with the same name and type."""
        wanted_type = normalize_wiki_obj_type(item_type)
        for position, entry in enumerate(remaining):
            if entry.name == name and normalize_wiki_obj_type(entry.type) == wanted_type:
                return remaining.pop(position)
        return None


__all__ = ['CopyStage']
