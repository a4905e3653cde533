"""
Migration orchestrator for coordinating the complete migration pipeline.

This module provides the central coordinator that sequences all migration
phases: Select → Discover → Plan → Copy/Verify → Wiki build → Report. Every
run owns a RunContext; the run is one-shot and ends in ``done``, ``failed``
or ``cancelled``.
"""

import logging
from typing import Any, Dict, Optional

from config_loader import MigrationSettings
from errors import MigrationCancelled, MigrationError
from fetchers import DriveFetcher, TreeDiscovery
from importers import CopyStage, IdMappingTracker, WikiBuilder
from logger import log_section
from models import MoveReport, RunState
from orchestrator.migration_planner import MigrationPlanner
from orchestrator.migration_report import MigrationReport
from orchestrator.run_context import RunContext
from selection import resolve_selection

logger = logging.getLogger('feishu_wiki_migrator.orchestrator.migration_orchestrator')


class MigrationOrchestrator:
    """Central coordinator sequencing the Drive to Wiki migration."""

    def __init__(
        self,
        client,
        config: Optional[Dict[str, Any]] = None,
        context: Optional[RunContext] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize migration orchestrator.

        Args:
            client: FeishuClient (or any object with the same methods)
            config: Configuration dictionary
            context: Optional RunContext; a fresh one is created otherwise
            logger: Optional logger instance
        """
        self.client = client
        self.config = config or {}
        self.settings = context.settings if context else MigrationSettings.from_config(self.config)
        self.context = context or RunContext(self.settings)
        self.logger = logger or logging.getLogger('feishu_wiki_migrator.orchestrator.migration_orchestrator')

        self.fetcher = DriveFetcher(client, self.settings, self.context)
        self.discovery = TreeDiscovery(self.fetcher, self.context)
        self.planner = MigrationPlanner(self.settings.supported_types)
        self.copy_stage = CopyStage(client, self.fetcher, self.context)
        self.wiki_builder = WikiBuilder(client, self.context)
        self.report_generator = MigrationReport()

        self.results: Dict[str, Any] = {}
        self._started = False

    def cancel(self) -> None:
        """Request cancellation; the run stops at its next check."""
        self.context.cancel()

    def plan(self, store) -> Dict[str, Any]:
        """
        Resolve and discover the selection without writing anything.

        Args:
            store: DriveTreeStore holding the selection

        Returns:
            Dict with the resolved selection, selection plan and copy plan

        Raises:
            ValidationError: If the selection is invalid or has nothing to migrate
            TransportError: If a listing fails
        """
        resolved = resolve_selection(store)
        selection_plan = self.discovery.build_selection_plan(resolved)
        self.planner.ensure_migratable(selection_plan)
        copy_plan = self.planner.partition(selection_plan)
        return {'resolved': resolved, 'plan': selection_plan, 'copy_plan': copy_plan}

    def run(self, store) -> Dict[str, Any]:
        """
        Run the migration for the current selection of ``store``.

        Errors are caught at this boundary: the run ends ``failed`` (error
        kept) or ``cancelled``, and a report is returned in every case.

        Args:
            store: DriveTreeStore holding the selection

        Returns:
            Migration report dictionary
        """
        if self._started:
            raise MigrationError("A migration run can only be started once")
        self._started = True

        log_section("Migration")
        self.context.reset_steps()

        try:
            self._execute(store)
            self.context.transition(RunState.DONE)
            self.logger.info("Migration complete")
        except MigrationCancelled as e:
            self.context.mark_cancelled()
            self.logger.warning(str(e))
        except MigrationError as e:
            self.context.fail(e)
            self.logger.error(f"Migration failed: {e}")
        except Exception as e:
            self.context.fail(e)
            self.logger.exception(f"Migration failed with unexpected error: {e}")

        return self.report_generator.generate_report(
            self.results,
            status=self.context.state.value,
            migration_duration=self.context.elapsed,
            steps=self.context.step_list(),
            error=self.context.error
        )

    def _execute(self, store) -> None:
        ctx = self.context
        results = self.results

        ctx.transition(RunState.SELECTING)
        ctx.start_step('select')
        planned = self.plan(store)
        plan = planned['plan']
        copy_plan = planned['copy_plan']
        results['plan'] = plan
        results['copy_plan'] = copy_plan
        ctx.finish_step('select')

        ctx.transition(RunState.RESOLVING_ROOT)
        ctx.start_step('root-meta')
        root_meta = self.fetcher.fetch_folder_name(plan.root_token, fallback_name=plan.root_name)
        root_name = root_meta['name'] or plan.root_token
        results['root'] = {'token': plan.root_token, 'name': root_name, 'meta': root_meta['meta']}
        my_drive_root = self.fetcher.fetch_root_meta()
        results['my_drive_root'] = {'token': my_drive_root['token'], 'name': my_drive_root['name']}
        ctx.finish_step('root-meta')

        ctx.start_step('create-migrate-folder')
        staging = self.copy_stage.create_staging_folder(my_drive_root['token'], root_name)
        results['migrate_folder'] = {'name': staging['name'], 'token': staging['token']}
        ctx.transition(RunState.STAGING_CREATED)
        ctx.finish_step('create-migrate-folder')

        ctx.transition(RunState.COPYING)
        ctx.start_step('copy-files')
        self.copy_stage.copy_files(staging['token'], copy_plan)
        ctx.finish_step('copy-files')

        ctx.transition(RunState.VERIFYING)
        ctx.start_step('copy-check')
        results['copy_tasks'] = self.copy_stage.check_copy_tasks(copy_plan.tasks)
        verification = self.copy_stage.verify_copies(staging['token'], copy_plan, plan)
        results['verification'] = verification
        ctx.finish_step('copy-check')

        ctx.start_step('create-space')
        space_id = self.wiki_builder.create_space(root_name)
        results['space_id'] = space_id
        ctx.transition(RunState.SPACE_CREATED)
        ctx.finish_step('create-space')

        ctx.start_step('create-nodes')
        node_map = IdMappingTracker()
        results['node_map'] = node_map
        self.wiki_builder.create_nodes(space_id, plan.folders, plan.root_token, node_map)
        ctx.transition(RunState.NODES_CREATED)
        ctx.finish_step('create-nodes')

        ctx.transition(RunState.MOVING)
        ctx.start_step('move-docs')
        move_report = MoveReport()
        results['move_report'] = move_report
        self.wiki_builder.move_documents(
            space_id, verification.copied_items, plan.root_token, node_map, move_report
        )
        ctx.finish_step('move-docs')

        ctx.transition(RunState.POLLING_TASKS)
        ctx.start_step('wiki-task')
        results['task_summaries'] = self.wiki_builder.check_wiki_tasks(move_report.task_ids)
        ctx.finish_step('wiki-task')


__all__ = ['MigrationOrchestrator']
