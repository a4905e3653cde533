"""
Migration report generator for aggregating run results and formatting reports.

This module builds the final report of a migration run from the results
collected by the orchestrator, and formats it for console display, JSON
export, and CSV export of per-document outcomes.
"""

import csv
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from errors import TransportError

logger = logging.getLogger('feishu_wiki_migrator.orchestrator.migration_report')


class MigrationReport:
    """Generates the final report of a migration run."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        """
        Initialize migration report generator.

        Args:
            logger: Optional logger instance
        """
        self.logger = logger or logging.getLogger('feishu_wiki_migrator.orchestrator.migration_report')

    def generate_report(
        self,
        results: Dict[str, Any],
        status: str,
        migration_duration: float,
        steps: Optional[List[Dict[str, str]]] = None,
        error: Optional[BaseException] = None
    ) -> Dict[str, Any]:
        """
        Generate the migration report.

        Args:
            results: Stage results collected by the orchestrator
            status: Final run state value
            migration_duration: Total migration duration in seconds
            steps: Step list with display states
            error: Exception that ended the run, if any

        Returns:
            Migration report dictionary
        """
        plan = results.get('plan')
        copy_plan = results.get('copy_plan')
        verification = results.get('verification')
        move_report = results.get('move_report')
        node_map = results.get('node_map')
        migrate_folder = results.get('migrate_folder')

        report = {
            'status': status,
            'root': results.get('root') or (
                {'token': plan.root_token, 'name': plan.root_name} if plan else None
            ),
            'my_drive_root': results.get('my_drive_root'),
            'selection': self._build_selection(plan, copy_plan),
            'migrate_folder': migrate_folder,
            'cleanup': self._build_cleanup(migrate_folder),
            'copy': {
                'requested': len(copy_plan.supported) if copy_plan else 0,
                'skipped': [entry.to_dict() for entry in copy_plan.skipped] if copy_plan else [],
                'skipped_count': len(copy_plan.skipped) if copy_plan else 0,
                'errors': list(copy_plan.errors) if copy_plan else [],
                'listed': verification.listed if verification else 0,
                'tasks_checked': results.get('copy_tasks', [])
            },
            'wiki': {
                'space_id': results.get('space_id'),
                'nodes_created': len(node_map) if node_map is not None else 0,
                'node_map': node_map.get_all_mappings()['nodes'] if node_map is not None else {},
                'moved': [item.to_dict() for item in move_report.moved] if move_report else [],
                'failed': [item.to_dict() for item in move_report.failed] if move_report else [],
                'skipped': [item.to_dict() for item in move_report.skipped] if move_report else [],
                'task_ids': list(move_report.task_ids) if move_report else [],
                'task_summaries': [summary.to_dict() for summary in results.get('task_summaries', [])]
            },
            'steps': steps or [],
            'error': self._build_error(error),
            'duration_seconds': migration_duration,
            'duration_formatted': self._format_duration(migration_duration),
            'timestamp': datetime.now().isoformat()
        }

        self.logger.info(
            f"Report generated: status {status}, "
            f"{len(report['wiki']['moved'])} moved, {report['wiki']['nodes_created']} nodes"
        )
        return report

    def _build_selection(self, plan, copy_plan) -> Dict[str, Any]:
        if plan is None:
            return {'folders': 0, 'files': 0, 'supported': 0}
        return {
            'folders': len(plan.folders),
            'files': len(plan.files),
            'supported': len(copy_plan.supported) if copy_plan else 0,
            'folder_entries': [entry.to_dict() for entry in plan.folders.values()]
        }

    @staticmethod
    def _build_cleanup(migrate_folder: Optional[Dict[str, Any]]) -> Optional[str]:
        if not migrate_folder:
            return None
        return (
            f"The staging folder '{migrate_folder['name']}' ({migrate_folder['token']}) "
            f"is left in your drive. Delete it manually after checking the wiki space."
        )

    @staticmethod
    def _build_error(error: Optional[BaseException]) -> Optional[Dict[str, Any]]:
        if error is None:
            return None
        if isinstance(error, TransportError):
            data = error.to_dict()
        else:
            data = {'message': str(error)}
        data['type'] = type(error).__name__
        unresolved = getattr(error, 'unresolved', None)
        if unresolved:
            data['unresolved'] = list(unresolved)
        return data

    def _format_duration(self, seconds: float) -> str:
        """Format duration in human-readable format."""
        if seconds < 60:
            return f"{seconds:.1f}s"
        elif seconds < 3600:
            minutes = int(seconds // 60)
            secs = int(seconds % 60)
            return f"{minutes}m {secs}s"
        else:
            hours = int(seconds // 3600)
            minutes = int((seconds % 3600) // 60)
            secs = int(seconds % 60)
            return f"{hours}h {minutes}m {secs}s"

    def format_console_report(self, report: Dict[str, Any]) -> str:
        """
        Format report for console display.

        Args:
            report: Migration report dictionary

        Returns:
            Formatted console string
        """
        sections = []

        sections.append("=" * 60)
        sections.append("MIGRATION REPORT")
        sections.append("=" * 60)
        sections.append("")

        root = report.get('root') or {}
        selection = report.get('selection', {})
        sections.append("Summary:")
        sections.append(f"  Status:      {report.get('status', 'unknown')}")
        sections.append(f"  Root:        {root.get('name', '-')} ({root.get('token', '-')})")
        sections.append(f"  Folders:     {selection.get('folders', 0)}")
        sections.append(f"  Files:       {selection.get('files', 0)} ({selection.get('supported', 0)} supported)")
        sections.append(f"  Duration:    {report.get('duration_formatted', '0s')}")
        sections.append("")

        copy_stats = report.get('copy', {})
        wiki = report.get('wiki', {})
        sections.append("Stage Breakdown:")
        sections.append("-" * 60)
        sections.append("  Copy:")
        sections.append(
            f"    Files: {copy_stats.get('requested', 0)} requested, "
            f"{len(copy_stats.get('skipped', []))} skipped, "
            f"{copy_stats.get('listed', 0)} listed"
        )
        if copy_stats.get('tasks_checked'):
            sections.append(f"    Tasks: {len(copy_stats['tasks_checked'])} checked")

        sections.append("  Wiki:")
        sections.append(f"    Space:  {wiki.get('space_id') or '-'}")
        sections.append(f"    Nodes:  {wiki.get('nodes_created', 0)} created")
        sections.append(
            f"    Docs:   {len(wiki.get('moved', []))} moved, "
            f"{len(wiki.get('failed', []))} failed, "
            f"{len(wiki.get('skipped', []))} skipped"
        )

        summaries = wiki.get('task_summaries', [])
        if summaries:
            failed_checks = [summary for summary in summaries if not summary.get('ok')]
            sections.append(f"    Tasks:  {len(summaries)} checked, {len(failed_checks)} check(s) failed")
        sections.append("")

        if report.get('cleanup'):
            sections.append("Cleanup:")
            sections.append(f"  {report['cleanup']}")
            sections.append("")

        error = report.get('error')
        if error:
            sections.append("Error:")
            sections.append(f"  {error.get('type', 'Error')}: {error.get('message', '')}")
            if error.get('unresolved'):
                sections.append(f"  Unresolved: {', '.join(error['unresolved'])}")
            sections.append("")

        sections.append("=" * 60)

        return "\n".join(sections)

    def export_json_report(self, report: Dict[str, Any], filepath: str) -> None:
        """
        Export report to JSON file.

        Args:
            report: Migration report dictionary
            filepath: Output file path
        """
        try:
            with open(filepath, 'w', encoding='utf-8') as f:
                json.dump(report, f, indent=2, ensure_ascii=False, default=str)

            self.logger.info(f"JSON report exported to {filepath}")

        except OSError as e:
            self.logger.error(f"Failed to export JSON report: {str(e)}")

    def export_csv_documents(self, report: Dict[str, Any], filepath: str) -> None:
        """
        Export per-document outcomes to CSV.

        Args:
            report: Migration report dictionary
            filepath: Output file path
        """
        rows = []
        wiki = report.get('wiki', {})
        for outcome in ('moved', 'failed', 'skipped'):
            for item in wiki.get(outcome, []):
                rows.append({
                    'outcome': outcome,
                    'name': item.get('name', ''),
                    'type': item.get('type', ''),
                    'token': item.get('token', ''),
                    'original_token': item.get('original_token') or '',
                    'parent_token': item.get('parent_token', '')
                })
        for entry in report.get('copy', {}).get('skipped', []):
            rows.append({
                'outcome': 'unsupported',
                'name': entry.get('name', ''),
                'type': entry.get('type', ''),
                'token': '',
                'original_token': entry.get('token', ''),
                'parent_token': entry.get('parent_token', '')
            })

        try:
            with open(filepath, 'w', newline='', encoding='utf-8') as f:
                writer = csv.DictWriter(f, fieldnames=[
                    'outcome', 'name', 'type', 'token', 'original_token', 'parent_token'
                ])
                writer.writeheader()
                writer.writerows(rows)

            self.logger.info(f"CSV document outcomes exported to {filepath}")

        except OSError as e:
            self.logger.error(f"Failed to export CSV documents: {str(e)}")


__all__ = ['MigrationReport']
