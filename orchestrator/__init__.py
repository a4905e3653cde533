"""
Orchestration package for coordinating migration pipeline phases.

This package provides the core orchestration layer that sequences all
migration phases: Select → Discover → Plan → Copy/Verify → Wiki build →
Report, together with the per-run context used for cancellation and progress.
"""

from .run_context import CancellationToken, RunContext
from .migration_planner import MigrationPlanner
from .migration_orchestrator import MigrationOrchestrator
from .migration_report import MigrationReport

__all__ = [
    'CancellationToken',
    'RunContext',
    'MigrationPlanner',
    'MigrationOrchestrator',
    'MigrationReport'
]
