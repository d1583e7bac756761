"""
Orchestration package for coordinating migration pipeline stages.

This package sequences the migration stages: Read → Upload → Create →
Rewrite → Report.
"""

from .migration_orchestrator import MigrationOrchestrator
from .migration_report import MigrationReport

__all__ = [
    'MigrationOrchestrator',
    'MigrationReport'
]
