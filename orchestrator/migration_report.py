"""
Migration report generator for the post mapping file and run statistics.

This module writes the Kibela-to-esa URL mapping file and aggregates the
per-stage statistics into a report for console display and JSON export.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from models import Note

MAPPING_LINE_TEMPLATE = '"{title}"\t"{kibela_url}/notes/{note_id}"\t"{esa_url}/posts/{number}"\n'


class MigrationReport:
    """Generates the post mapping file and the run report."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        """
        Initialize migration report generator.

        Args:
            logger: Optional logger instance
        """
        self.logger = logger or logging.getLogger('kibela_esa_migrator.orchestrator.migration_report')

    def write_post_mappings(
        self,
        notes: Iterable[Note],
        filepath: str,
        kibela_url: str,
        esa_url: str
    ) -> int:
        """
        Write one tab-separated line per migrated note.

        Notes without an esa post are left out and logged.

        Args:
            notes: Notes in corpus order
            filepath: Output file path
            kibela_url: Kibela team base URL
            esa_url: esa team base URL

        Returns:
            Number of lines written
        """
        lines = 0
        with open(filepath, 'w', encoding='utf-8') as f:
            for note in notes:
                if not note.has_destination:
                    self.logger.warning(f"Note {note.id} ('{note.title}') has no esa post; left out of mapping")
                    continue
                f.write(MAPPING_LINE_TEMPLATE.format(
                    title=note.title,
                    kibela_url=kibela_url,
                    note_id=note.id,
                    esa_url=esa_url,
                    number=note.destination_id
                ))
                lines += 1

        self.logger.info(f"Wrote {lines} post mappings to {filepath}")
        return lines

    def generate_report(
        self,
        phase_stats: Dict[str, Any],
        migration_duration: float,
        dry_run: bool = False
    ) -> Dict[str, Any]:
        """
        Generate migration report.

        Args:
            phase_stats: Statistics from all stages
            migration_duration: Total migration duration in seconds
            dry_run: Whether the run sent anything to esa

        Returns:
            Migration report dictionary
        """
        report = {
            'summary': self._build_summary(phase_stats, migration_duration, dry_run),
            'phases': phase_stats,
            'errors': self._build_error_summary(phase_stats),
            'timestamp': datetime.now().isoformat()
        }

        self.logger.info(
            f"Report generated: {report['summary']['posts_created']} posts, "
            f"{report['summary']['total_errors']} errors"
        )
        return report

    def _build_summary(self, phase_stats: Dict[str, Any], duration: float, dry_run: bool) -> Dict[str, Any]:
        """Build high-level summary section."""
        read = phase_stats.get('read', {})
        upload = phase_stats.get('upload', {})
        create = phase_stats.get('create', {})
        rewrite = phase_stats.get('rewrite', {})
        mapping = phase_stats.get('report', {})

        return {
            'dry_run': dry_run,
            'duration_seconds': round(duration, 2),
            'duration_formatted': self._format_duration(duration),
            'notes_read': read.get('notes_loaded', 0),
            'attachments_uploaded': upload.get('uploaded', 0),
            'posts_created': create.get('created', 0),
            'comments_created': create.get('comments_created', 0),
            'posts_updated': rewrite.get('updated', 0),
            'mappings_written': mapping.get('lines_written', 0),
            'unresolved_links': len(phase_stats.get('links', {}).get('unresolved', [])),
            'total_errors': self._count_total_errors(phase_stats)
        }

    def _build_error_summary(self, phase_stats: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Aggregate errors from all stages."""
        all_errors = []

        for phase_name, stats in phase_stats.items():
            for error in stats.get('errors', []):
                error_copy = error.copy()
                error_copy['phase'] = phase_name
                all_errors.append(error_copy)

        return all_errors

    def _count_total_errors(self, phase_stats: Dict[str, Any]) -> int:
        return sum(len(stats.get('errors', [])) for stats in phase_stats.values())

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
        summary = report.get('summary', {})
        sections = []

        sections.append("=" * 60)
        sections.append("MIGRATION REPORT" + (" (DRY RUN)" if summary.get('dry_run') else ""))
        sections.append("=" * 60)
        sections.append("")

        sections.append("SUMMARY")
        sections.append("-" * 60)
        sections.append(f"Duration: {summary.get('duration_formatted', 'N/A')}")
        sections.append(f"Notes read: {summary.get('notes_read', 0)}")
        sections.append(f"Attachments uploaded: {summary.get('attachments_uploaded', 0)}")
        sections.append(f"Posts created: {summary.get('posts_created', 0)}")
        sections.append(f"Comments created: {summary.get('comments_created', 0)}")
        sections.append(f"Posts updated with links: {summary.get('posts_updated', 0)}")
        sections.append(f"Mappings written: {summary.get('mappings_written', 0)}")
        sections.append(f"Unresolved links: {summary.get('unresolved_links', 0)}")
        sections.append(f"Errors: {summary.get('total_errors', 0)}")
        sections.append("")

        errors = report.get('errors', [])
        if errors:
            sections.append("ERRORS")
            sections.append("-" * 60)
            for error in errors[:10]:
                target = error.get('note_id') or error.get('file') or error.get('attachment', '')
                sections.append(f"[{error['phase']}] {target}: {error.get('error', '')}")
            if len(errors) > 10:
                sections.append(f"... and {len(errors) - 10} more errors")
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
        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(report, f, indent=2, ensure_ascii=False, default=str)

        self.logger.info(f"JSON report exported to {filepath}")


__all__ = ['MigrationReport', 'MAPPING_LINE_TEMPLATE']
