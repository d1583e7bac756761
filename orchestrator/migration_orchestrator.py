"""
Migration orchestrator for coordinating the Kibela to esa pipeline.

This module provides the central coordinator that sequences the migration
stages: Read → Upload → Create → Rewrite → Report. Each stage finishes for the
whole corpus before the next one starts, because cross references can only be
rewritten once every note has an esa post number.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional

import requests

from config_loader import MigrationConfig
from converters import ContentTransformer, LinkRewriter
from fetchers import AttachmentRegistry, KibelaRedirectResolver, NoteReader
from importers import EsaApiError, EsaClient, EsaImporter, IdMappingTracker
from logger import log_section, ProgressTracker
from models import Note
from orchestrator.migration_report import MigrationReport

API_ERRORS = (EsaApiError, requests.RequestException)


class MigrationOrchestrator:
    """Central coordinator sequencing all migration stages."""

    def __init__(
        self,
        config: MigrationConfig,
        client: Optional[EsaClient] = None,
        redirect_lookup: Optional[Callable[[str], Optional[str]]] = None,
        logger: Optional[logging.Logger] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize migration orchestrator.

        Args:
            config: Migration settings
            client: esa client (built from config when needed and not given)
            redirect_lookup: Wiki id to note id lookup (a Kibela resolver is
                built from config when needed and not given)
            logger: Optional logger instance
            sleep: Pause function used for pacing
        """
        self.config = config
        self.client = client
        self.redirect_lookup = redirect_lookup
        self.logger = logger or logging.getLogger('kibela_esa_migrator.orchestrator.migration_orchestrator')
        self._sleep = sleep

        self.reader = NoteReader(config, self.logger)
        self.transformer = ContentTransformer(logger=self.logger)
        self.mapping = IdMappingTracker(self.logger)
        self.report_generator = MigrationReport(self.logger)

        self.notes: Dict[str, Note] = {}
        self.registry: Optional[AttachmentRegistry] = None
        self.link_rewriter: Optional[LinkRewriter] = None
        self.importer: Optional[EsaImporter] = None

        self.logger.info(
            f"MigrationOrchestrator initialized: kibela={config.kibela_team}, "
            f"esa={config.esa_team}, root_category={config.root_category}"
        )

    def prepare(self) -> 'MigrationOrchestrator':
        """Read the export: every note and the attachment registry."""
        log_section("Stage 0: Read Export")
        self.notes = self.reader.read_corpus()
        self.registry = AttachmentRegistry.from_export(self.config, logger=self.logger)
        return self

    def orchestrate_migration(self, dry_run: Optional[bool] = None) -> Dict[str, Any]:
        """
        Orchestrate the complete migration pipeline.

        Args:
            dry_run: Override the configured dry-run flag

        Returns:
            Report dictionary
        """
        dry_run = self.config.dry_run if dry_run is None else dry_run
        self.logger.info(f"Starting migration orchestration (dry_run={dry_run})")
        start_time = time.time()

        if self.registry is None:
            self.prepare()

        self._setup_components(dry_run)

        phase_stats: Dict[str, Any] = {'read': self.reader.get_stats()}
        phase_stats['upload'] = self._execute_upload(dry_run)
        phase_stats['create'] = self._execute_create(dry_run)
        phase_stats['rewrite'] = self._execute_rewrite(dry_run)

        if dry_run:
            self.logger.info("[DRY RUN] Skipping post mapping report; no esa posts exist")
        else:
            phase_stats['report'] = self._execute_report()

        phase_stats['links'] = self.link_rewriter.get_stats()

        migration_duration = time.time() - start_time
        report = self.report_generator.generate_report(phase_stats, migration_duration, dry_run)

        if self.config.report_path:
            self.report_generator.export_json_report(report, self.config.report_path)

        self.logger.info(f"Migration orchestration complete in {migration_duration:.2f}s")
        return report

    def _setup_components(self, dry_run: bool) -> None:
        """Create the rewriter and importer for this run."""
        lookup = None
        client = None
        if not dry_run:
            if self.redirect_lookup is None:
                self.redirect_lookup = KibelaRedirectResolver.from_config(self.config)
            if self.client is None:
                self.client = EsaClient.from_config(self.config)
            lookup = self.redirect_lookup
            client = self.client

        self.link_rewriter = LinkRewriter(self.config.kibela_team, lookup, self.logger)
        self.importer = EsaImporter(self.config, client, dry_run, self.logger, self._sleep)

    # ========================================================================
    # Stage 1: Upload
    # ========================================================================

    def _execute_upload(self, dry_run: bool) -> Dict[str, Any]:
        """
        Upload every attachment to esa.

        A failed upload is logged and skipped; image links to it stay as they
        are in the source.
        """
        log_section("Stage 1: Upload Attachments")

        stats = {
            'total': len(self.registry),
            'uploaded': 0,
            'failed': 0,
            'errors': []
        }

        if not len(self.registry):
            self.logger.info("No attachments to upload")
            return stats

        with ProgressTracker(total_items=len(self.registry), item_type='attachments') as tracker:
            for attachment in self.registry:
                try:
                    url = self.importer.upload_attachment(attachment)
                except API_ERRORS as e:
                    self.logger.error(f"Failed to upload attachment {attachment.source_path}: {e}")
                    stats['failed'] += 1
                    stats['errors'].append({'attachment': attachment.name, 'error': str(e)})
                    tracker.increment(success=False)
                    continue

                if url is not None:
                    stats['uploaded'] += 1
                tracker.increment(success=True)

        self.logger.info(f"Stage 1 complete: {stats['uploaded']} uploaded, {stats['failed']} failed")
        return stats

    # ========================================================================
    # Stage 2: Create
    # ========================================================================

    def _execute_create(self, dry_run: bool) -> Dict[str, Any]:
        """Create one esa post per note, then its comments."""
        log_section("Stage 2: Create Posts")

        stats = {
            'total': len(self.notes),
            'created': 0,
            'failed': 0,
            'comments_created': 0,
            'comments_failed': 0,
            'errors': []
        }

        with ProgressTracker(total_items=len(self.notes), item_type='notes') as tracker:
            for note in self.notes.values():
                context = f"note {note.id}"
                body = self.link_rewriter.rewrite_attachment_links(note.body, self.registry, context)
                body = self.transformer.transform(
                    body,
                    is_document=True,
                    author=note.author,
                    published_at=note.published_at
                )
                note.body = body

                try:
                    response = self.importer.create_post(note, body)
                except API_ERRORS as e:
                    self.logger.error(f"Failed to create post for note {note.id} ('{note.title}'): {e}")
                    stats['failed'] += 1
                    stats['errors'].append({'note_id': note.id, 'title': note.title, 'error': str(e)})
                    tracker.increment(success=False)
                    continue

                if response is not None:
                    self.mapping.add_mapping(note.id, note.destination_id, note.title, note.destination_url)
                    stats['created'] += 1

                self._create_comments(note, stats)
                tracker.increment(success=True)

        self.mapping.freeze()
        self.logger.info(
            f"Stage 2 complete: {stats['created']} posts created, {stats['failed']} failed, "
            f"{stats['comments_created']} comments created, {stats['comments_failed']} comments failed"
        )
        return stats

    def _create_comments(self, note: Note, stats: Dict[str, Any]) -> None:
        for index, comment in enumerate(note.comments):
            context = f"comment {index} on note {note.id}"
            body = self.transformer.transform(comment.content, is_document=False)
            body = self.link_rewriter.rewrite_attachment_links(body, self.registry, context)

            try:
                response = self.importer.create_comment(note, comment, body)
            except API_ERRORS as e:
                self.logger.error(f"Failed to create {context}: {e}")
                stats['comments_failed'] += 1
                stats['errors'].append({'note_id': note.id, 'comment': index, 'error': str(e)})
                continue

            if response is not None:
                stats['comments_created'] += 1

    # ========================================================================
    # Stage 3: Rewrite
    # ========================================================================

    def _execute_rewrite(self, dry_run: bool) -> Dict[str, Any]:
        """Point cross references at the migrated posts and update those posts."""
        log_section("Stage 3: Rewrite Cross References")

        stats = {
            'candidates': 0,
            'updated': 0,
            'failed': 0,
            'errors': []
        }

        candidates = [
            note for note in self.notes.values()
            if self.link_rewriter.has_cross_references(note.body)
        ]
        stats['candidates'] = len(candidates)

        if not dry_run:
            candidates = [note for note in candidates if note.has_destination]

        with ProgressTracker(total_items=len(candidates), item_type='posts') as tracker:
            for note in candidates:
                body = self.link_rewriter.rewrite_cross_references(note.body, self.mapping, f"note {note.id}")
                body = self.transformer.normalize(body)
                note.body = body

                try:
                    response = self.importer.update_post(note, body)
                except API_ERRORS as e:
                    self.logger.error(f"Failed to update post {note.destination_id} for note {note.id}: {e}")
                    stats['failed'] += 1
                    stats['errors'].append({'note_id': note.id, 'title': note.title, 'error': str(e)})
                    tracker.increment(success=False)
                    continue

                if response is not None:
                    stats['updated'] += 1
                tracker.increment(success=True)

        self.logger.info(f"Stage 3 complete: {stats['updated']} posts updated, {stats['failed']} failed")
        return stats

    # ========================================================================
    # Stage 4: Report
    # ========================================================================

    def _execute_report(self) -> Dict[str, Any]:
        """Write the Kibela URL to esa URL mapping file."""
        log_section("Stage 4: Post Mapping Report")

        stats = {
            'path': self.config.output_path,
            'lines_written': 0,
            'skipped': sum(1 for note in self.notes.values() if not note.has_destination)
        }

        if not self.config.output_path:
            self.logger.warning("No output path configured; post mapping report not written")
            return stats

        stats['lines_written'] = self.report_generator.write_post_mappings(
            self.notes.values(),
            self.config.output_path,
            self.config.kibela_url,
            self.config.esa_url
        )
        return stats


__all__ = ['MigrationOrchestrator']
