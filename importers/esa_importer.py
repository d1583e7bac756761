"""
esa importer for Kibela to esa migration.

Builds esa payloads for notes and comments and performs the individual API
calls. Every mutating call is followed by a fixed pause so the run stays under
esa's rate limit.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional

from config_loader import MigrationConfig
from models import Attachment, Comment, Note
from .esa_client import EsaClient

POST_TIME_FORMAT = '%Y-%m-%d %H:%M:%S'
MIGRATION_MESSAGE = 'Migrate from Kibela'
COMMENT_ATTRIBUTION = '\n\n(投稿者：{handle})'


class EsaImporter:
    """
    Performs single esa calls for the migration stages.

    In dry-run mode no client is needed: every request is logged with a
    "[DRY RUN]" prefix and nothing is sent.
    """

    def __init__(
        self,
        config: MigrationConfig,
        client: Optional[EsaClient] = None,
        dry_run: bool = False,
        logger: Optional[logging.Logger] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize the esa importer.

        Args:
            config: Migration settings
            client: esa API client (may be None in dry-run mode)
            dry_run: If True, only log intended requests
            logger: Logger instance
            sleep: Pause function used for pacing
        """
        if client is None and not dry_run:
            raise ValueError("An esa client is required unless running in dry-run mode")

        self.config = config
        self.client = client
        self.dry_run = dry_run
        self.logger = logger or logging.getLogger('kibela_esa_migrator.importers.esa_importer')
        self._sleep = sleep

        self.stats = {
            'attachments_uploaded': 0,
            'posts_created': 0,
            'posts_updated': 0,
            'comments_created': 0
        }

    # ========================================================================
    # Payloads
    # ========================================================================

    def build_post_payload(self, note: Note, body: str) -> Dict[str, Any]:
        """
        Build the create/update payload for a note.

        Args:
            note: Source note
            body: Transformed markdown body

        Returns:
            {"post": {...}} request body
        """
        return {
            'post': {
                'name': note.title,
                'body_md': body,
                'tags': [],
                'category': note.category,
                'user': self.config.esa_user_for(note.author) or self.config.bot_user,
                'wip': note.is_wip,
                'created_at': note.published_at.strftime(POST_TIME_FORMAT),
                'message': MIGRATION_MESSAGE
            }
        }

    def build_comment_payload(self, comment: Comment, body: str) -> Dict[str, Any]:
        """
        Build the payload for a comment.

        Comments by authors without an esa account are posted by the bot user
        with the Kibela handle appended to the body.
        """
        user = self.config.esa_user_for(comment.author)
        if user is None:
            body = body + COMMENT_ATTRIBUTION.format(handle=comment.author)
            user = self.config.bot_user

        return {
            'comment': {
                'body_md': body,
                'user': user,
                'created_at': comment.published_at.strftime(POST_TIME_FORMAT)
            }
        }

    # ========================================================================
    # Calls
    # ========================================================================

    def upload_attachment(self, attachment: Attachment) -> Optional[str]:
        """
        Upload one attachment and record its esa URL.

        Returns:
            The uploaded file URL, or None in dry-run mode

        Raises:
            EsaApiError, requests.RequestException: If the upload fails
        """
        if self.dry_run:
            self.logger.info(f"[DRY RUN] Would upload attachment: {attachment.source_path}")
            return None

        self.logger.debug(f"Uploading attachment: {attachment.source_path}")
        try:
            response = self.client.upload_attachment(attachment.source_path)
        finally:
            self._pace()
        self.logger.debug(f"Upload response: {response}")

        url = response['attachment']['url']
        attachment.set_destination_path(url)
        self.stats['attachments_uploaded'] += 1
        return url

    def create_post(self, note: Note, body: str) -> Optional[Dict[str, Any]]:
        """
        Create the esa post for a note and record its destination.

        Returns:
            esa response (with 'number' and 'url'), or None in dry-run mode
        """
        payload = self.build_post_payload(note, body)
        if self.dry_run:
            self.logger.info(f"[DRY RUN] Would create post for note {note.id}: {payload}")
            return None

        self.logger.debug(f"Creating post for note {note.id}: {payload}")
        try:
            response = self.client.create_post(payload)
        finally:
            self._pace()
        self.logger.debug(f"Create response: {response}")

        note.set_destination(response['number'], response.get('url'))
        self.stats['posts_created'] += 1
        return response

    def create_comment(self, note: Note, comment: Comment, body: str) -> Optional[Dict[str, Any]]:
        """Post one comment on the note's esa post."""
        payload = self.build_comment_payload(comment, body)
        if self.dry_run:
            self.logger.info(f"[DRY RUN] Would create comment on note {note.id}: {payload}")
            return None

        self.logger.debug(f"Creating comment on post {note.destination_id}: {payload}")
        try:
            response = self.client.create_comment(note.destination_id, payload)
        finally:
            self._pace()
        self.logger.debug(f"Comment response: {response}")

        self.stats['comments_created'] += 1
        return response

    def update_post(self, note: Note, body: str) -> Optional[Dict[str, Any]]:
        """Replace the body of an already created post."""
        payload = self.build_post_payload(note, body)
        if self.dry_run:
            self.logger.info(f"[DRY RUN] Would update post for note {note.id}: {payload}")
            return None

        if not note.has_destination:
            raise ValueError(f"Note {note.id} has no esa post to update")

        self.logger.debug(f"Updating post {note.destination_id}: {payload}")
        try:
            response = self.client.update_post(note.destination_id, payload)
        finally:
            self._pace()
        self.logger.debug(f"Update response: {response}")

        self.stats['posts_updated'] += 1
        return response

    def _pace(self) -> None:
        if self.config.request_delay > 0:
            self._sleep(self.config.request_delay)

    def get_stats(self) -> Dict[str, Any]:
        """Return current statistics."""
        return self.stats.copy()


__all__ = ['EsaImporter', 'POST_TIME_FORMAT']
