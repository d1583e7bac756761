"""
ID mapping tracker for Kibela to esa migration.

This module tracks the mapping between Kibela note ids and the esa posts
created for them. The mapping is filled while posts are created and frozen
before cross references are rewritten.
"""

import logging
from typing import Dict, NamedTuple, Optional


class MappedPost(NamedTuple):
    """esa post created for a Kibela note."""
    destination_id: int
    title: str
    destination_url: Optional[str] = None


class IdMappingTracker:
    """Tracks mappings between Kibela note ids and esa post numbers."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        """
        Initialize ID mapping tracker.

        Args:
            logger: Optional logger instance (defaults to module logger)
        """
        self.logger = logger or logging.getLogger('kibela_esa_migrator.importers.id_mapping_tracker')

        # Kibela note id -> esa post
        self._note_to_post: Dict[str, MappedPost] = {}

        self._frozen = False

        self.logger.debug("Initialized IdMappingTracker")

    def add_mapping(
        self,
        note_id: str,
        destination_id: int,
        title: str,
        destination_url: Optional[str] = None
    ) -> None:
        """
        Store the esa post created for a Kibela note.

        Args:
            note_id: Kibela note id
            destination_id: esa post number
            title: Post title used as link text
            destination_url: esa post URL

        Raises:
            RuntimeError: If the mapping has been frozen
            ValueError: If the note is already mapped
        """
        if self._frozen:
            raise RuntimeError(
                f"Cannot map note {note_id}: mapping is frozen once posts are created"
            )
        if note_id in self._note_to_post:
            raise ValueError(
                f"Note {note_id} already mapped to post {self._note_to_post[note_id].destination_id}"
            )

        self._note_to_post[note_id] = MappedPost(destination_id, title, destination_url)

        self.logger.debug(f"Mapping added: note {note_id} -> post {destination_id}")

    def freeze(self) -> None:
        """Make the mapping read-only."""
        self._frozen = True
        self.logger.debug(f"Mapping frozen with {len(self)} posts")

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    def get(self, note_id: str, default: Optional[MappedPost] = None) -> Optional[MappedPost]:
        """
        Get the esa post for a Kibela note id.

        Args:
            note_id: Kibela note id
            default: Value returned when the note is not mapped

        Returns:
            MappedPost or default
        """
        return self._note_to_post.get(note_id, default)

    def __len__(self) -> int:
        return len(self._note_to_post)
