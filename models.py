"""Data models for the Kibela to esa migration pipeline."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger('kibela_esa_migrator')


class NoteKind(Enum):
    """esa post kind derived from Kibela's coediting flag."""
    FLOW = "flow"
    STOCK = "stock"


@dataclass
class Comment:
    """A comment on a Kibela note. Owned by its parent note."""

    content: str
    author: str
    published_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Serialize comment to dictionary."""
        return {
            'content': self.content,
            'author': self.author,
            'published_at': self.published_at.isoformat()
        }


@dataclass
class Attachment:
    """An image file from the export's attachments directory."""

    name: str
    source_path: str
    destination_path: Optional[str] = None

    @property
    def is_uploaded(self) -> bool:
        return self.destination_path is not None

    def set_destination_path(self, url: str) -> None:
        """Record the esa URL of the uploaded file. May only happen once."""
        if self.destination_path is not None:
            raise ValueError(
                f"Attachment '{self.name}' already uploaded to {self.destination_path}"
            )
        self.destination_path = url

    def to_dict(self) -> Dict[str, Any]:
        """Serialize attachment to dictionary."""
        return {
            'name': self.name,
            'source_path': self.source_path,
            'destination_path': self.destination_path
        }


@dataclass
class Note:
    """Represents one exported Kibela wiki, blog or note page."""

    id: str
    title: str
    category: str
    body: str
    author: str
    published_at: datetime
    source_kind: str
    source_path: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    comments: List[Comment] = field(default_factory=list)
    destination_id: Optional[int] = None
    destination_url: Optional[str] = None

    @property
    def kind(self) -> NoteKind:
        """Coedited notes become flow posts, everything else stock."""
        return NoteKind.FLOW if self.metadata.get('coediting') else NoteKind.STOCK

    @property
    def is_wip(self) -> bool:
        return 'wip' in self.title.lower()

    @property
    def has_destination(self) -> bool:
        return self.destination_id is not None

    def set_destination(self, destination_id: int, destination_url: Optional[str] = None) -> None:
        """
        Record the esa post created for this note.

        Args:
            destination_id: esa post number
            destination_url: esa post URL

        Raises:
            ValueError: If the note already has a destination
        """
        if self.destination_id is not None:
            raise ValueError(
                f"Note {self.id} already migrated as post {self.destination_id}"
            )
        self.destination_id = destination_id
        self.destination_url = destination_url
        logger.debug(f"Note {self.id} -> esa post {destination_id}")

    def to_dict(self) -> Dict[str, Any]:
        """Serialize note to dictionary."""
        return {
            'id': self.id,
            'title': self.title,
            'category': self.category,
            'author': self.author,
            'published_at': self.published_at.isoformat(),
            'kind': self.kind.value,
            'source_kind': self.source_kind,
            'source_path': self.source_path,
            'comments': [c.to_dict() for c in self.comments],
            'destination_id': self.destination_id,
            'destination_url': self.destination_url
        }

    def __eq__(self, other: Any) -> bool:
        """Compare notes by ID."""
        if not isinstance(other, Note):
            return False
        return self.id == other.id

    def __hash__(self) -> int:
        """Hash note by ID."""
        return hash(self.id)


__all__ = ['NoteKind', 'Comment', 'Attachment', 'Note']
