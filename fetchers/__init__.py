"""Fetchers package for reading a Kibela markdown export."""

from .note_reader import (
    NoteReader,
    NoteReadError,
    PathFormatError,
    ParseError,
    MissingTitleError,
    DateParseError
)
from .attachment_registry import AttachmentRegistry
from .redirect_resolver import KibelaRedirectResolver

__all__ = [
    'NoteReader',
    'NoteReadError',
    'PathFormatError',
    'ParseError',
    'MissingTitleError',
    'DateParseError',
    'AttachmentRegistry',
    'KibelaRedirectResolver'
]
