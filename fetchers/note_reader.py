"""Reader for Kibela export files.

Turns each exported markdown file (YAML front matter + body) into a Note and
scans an export directory into an ordered, id-keyed corpus.
"""

import logging
import re
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml
from dateutil import parser as date_parser
from tqdm import tqdm

from config_loader import MigrationConfig
from models import Comment, Note

# First line carrying exactly one leading '#'
TITLE_LINE_PATTERN = re.compile(r'^#(?!#)[^\n]*(?:\n|\Z)', re.MULTILINE)
FRONT_MATTER_PATTERN = re.compile(r'\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)(.*)\Z', re.DOTALL)
FOLDER_PREFIX_PATTERN = re.compile(r'^\w+\s*/\s*')


class NoteReadError(Exception):
    """Base class for export files that cannot be turned into a Note."""

    def __init__(self, path: Union[str, Path], message: str, note_id: Optional[str] = None):
        self.path = str(path)
        self.note_id = note_id
        self.message = message
        super().__init__(f"{self.path} (id={note_id or 'unknown'}): {message}")


class PathFormatError(NoteReadError):
    """The file path does not follow the Kibela export layout."""


class ParseError(NoteReadError):
    """The front matter block is missing or malformed."""


class MissingTitleError(NoteReadError):
    """The body has no top-level heading to use as title."""


class DateParseError(NoteReadError):
    """A publication timestamp could not be parsed."""


def extract_title(body: str) -> Optional[str]:
    """
    Extract the note title from the first top-level heading.

    The marker is removed, whitespace trimmed and '/' escaped as '&#47;'
    because esa treats slashes in post names as category separators.

    Args:
        body: Markdown body

    Returns:
        Title or None if the body has no top-level heading
    """
    match = TITLE_LINE_PATTERN.search(body)
    if not match:
        return None
    return match.group(0)[1:].rstrip('\n').replace('/', '&#47;').strip()


def derive_category(root_category: str, folders: Optional[List[str]]) -> str:
    """
    Build the esa category from the migration root and the first Kibela folder.

    A leading "Group/" segment of the folder is dropped.

    Args:
        root_category: Category all migrated posts go under
        folders: Kibela folder list from front matter

    Returns:
        Category path without trailing slash
    """
    first_folder = folders[0] if folders else None
    folder = FOLDER_PREFIX_PATTERN.sub('', str(first_folder), count=1) if first_folder else ''
    category = f"{root_category}/{folder}".strip()
    if category.endswith('/'):
        category = category[:-1]
    return category


def parse_timestamp(value: Any, path: Union[str, Path], note_id: Optional[str] = None) -> datetime:
    """Parse an ISO-like timestamp from front matter."""
    # YAML already turns unquoted timestamps into datetime/date objects
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str) or not value.strip():
        raise DateParseError(path, f"Missing or invalid published_at: {value!r}", note_id)
    try:
        return date_parser.parse(value)
    except (ValueError, OverflowError) as e:
        raise DateParseError(path, f"Cannot parse published_at {value!r}: {e}", note_id)


def strip_handle(handle: Any) -> str:
    return str(handle or '').strip().lstrip('@')


class NoteReader:
    """
    Reads a Kibela export into Note objects.

    This reader:
    1. Validates each file path against the export layout
    2. Parses YAML front matter and markdown body
    3. Derives title, category, author, kind and comments
    4. Scans the export root in a stable order, skipping or aborting on bad files
    """

    def __init__(self, config: MigrationConfig, logger: Optional[logging.Logger] = None):
        """
        Initialize the note reader.

        Args:
            config: Migration settings
            logger: Logger instance
        """
        self.config = config
        self.logger = logger or logging.getLogger('kibela_esa_migrator.fetchers.note_reader')

        team = re.escape(config.kibela_team)
        self.path_pattern = re.compile(
            rf'^.*/kibela-{team}-\d+/(?P<kind>wikis|blogs|notes)/(?:.*/)?(?P<id>\d+)-(?P<name>[^/]*)\.md$'
        )

        self.stats = {
            'files_scanned': 0,
            'notes_loaded': 0,
            'files_failed': 0,
            'duplicates': 0,
            'comments_loaded': 0,
            'errors': []
        }

    def read_corpus(self, export_dir: Optional[Union[str, Path]] = None) -> Dict[str, Note]:
        """
        Scan the export directory and parse every note file.

        Args:
            export_dir: Directory holding kibela-<team>-N export roots
                (defaults to the configured export directory)

        Returns:
            Notes keyed by id, in sorted path order

        Raises:
            NoteReadError: For the first bad file when skip_invalid_notes is off
        """
        root = Path(export_dir or self.config.kibela_dir)
        md_files = self.scan_note_files(root)
        self.stats['files_scanned'] = len(md_files)

        if not md_files:
            self.logger.warning(f"No note files found under {root}")
            return {}

        self.logger.info(f"Found {len(md_files)} note files to process")

        notes: Dict[str, Note] = {}
        for file_path in tqdm(md_files, desc="Reading notes", unit="file"):
            try:
                note = self.read_note(file_path)
            except NoteReadError as e:
                self.stats['files_failed'] += 1
                self.stats['errors'].append({'file': e.path, 'id': e.note_id, 'error': e.message})
                if not self.config.skip_invalid_notes:
                    self.logger.error(f"Aborting on invalid note: {e}")
                    raise
                self.logger.error(f"Skipping invalid note: {e}")
                continue

            if note.id in notes:
                self.stats['duplicates'] += 1
                self.stats['errors'].append({
                    'file': str(file_path),
                    'id': note.id,
                    'error': f"Duplicate note id, already read from {notes[note.id].source_path}"
                })
                self.logger.error(
                    f"Skipping duplicate note id {note.id}: {file_path} "
                    f"(already read from {notes[note.id].source_path})"
                )
                continue

            notes[note.id] = note
            self.stats['notes_loaded'] += 1
            self.stats['comments_loaded'] += len(note.comments)

        self._log_read_summary()
        return notes

    def scan_note_files(self, export_dir: Path) -> List[Path]:
        """Find all markdown files under the team's export roots, sorted."""
        md_files = []
        for export_root in sorted(export_dir.glob(f"kibela-{self.config.kibela_team}-*")):
            if export_root.is_dir():
                md_files.extend(p for p in export_root.rglob("*.md") if p.is_file())
        md_files.sort()
        return md_files

    def read_note(self, file_path: Union[str, Path]) -> Note:
        """
        Parse one export file into a Note.

        Args:
            file_path: Path of the exported markdown file

        Returns:
            Parsed Note

        Raises:
            PathFormatError: Path does not match the export layout
            ParseError: Front matter missing or malformed
            MissingTitleError: No top-level heading in the body
            DateParseError: Malformed publication timestamp
        """
        file_path = Path(file_path)
        self.logger.debug(f"Read: {file_path}")

        match = self.path_pattern.match(file_path.as_posix())
        if not match:
            raise PathFormatError(file_path, "Path does not match the Kibela export layout")

        note_id = match.group('id')

        try:
            content = file_path.read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            raise ParseError(file_path, f"Cannot read file: {e}", note_id)

        front_matter, body = self.parse_front_matter(content, file_path, note_id)
        return self.build_note(note_id, match.group('kind'), file_path, front_matter, body)

    def parse_front_matter(
        self,
        content: str,
        file_path: Union[str, Path] = '<string>',
        note_id: Optional[str] = None
    ) -> Tuple[Dict[str, Any], str]:
        """
        Split file content into front matter and markdown body.

        Args:
            content: Full file content
            file_path: Source path for error reporting
            note_id: Note id for error reporting

        Returns:
            Tuple of (front matter dict, markdown body)

        Raises:
            ParseError: If the front matter is absent or not a YAML mapping
        """
        match = FRONT_MATTER_PATTERN.match(content)
        if not match:
            raise ParseError(file_path, "Front matter block not found", note_id)

        try:
            front_matter = yaml.safe_load(match.group(1))
        except yaml.YAMLError as e:
            raise ParseError(file_path, f"Malformed front matter: {e}", note_id)

        if not isinstance(front_matter, dict):
            raise ParseError(file_path, "Front matter is not a mapping", note_id)

        return front_matter, match.group(2)

    def build_note(
        self,
        note_id: str,
        source_kind: str,
        file_path: Union[str, Path],
        front_matter: Dict[str, Any],
        body: str
    ) -> Note:
        """Derive all Note fields from parsed front matter and body."""
        title = extract_title(body)
        if title is None:
            raise MissingTitleError(file_path, "No top-level heading found", note_id)

        published_at = parse_timestamp(front_matter.get('published_at'), file_path, note_id)

        comments = []
        for raw in front_matter.get('comments') or []:
            if not isinstance(raw, dict):
                raise ParseError(file_path, f"Malformed comment record: {raw!r}", note_id)
            comments.append(Comment(
                content=str(raw.get('content') or ''),
                author=strip_handle(raw.get('author')),
                published_at=parse_timestamp(raw.get('published_at'), file_path, note_id)
            ))

        return Note(
            id=note_id,
            title=title,
            category=derive_category(self.config.root_category, front_matter.get('folders')),
            body=body,
            author=strip_handle(front_matter.get('author')),
            published_at=published_at,
            source_kind=source_kind,
            source_path=str(file_path),
            metadata=front_matter,
            comments=comments
        )

    def _log_read_summary(self) -> None:
        """Log summary of the corpus scan."""
        self.logger.info("=" * 60)
        self.logger.info("NOTE READER SUMMARY")
        self.logger.info("=" * 60)
        self.logger.info(f"Files scanned: {self.stats['files_scanned']}")
        self.logger.info(f"Notes loaded: {self.stats['notes_loaded']}")
        self.logger.info(f"Comments loaded: {self.stats['comments_loaded']}")
        self.logger.info(f"Files failed: {self.stats['files_failed']}")
        self.logger.info(f"Duplicate ids: {self.stats['duplicates']}")

        if self.stats['errors']:
            self.logger.warning(f"Total errors: {len(self.stats['errors'])}")
            for error in self.stats['errors'][:5]:
                self.logger.warning(f"  - {error['file']}: {error['error']}")
            if len(self.stats['errors']) > 5:
                self.logger.warning(
                    f"  ... and {len(self.stats['errors']) - 5} more errors"
                )

        self.logger.info("=" * 60)

    def get_stats(self) -> Dict[str, Any]:
        """Return current statistics."""
        return self.stats.copy()


__all__ = [
    'NoteReader',
    'NoteReadError',
    'PathFormatError',
    'ParseError',
    'MissingTitleError',
    'DateParseError',
    'extract_title',
    'derive_category'
]
