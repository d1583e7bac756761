"""
Content transformer for esa posts.

Rewrites Kibela markdown into the form esa expects. Every rule is a regex-level
rewrite; the markdown is never parsed into a tree, so the output stays
byte-identical outside the rewritten spots.
"""

import logging
import re
from datetime import datetime
from typing import Optional

from fetchers.note_reader import TITLE_LINE_PATTERN

LEADING_WHITESPACE_PATTERN = re.compile(r'\A\s+')
HEADING_SPACE_PATTERN = re.compile(r'^(#+)(\w)', re.MULTILINE)
PLANTUML_FENCE = '```{plantuml}'
UML_FENCE = '```uml'

FOOTER_TEMPLATE = (
    "> この記事は {source} からの移行記事です。\n"
    "> 作成者: {author}\n"
    "> 作成日: {date}"
)
SOURCE_SYSTEM_NAME = 'Kibela'


class ContentTransformer:
    """Transforms Kibela markdown bodies for esa storage."""

    def __init__(self, source_name: str = SOURCE_SYSTEM_NAME, logger: Optional[logging.Logger] = None):
        """
        Initialize content transformer.

        Args:
            source_name: System name used in the attribution footer
            logger: Optional logger instance (defaults to module logger)
        """
        self.source_name = source_name
        self.logger = logger or logging.getLogger('kibela_esa_migrator.converters.content_transformer')

    def transform(
        self,
        raw_body: str,
        is_document: bool,
        author: Optional[str] = None,
        published_at: Optional[datetime] = None
    ) -> str:
        """
        Convert a note or comment body into esa markdown.

        Note bodies lose their title line and leading blank lines and gain the
        attribution footer. Those steps are not idempotent, so each note body
        must go through here exactly once.

        Args:
            raw_body: Markdown as exported from Kibela
            is_document: True for note bodies, False for comments
            author: Kibela handle for the footer (notes only)
            published_at: Publication time for the footer (notes only)

        Returns:
            Transformed markdown
        """
        body = raw_body or ''

        if is_document:
            body = TITLE_LINE_PATTERN.sub('', body, count=1)
            body = LEADING_WHITESPACE_PATTERN.sub('', body)

        body = self.normalize(body)

        if is_document:
            body = f"{body}\n\n---\n\n{self.build_footer(author, published_at)}"

        self.logger.debug(f"Transformed {len(raw_body or '')} chars into {len(body)} chars")
        return body

    def normalize(self, text: str) -> str:
        """
        Apply the idempotent rewrites only.

        Adds the missing space after heading markers and renames the PlantUML
        fence to esa's uml fence.
        """
        text = HEADING_SPACE_PATTERN.sub(r'\1 \2', text)
        return text.replace(PLANTUML_FENCE, UML_FENCE)

    def build_footer(self, author: Optional[str], published_at: Optional[datetime]) -> str:
        """Render the attribution block appended to migrated notes."""
        date = published_at.strftime('%Y/%m/%d') if published_at else ''
        return FOOTER_TEMPLATE.format(source=self.source_name, author=author or '', date=date)


__all__ = ['ContentTransformer', 'FOOTER_TEMPLATE']
