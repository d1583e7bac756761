"""Link rewriter for attachment images and cross-note references."""

import logging
import re
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from bs4 import BeautifulSoup

from fetchers.attachment_registry import AttachmentRegistry

ATTACHMENT_URL_PATTERN = re.compile(
    r'^(?!.*https?:)(?:.*/)?attachments/(?P<name>\d+\.(?:png|jpe?g|gif))(?=$|[?#])',
    re.IGNORECASE
)
MARKDOWN_IMAGE_PATTERN = re.compile(r'(!\[[^\]]*\]\()([^\)\s]*)(\))')

RedirectLookup = Callable[[str], Optional[str]]


class LinkRewriter:
    """
    Rewrites links in note bodies for esa.

    Two independent passes run over the same text:
    1. Attachment links: relative attachments/<id>.<ext> image URLs become the
       uploaded esa file URL. Runs while posts are created.
    2. Cross references: Kibela note and wiki URLs become links to the
       migrated esa post. Runs only after every note has an esa post number.

    References that cannot be resolved are left untouched and recorded.
    """

    def __init__(
        self,
        kibela_team: str,
        redirect_lookup: Optional[RedirectLookup] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the link rewriter.

        Args:
            kibela_team: Kibela team subdomain the references point at
            redirect_lookup: Callable mapping a wiki id to its note id
            logger: Logger instance
        """
        self.logger = logger or logging.getLogger('kibela_esa_migrator.converters.link_rewriter')
        self.redirect_lookup = redirect_lookup
        self.reference_pattern = re.compile(
            rf'https://{re.escape(kibela_team)}\.kibe\.la/(wikis|notes|)(?:/|%|\w)*/(\d+)'
        )

        self.stats = {
            'attachment_links_rewritten': 0,
            'cross_references_rewritten': 0,
            'unresolved': []
        }

    # ========================================================================
    # Attachment links
    # ========================================================================

    def rewrite_attachment_links(
        self,
        body: str,
        registry: AttachmentRegistry,
        context: str = ''
    ) -> str:
        """
        Point attachment image URLs at their uploaded esa location.

        Args:
            body: Markdown body, possibly containing <img> tags
            registry: Attachments indexed by file name
            context: Label for log messages (e.g. "note 123")

        Returns:
            Body with resolvable image URLs replaced
        """
        if not body:
            return body

        for src in self._find_img_sources(body):
            match = ATTACHMENT_URL_PATTERN.match(src)
            if not match:
                continue
            destination = self._resolve_attachment(match.group('name'), src, registry, context)
            if destination is None:
                continue
            src_attribute = re.compile(r'(\bsrc\s*=\s*["\']?)' + re.escape(src) + r'(?=["\'\s>/]|$)')
            body, count = src_attribute.subn(lambda m: m.group(1) + destination, body)
            self.stats['attachment_links_rewritten'] += count

        def replace_markdown_image(match: re.Match) -> str:
            url = match.group(2)
            url_match = ATTACHMENT_URL_PATTERN.match(url)
            if not url_match:
                return match.group(0)
            destination = self._resolve_attachment(url_match.group('name'), url, registry, context)
            if destination is None:
                return match.group(0)
            self.stats['attachment_links_rewritten'] += 1
            return f"{match.group(1)}{destination}{match.group(3)}"

        return MARKDOWN_IMAGE_PATTERN.sub(replace_markdown_image, body)

    def _find_img_sources(self, body: str) -> List[str]:
        """Collect distinct <img src> values in document order."""
        if '<img' not in body.lower():
            return []

        soup = BeautifulSoup(body, 'lxml')
        sources = []
        for img in soup.find_all('img'):
            src = img.get('src')
            if src and src not in sources:
                sources.append(src)
        return sources

    def _resolve_attachment(
        self,
        name: str,
        url: str,
        registry: AttachmentRegistry,
        context: str
    ) -> Optional[str]:
        attachment = registry.get(name)
        if attachment is None:
            self._record_unresolved('attachment', url, context, 'not in export')
            return None
        if not attachment.is_uploaded:
            self._record_unresolved('attachment', url, context, 'not uploaded')
            return None
        return attachment.destination_path

    # ========================================================================
    # Cross references
    # ========================================================================

    def has_cross_references(self, body: str) -> bool:
        """Cheap pre-filter: does the body mention any Kibela note or wiki URL."""
        return bool(body) and self.reference_pattern.search(body) is not None

    def rewrite_cross_references(
        self,
        body: str,
        mapping: Mapping[str, Tuple[int, str]],
        context: str = ''
    ) -> str:
        """
        Replace Kibela note/wiki URLs with links to the migrated esa posts.

        Args:
            body: Markdown body
            mapping: Note id -> (esa post number, title)
            context: Label for log messages

        Returns:
            Body with resolvable references replaced by
            "[<number>: <title>](/posts/<number>)"
        """
        if not body:
            return body

        def replace_reference(match: re.Match) -> str:
            kind, ref_id = match.group(1), match.group(2)
            note_id = self._lookup_note_id(kind, ref_id)

            mapped = mapping.get(note_id) if note_id is not None else None
            if mapped is None:
                self._record_unresolved('reference', match.group(0), context, 'note not migrated')
                return match.group(0)

            destination_id, title = mapped[0], mapped[1]
            self.stats['cross_references_rewritten'] += 1
            return f"[{destination_id}: {title}](/posts/{destination_id})"

        return self.reference_pattern.sub(replace_reference, body)

    def _lookup_note_id(self, kind: str, ref_id: str) -> Optional[str]:
        if kind != 'wikis':
            return ref_id
        if self.redirect_lookup is None:
            self.logger.debug(f"No redirect lookup configured for wiki {ref_id}")
            return None
        return self.redirect_lookup(ref_id)

    def _record_unresolved(self, ref_type: str, url: str, context: str, reason: str) -> None:
        self.logger.warning(f"Unresolved {ref_type} in {context or 'body'}: {url} ({reason})")
        self.stats['unresolved'].append({
            'type': ref_type,
            'url': url,
            'context': context,
            'reason': reason
        })

    def get_stats(self) -> Dict[str, Any]:
        """Return current statistics."""
        stats = self.stats.copy()
        stats['unresolved'] = list(self.stats['unresolved'])
        return stats


__all__ = ['LinkRewriter', 'ATTACHMENT_URL_PATTERN']
