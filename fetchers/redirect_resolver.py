"""Resolves Kibela wiki ids to note ids by following the wiki redirect."""

import logging
import re
from typing import Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from config_loader import MigrationConfig

logger = logging.getLogger('kibela_esa_migrator.fetchers.redirect_resolver')


class KibelaRedirectResolver:
    """
    Looks up the note id behind a Kibela wiki URL.

    Wiki pages and notes share the display id space, but the export is keyed by
    note id. Kibela answers GET /wikis/<id> with a redirect whose Location
    embeds the real note id. Instances are callable so they can be handed to
    the link rewriter as a plain lookup function.
    """

    RETRY_STATUSES = [429, 500, 502, 503, 504]

    def __init__(
        self,
        kibela_team: str,
        session_id: str,
        timeout: float = 30,
        max_retries: int = 3,
        retry_backoff_factor: float = 2.0,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the resolver.

        Args:
            kibela_team: Kibela team subdomain
            session_id: Value of the _session_id cookie of a logged-in browser
            timeout: HTTP request timeout in seconds
            max_retries: Maximum number of retries for failed lookups
            retry_backoff_factor: Exponential backoff factor between retries
            session: Optional pre-configured requests session
        """
        self.base_url = f"https://{kibela_team}.kibe.la"
        self.timeout = timeout
        self.note_url_pattern = re.compile(rf'https://{re.escape(kibela_team)}\.kibe\.la/notes/(\d+)')
        self._cache: Dict[str, Optional[str]] = {}

        if session is None:
            session = requests.Session()
            # Exhausted retries surface as requests.RetryError
            retry_strategy = Retry(
                total=max_retries,
                backoff_factor=retry_backoff_factor,
                status_forcelist=self.RETRY_STATUSES,
                allowed_methods=["HEAD", "GET", "OPTIONS"]
            )
            adapter = HTTPAdapter(max_retries=retry_strategy)
            session.mount("http://", adapter)
            session.mount("https://", adapter)
        self.session = session

        if session_id:
            self.session.cookies.set('_session_id', session_id)
        else:
            logger.warning("No Kibela session id configured; wiki links will not resolve")

    @classmethod
    def from_config(cls, config: MigrationConfig) -> 'KibelaRedirectResolver':
        return cls(
            kibela_team=config.kibela_team,
            session_id=config.kibela_session_id,
            timeout=config.request_timeout,
            max_retries=config.max_retries,
            retry_backoff_factor=config.retry_backoff_factor
        )

    def __call__(self, wiki_id: str) -> Optional[str]:
        return self.resolve(wiki_id)

    def resolve(self, wiki_id: str) -> Optional[str]:
        """
        Return the note id a wiki page redirects to.

        Args:
            wiki_id: Numeric id from a /wikis/ URL

        Returns:
            Note id, or None if the request fails or carries no redirect.
            Failed requests are not cached.
        """
        if wiki_id in self._cache:
            return self._cache[wiki_id]

        url = f"{self.base_url}/wikis/{wiki_id}"
        try:
            response = self.session.get(url, allow_redirects=False, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"Redirect lookup failed for wiki {wiki_id}: {e}")
            return None

        note_id = None
        location = response.headers.get('Location')
        if location:
            match = self.note_url_pattern.search(location)
            note_id = match.group(1) if match else None
        if note_id is None:
            logger.warning(
                f"Wiki {wiki_id} did not redirect to a note "
                f"(status={response.status_code}, location={location})"
            )

        logger.debug(f"Wiki {wiki_id} -> note {note_id}")
        self._cache[wiki_id] = note_id
        return note_id


__all__ = ['KibelaRedirectResolver']
