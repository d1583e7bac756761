"""
esa REST API client for the Kibela migrator.

This module provides a client wrapper for the esa v1 API, handling
authentication, retries with exponential backoff, and the calls the migration
needs: posts, comments and attachment uploads.
"""

import logging
import mimetypes
import os
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from config_loader import MigrationConfig

logger = logging.getLogger('kibela_esa_migrator.importers.esa_client')


class EsaApiError(Exception):
    """Raised when esa rejects a request or reports an error in its body."""

    def __init__(self, status_code: Optional[int], error: str, message: str):
        """
        Initialize API error.

        Args:
            status_code: HTTP status (None for errors reported in a 2xx body)
            error: esa error code
            message: Human-readable error message
        """
        self.status_code = status_code
        self.error = error
        self.message = message
        super().__init__(f"[{status_code}] {error}: {message}")


class EsaClient:
    """esa REST API client with retry logic."""

    API_BASE_URL = 'https://api.esa.io'
    DEFAULT_TIMEOUT = 30
    DEFAULT_MAX_RETRIES = 3
    DEFAULT_RETRY_BACKOFF = 2.0
    RETRY_STATUSES = [429, 500, 502, 503, 504]

    def __init__(
        self,
        team: str,
        access_token: str,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_backoff_factor: float = DEFAULT_RETRY_BACKOFF,
        base_url: str = API_BASE_URL
    ):
        """
        Initialize esa client.

        Args:
            team: esa team name (the subdomain of <team>.esa.io)
            access_token: Personal access token with write scope
            timeout: Request timeout in seconds
            max_retries: Maximum number of retries for failed requests
            retry_backoff_factor: Exponential backoff factor between retries
            base_url: API root URL
        """
        self.team = team
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout

        retry_strategy = Retry(
            total=max_retries,
            backoff_factor=retry_backoff_factor,
            status_forcelist=self.RETRY_STATUSES,
            allowed_methods=frozenset(['GET', 'POST', 'PATCH']),
            respect_retry_after_header=True,
            raise_on_status=False
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)

        self.session = requests.Session()
        self.session.headers.update({
            'Authorization': f'Bearer {access_token}',
            'Accept': 'application/json'
        })
        self.session.mount('http://', adapter)
        self.session.mount('https://', adapter)

        # Attachment bodies go to S3 with the signed policy, not the esa token
        self.upload_session = requests.Session()
        self.upload_session.mount('http://', adapter)
        self.upload_session.mount('https://', adapter)

        logger.debug(
            f"Initialized esa client for team {team} "
            f"(retries={max_retries}, backoff={retry_backoff_factor})"
        )

    @classmethod
    def from_config(cls, config: MigrationConfig) -> 'EsaClient':
        """
        Initialize esa client from migration settings.

        Args:
            config: Migration settings

        Returns:
            EsaClient instance
        """
        return cls(
            team=config.esa_team,
            access_token=config.esa_access_token,
            timeout=config.request_timeout,
            max_retries=config.max_retries,
            retry_backoff_factor=config.retry_backoff_factor
        )

    def _make_request(
        self,
        method: str,
        endpoint: str,
        json: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Make an API request; retries happen in the mounted adapter.

        Args:
            method: HTTP method
            endpoint: Path below /v1/teams/<team>
            json: JSON payload

        Returns:
            JSON response as dictionary

        Raises:
            EsaApiError: For error statuses or error bodies
            requests.RequestException: For transport failures
        """
        url = f"{self.base_url}/v1/teams/{self.team}{endpoint}"
        logger.debug(f"{method} {url}")

        try:
            response = self.session.request(method, url, json=json, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Request failed: {method} {url} - {str(e)}")
            raise

        logger.debug(f"Response status: {response.status_code}")

        body = self._json_body(response)
        if response.status_code >= 400:
            raise EsaApiError(
                response.status_code,
                str(body.get('error', response.reason)),
                str(body.get('message', response.text[:500]))
            )
        if body.get('error'):
            raise EsaApiError(response.status_code, str(body['error']), str(body.get('message', '')))

        return body

    @staticmethod
    def _json_body(response: requests.Response) -> Dict[str, Any]:
        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    def create_post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Create a post. The response carries 'number' and 'url'."""
        return self._make_request('POST', '/posts', json=payload)

    def update_post(self, number: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Update an existing post."""
        return self._make_request('PATCH', f'/posts/{number}', json=payload)

    def create_comment(self, number: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Add a comment to a post."""
        return self._make_request('POST', f'/posts/{number}/comments', json=payload)

    def upload_attachment(self, path: str) -> Dict[str, Any]:
        """
        Upload a local file and return esa's attachment record.

        esa hands out a signed S3 policy first; the file itself is posted to
        the policy's endpoint with the returned form fields.

        Args:
            path: Local file path

        Returns:
            Dict with 'attachment': {'url': ..., 'endpoint': ...}

        Raises:
            EsaApiError: If esa or S3 reject the upload
        """
        name = os.path.basename(path)
        content_type = mimetypes.guess_type(name)[0] or 'application/octet-stream'
        size = os.path.getsize(path)

        policy = self._make_request('POST', '/attachments/policies', json={
            'type': content_type,
            'size': size,
            'name': name
        })

        attachment = policy.get('attachment') or {}
        endpoint = attachment.get('endpoint')
        if not endpoint or not attachment.get('url'):
            raise EsaApiError(None, 'invalid_policy', f"Upload policy for {name} has no endpoint or url")

        logger.debug(f"POST {endpoint} ({name}, {size} bytes)")
        with open(path, 'rb') as f:
            s3_response = self.upload_session.post(
                endpoint,
                data=policy.get('form') or {},
                files={'file': (name, f, content_type)},
                timeout=self.timeout
            )

        if s3_response.status_code not in (200, 201, 204):
            raise EsaApiError(s3_response.status_code, 'upload_failed', s3_response.text[:500])

        return {key: value for key, value in policy.items() if key != 'form'}


__all__ = ['EsaClient', 'EsaApiError']
