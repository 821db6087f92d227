"""Gerrit REST API client."""

import json
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

import requests
from loguru import logger
from pydantic import BaseModel, Field

from ..config.config import GerritConfig
from ..exceptions import RepoException

# Gerrit prefixes JSON responses to prevent XSSI
_XSSI_PREFIX = ")]}'"


class GerritAPIError(RepoException):
    """Base exception for Gerrit API errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Optional[Any] = None,
    ):
        """Initialize Gerrit API error.

        Args:
            message: Error message
            status_code: HTTP status code
            response_data: Response data from API
        """
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data


class GerritAuthenticationError(GerritAPIError):
    """Authentication error with Gerrit API."""

    pass


class GerritNotFoundError(GerritAPIError):
    """Resource not found error."""

    pass


class ChangeInfo(BaseModel):
    """A Gerrit change as returned by the changes endpoint."""

    id: Optional[str] = None
    project: Optional[str] = None
    branch: Optional[str] = None
    change_id: str = Field(..., description="The change 'Change-Id'")
    subject: Optional[str] = None
    status: str = Field(default='NEW', description='NEW, MERGED or ABANDONED')
    number: Optional[int] = Field(default=None, alias='_number')
    current_revision: Optional[str] = None
    revisions: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        """Pydantic configuration."""

        allow_population_by_field_name = True
        extra = 'ignore'

    @property
    def is_open(self) -> bool:
        return self.status == 'NEW'

    def current_commit_message(self) -> Optional[str]:
        """Message of the current patch set, when requested with CURRENT_COMMIT."""
        if not self.current_revision:
            return None
        revision = self.revisions.get(self.current_revision) or {}
        return (revision.get('commit') or {}).get('message')


def split_gerrit_url(url: str):
    """Return the server base URL and the project of a repository URL."""
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        raise GerritAPIError(f"'{url}' is not a valid Gerrit repository URL")
    project = parts.path.strip('/')
    if project.endswith('.git'):
        project = project[: -len('.git')]
    return f'{parts.scheme}://{parts.netloc}', project


class GerritClient:
    """Gerrit REST API client with optional HTTP authentication."""

    def __init__(self, url: str, config: Optional[GerritConfig] = None):
        """Initialize Gerrit client.

        Args:
            url: Repository URL, like https://host/project
            config: Gerrit configuration
        """
        self.config = config or GerritConfig()
        self.server, self.project = split_gerrit_url(url)
        self.session = requests.Session()
        self.session.headers.update(
            {'Accept': 'application/json', 'User-Agent': 'repo-migrate/1.0.0'}
        )
        # Authenticated endpoints live under /a/
        self.base_url = self.server
        if self.config.http_user and self.config.http_password:
            self.session.auth = (self.config.http_user, self.config.http_password)
            self.base_url = self.server + '/a'

        self.logger = logger.bind(component='GerritClient')
        self.logger.info(f'Initialized Gerrit client for {self.server}')

    def _build_url(self, endpoint: str) -> str:
        return self.base_url + '/' + endpoint.lstrip('/')

    def _handle_response(self, response: requests.Response) -> Any:
        """Convert a response to JSON data.

        Raises:
            GerritAPIError: For various API errors
        """
        if response.status_code in (401, 403):
            raise GerritAuthenticationError(
                f'Authentication failed: HTTP {response.status_code}',
                status_code=response.status_code,
            )

        if response.status_code == 404:
            raise GerritNotFoundError('Resource not found', status_code=404)

        if response.status_code >= 400:
            raise GerritAPIError(
                f'API request failed: HTTP {response.status_code}: {response.text.strip()}',
                status_code=response.status_code,
                response_data=response.text,
            )

        text = response.text
        if text.startswith(_XSSI_PREFIX):
            text = text[len(_XSSI_PREFIX):]
        if not text.strip():
            return None
        try:
            return json.loads(text)
        except ValueError as e:
            raise GerritAPIError(
                f'Invalid JSON in Gerrit response: {e}',
                status_code=response.status_code,
                response_data=response.text,
            ) from e

    def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Make GET request.

        Args:
            endpoint: API endpoint
            params: Query parameters

        Returns:
            Parsed JSON data
        """
        url = self._build_url(endpoint)
        self.logger.debug(f'GET {url} {params or ""}')
        try:
            response = self.session.get(url, params=params, timeout=self.config.timeout)
        except requests.RequestException as e:
            self.logger.error(f'Network error during GET request: {e}')
            raise GerritAPIError(f'Network error: {e}') from e
        return self._handle_response(response)

    def query_changes(self, query: str, options: Optional[List[str]] = None) -> List[ChangeInfo]:
        """Query changes with the Gerrit search syntax."""
        params: Dict[str, Any] = {'q': query}
        if options:
            params['o'] = options
        data = self.get('changes/', params=params) or []
        return [ChangeInfo.parse_obj(change) for change in data]

    def find_change(self, change_id: str, include_commit: bool = False) -> Optional[ChangeInfo]:
        """Find a change of this project by Change-Id."""
        options = ['CURRENT_REVISION', 'CURRENT_COMMIT'] if include_commit else None
        changes = self.query_changes(f'change:{change_id} AND project:{self.project}', options)
        return changes[0] if changes else None
