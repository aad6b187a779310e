# branchlet/Utils/github_api_client.py
# Description: GitHub contents API implementation of the remote note store
#
# This module handles all GitHub API interactions for note synchronisation.

from __future__ import annotations
from typing import Optional, List, Dict, Any
import base64

import httpx
from loguru import logger

# Import config utilities
from ..config import SyncConfig, resolve_api_token
from ..Notes.remote_store import RemoteEntry, RemoteFile, RemoteStore
from ..Notes.sync_errors import (
    AuthError,
    ConflictError,
    IdentityError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    RemoteFormatError,
    SyncError,
)

logger = logger.bind(module="github_api_client")


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(data, dict) and data.get('message'):
        return str(data['message'])
    return f"HTTP {response.status_code}"


def _retry_after(response: httpx.Response) -> Optional[float]:
    retry_after = response.headers.get('Retry-After')
    if retry_after is not None:
        try:
            return float(retry_after)
        except ValueError:
            return None
    return None


def _is_rate_limited(response: httpx.Response) -> bool:
    if response.status_code == 429:
        return True
    if response.status_code != 403:
        return False
    if response.headers.get('X-RateLimit-Remaining') == '0':
        return True
    return 'rate limit' in _error_message(response).lower()


def map_http_error(response: httpx.Response, path: Optional[str] = None,
                   conditional_write: bool = False) -> SyncError:
    """
    Translate a non-2xx GitHub response into the sync error taxonomy.

    Args:
        response: The failed response
        path: Repository path the request addressed, for error context
        conditional_write: The request was a write or delete carrying a sha
    """
    status = response.status_code
    message = _error_message(response)
    details: Dict[str, Any] = {'status_code': status, 'path': path}

    if _is_rate_limited(response):
        reset_time = response.headers.get('X-RateLimit-Reset')
        if reset_time:
            details['rate_limit_reset'] = reset_time
        return RateLimitError(f"API rate limit exceeded: {message}",
                              retry_after=_retry_after(response), details=details)
    if status in (401, 403):
        return AuthError(f"Access denied ({status}): {message}", details=details)
    if status == 404:
        return NotFoundError(f"Not found: {path if path is not None else message}", path=path, details=details)
    if conditional_write and status in (409, 422):
        return ConflictError(f"Revision conflict on {path}: {message}", path=path, details=details)
    return NetworkError(f"GitHub API error ({status}): {message}", details=details)


class GitHubAPIClient(RemoteStore):
    """Remote store backed by one GitHub repository's top-level directory."""

    def __init__(self, config: Optional[SyncConfig] = None, token: Optional[str] = None):
        """Initialize the GitHub API client.

        Args:
            config: Sync settings; built from the config file when omitted
            token: Optional explicit personal access token, overriding config
        """
        self.config = config or SyncConfig()
        # Try to get token from: 1) parameter, 2) SyncConfig, 3) env var / config file
        self.token = token or self.config.token or resolve_api_token()
        self.owner: Optional[str] = self.config.owner
        self.repository = self.config.repository
        self.base_url = self.config.api_base_url.rstrip('/')
        self._client: Optional[httpx.AsyncClient] = None

        if self.token:
            logger.info("GitHub API client initialized with authentication token")
        else:
            logger.warning("GitHub API client initialized without a token; every request will be rejected")

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            headers = {
                "Accept": "application/vnd.github.v3+json",
                "User-Agent": "branchlet-notes-sync",
                "X-GitHub-Api-Version": "2022-11-28",
            }
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"

            self._client = httpx.AsyncClient(
                headers=headers,
                timeout=self.config.request_timeout
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def bind_owner(self, owner: str) -> None:
        self.owner = owner

    def _contents_url(self, path: str = "") -> str:
        if not self.owner:
            raise IdentityError("Repository owner is not known; resolve identity first")
        return f"{self.base_url}/repos/{self.owner}/{self.repository}/contents/{path}"

    async def _request(self, method: str, url: str, path: Optional[str] = None,
                       conditional_write: bool = False, **kwargs: Any) -> httpx.Response:
        """Send a request, mapping transport and status failures onto sync errors."""
        try:
            response = await self.client.request(method, url, **kwargs)
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            raise map_http_error(e.response, path=path, conditional_write=conditional_write) from e
        except httpx.TransportError as e:
            raise NetworkError(f"Network error during {method} {url}: {e}", details={'path': path}) from e

    async def fetch_identity(self) -> str:
        """Get the login of the user the token belongs to.

        Returns:
            GitHub username

        Raises:
            AuthError: If the token is missing or rejected
            IdentityError: If the response carries no login
        """
        if not self.token:
            raise AuthError("No GitHub token configured")
        response = await self._request("GET", f"{self.base_url}/user")
        login = response.json().get('login')
        if not login:
            raise IdentityError("GitHub did not return a login for this token")
        logger.debug(f"Resolved GitHub identity: {login}")
        return login

    async def ensure_container_exists(self) -> bool:
        """Create the notes repository (private, auto-initialised) if missing."""
        url = f"{self.base_url}/user/repos"
        payload = {
            "name": self.repository,
            "private": True,
            "auto_init": True,
            "description": "Notes synchronised by Branchlet",
        }
        try:
            response = await self.client.request("POST", url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 422:
                logger.debug(f"Repository {self.repository} already exists")
                return False
            raise map_http_error(e.response, path=self.repository) from e
        except httpx.TransportError as e:
            raise NetworkError(f"Network error creating repository {self.repository}: {e}") from e
        logger.info(f"Created repository {self.owner}/{self.repository}")
        return True

    async def list_entries(self) -> List[RemoteEntry]:
        """List everything at the top level of the repository.

        An empty repository (GitHub answers 404 for its root) lists as empty.
        """
        try:
            response = await self._request("GET", self._contents_url(""), path="")
        except NotFoundError:
            logger.debug(f"Repository {self.repository} has no contents yet")
            return []

        data = response.json()
        if not isinstance(data, list):
            raise RemoteFormatError("Expected a directory listing at the repository root", path="")

        entries = []
        for item in data:
            entries.append(RemoteEntry(
                name=item['name'],
                path=item.get('path', item['name']),
                revision=item.get('sha'),
                kind=item.get('type', 'file'),
            ))
        return entries

    async def get_file(self, path: str) -> RemoteFile:
        """Get file content from the repository.

        Args:
            path: File path in repository

        Returns:
            Decoded bytes with the blob sha as revision
        """
        response = await self._request("GET", self._contents_url(path), path=path)
        data = response.json()

        # Check if it's a file
        if not isinstance(data, dict) or data.get('type') != 'file':
            raise RemoteFormatError(f"Path is not a file: {path}", path=path)

        # Decode base64 content
        try:
            content = base64.b64decode(data.get('content', ''))
        except ValueError as e:
            raise RemoteFormatError(f"Invalid base64 content in {path}: {e}", path=path) from e
        return RemoteFile(path=path, content=content, revision=data.get('sha'))

    async def put_file(self, path: str, content: bytes, revision: Optional[str] = None,
                       message: Optional[str] = None) -> Optional[str]:
        """Create or update a file via the contents API.

        With ``revision=None`` an existing file is overwritten: GitHub rejects
        a sha-less write to an existing path with 422, so the current sha is
        fetched and the write is re-issued once.
        """
        url = self._contents_url(path)
        payload: Dict[str, Any] = {
            "message": message or f"Update {path}",
            "content": base64.b64encode(content).decode('ascii'),
        }
        if revision:
            payload["sha"] = revision

        try:
            response = await self._request("PUT", url, path=path,
                                           conditional_write=True, json=payload)
        except ConflictError:
            if revision:
                raise
            current = await self.get_file(path)
            logger.debug(f"{path} already exists; overwriting at revision {current.revision}")
            payload["sha"] = current.revision
            response = await self._request("PUT", url, path=path,
                                           conditional_write=True, json=payload)

        return response.json().get('content', {}).get('sha')

    async def delete_file(self, path: str, revision: str, message: Optional[str] = None) -> None:
        payload = {
            "message": message or f"Delete {path}",
            "sha": revision,
        }
        await self._request("DELETE", self._contents_url(path), path=path,
                            conditional_write=True, json=payload)

#
# End of github_api_client.py
########################################################################################################################
