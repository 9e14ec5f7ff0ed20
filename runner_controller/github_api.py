"""
GitHub API Module

Handles communication with the GitHub API for the runner registry: listing
runners, finding a runner by name and removing a runner by id.
"""

import http.client
import json
import logging
import socket
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .errors import GitHubAPIError, RateLimitError, RunnerNotFoundError, TransportError

RUNNERS_PER_PAGE = 100


@dataclass(frozen=True)
class RunnerScope:
    """Enterprise, organization or repository a runner is registered against"""

    enterprise: str = ''
    organization: str = ''
    repository: str = ''

    def runners_path(self) -> str:
        """
        Build the API path of the runner collection for this scope

        Returns:
            Path such as 'orgs/<org>/actions/runners'

        Raises:
            ValueError: If no scope level is set
        """
        if self.enterprise:
            return f"enterprises/{self.enterprise}/actions/runners"
        if self.organization:
            return f"orgs/{self.organization}/actions/runners"
        if self.repository:
            return f"repos/{self.repository}/actions/runners"
        raise ValueError("Runner scope requires an enterprise, organization or repository")

    def __str__(self) -> str:
        return self.enterprise or self.organization or self.repository


class GitHubAPI:
    """GitHub API client for the runner registry"""

    def __init__(self, config, logger: logging.Logger):
        """
        Initialize GitHub API client

        Args:
            config: ControllerConfig instance
            logger: Logger instance
        """
        self.config = config
        self.logger = logger

    def _make_request(self, endpoint: str, method: str = 'GET', data: Optional[Dict] = None) -> Dict:
        """
        Make an authenticated request to GitHub API

        Args:
            endpoint: API endpoint relative to the API root (e.g., 'orgs/acme/actions/runners')
            method: HTTP method (GET, DELETE, etc.)
            data: Optional request data

        Returns:
            Response data as dictionary (empty for bodiless responses)

        Raises:
            RateLimitError: When GitHub reports an exceeded rate limit
            RunnerNotFoundError: On 404
            GitHubAPIError: On any other HTTP error
            TransportError: On network errors, timeouts and undecodable bodies
        """
        url = f"{self.config.api_url.rstrip('/')}/{endpoint}"

        headers = {
            'Authorization': f'token {self.config.token}',
            'Accept': 'application/vnd.github.v3+json',
            'User-Agent': 'runner-controller'
        }

        body = None
        if data:
            body = json.dumps(data).encode('utf-8')
            headers['Content-Type'] = 'application/json'

        req = urllib.request.Request(url, data=body, headers=headers, method=method)

        try:
            with urllib.request.urlopen(req, timeout=self.config.api_timeout) as response:
                raw = response.read()
        except urllib.error.HTTPError as e:
            error = self._classify_http_error(e, method, url)
            self.logger.debug(f"GitHub API error: {error}")
            raise error from e
        except (urllib.error.URLError, http.client.HTTPException, socket.timeout, OSError) as e:
            raise TransportError(f"{method} {url}: {e}") from e

        if not raw:
            return {}
        try:
            return json.loads(raw.decode('utf-8'))
        except ValueError as e:
            raise TransportError(f"{method} {url}: invalid JSON response: {e}") from e

    def _classify_http_error(self, e: urllib.error.HTTPError, method: str, url: str) -> Exception:
        """Turn an HTTP error response into one of the registry error types"""
        raw = ''
        if e.fp:
            try:
                raw = e.read().decode('utf-8')
            except (OSError, UnicodeDecodeError):
                raw = ''

        try:
            payload = json.loads(raw) if raw else {}
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        message = payload.get('message') or raw or str(e.reason)
        headers = e.headers or {}

        remaining = headers.get('X-RateLimit-Remaining')
        if e.code == 429 or (e.code == 403 and (remaining == '0' or 'secondary rate limit' in message.lower())):
            reset_at = None
            reset = headers.get('X-RateLimit-Reset')
            if reset and reset.isdigit():
                reset_at = datetime.fromtimestamp(int(reset), tz=timezone.utc)
            retry_after = headers.get('Retry-After')
            return RateLimitError(
                f"{method} {url}: {e.code} {message}",
                reset_at=reset_at,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
            )

        kwargs = {
            'errors': payload.get('errors'),
            'documentation_url': payload.get('documentation_url'),
            'method': method,
            'url': url,
        }
        if e.code == 404:
            return RunnerNotFoundError(message, **kwargs)
        return GitHubAPIError(e.code, message, **kwargs)

    def list_runners(self, scope: RunnerScope) -> List[Dict]:
        """
        List all runners registered in the scope

        Args:
            scope: Enterprise, organization or repository to list

        Returns:
            List of runner dictionaries
        """
        path = scope.runners_path()
        runners: List[Dict] = []
        page = 1

        while True:
            query = urllib.parse.urlencode({'per_page': RUNNERS_PER_PAGE, 'page': page})
            response = self._make_request(f"{path}?{query}")
            batch = response.get('runners', [])
            runners.extend(batch)

            total = response.get('total_count', len(runners))
            if len(batch) < RUNNERS_PER_PAGE or len(runners) >= total:
                break
            page += 1

        self.logger.debug(f"Listed {len(runners)} runner(s) in {scope}")
        return runners

    def get_runner_by_name(self, scope: RunnerScope, name: str) -> Optional[Dict]:
        """
        Find a runner by name

        Args:
            scope: Enterprise, organization or repository to search
            name: Runner name to search for

        Returns:
            Runner dictionary if found, None otherwise
        """
        for runner in self.list_runners(scope):
            if runner.get('name') == name:
                return runner
        return None

    def remove_runner(self, scope: RunnerScope, runner_id: int):
        """
        Remove a runner from GitHub by id

        GitHub refuses to remove a runner that is running a job, so a
        successful call guarantees the runner will not pick up any more work.

        Args:
            scope: Enterprise, organization or repository the runner belongs to
            runner_id: Registry-assigned runner id

        Raises:
            RunnerNotFoundError: The id is unknown, e.g. it was already removed
        """
        self._make_request(f"{scope.runners_path()}/{runner_id}", method='DELETE')
        self.logger.debug(f"Removed runner {runner_id} from {scope}")
