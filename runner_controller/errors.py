"""
Errors Module

Closed set of failures the GitHub runner registry can report. The
unregistration logic branches on these types instead of raw status codes.
"""

from datetime import datetime
from typing import Dict, List, Optional


class RegistryError(Exception):
    """Base class for all runner registry failures"""


class TransportError(RegistryError):
    """The request never produced a usable HTTP response (network, timeout, bad body)"""


class RateLimitError(RegistryError):
    """GitHub refused the request because a rate limit was exceeded"""

    def __init__(self, message: str, reset_at: Optional[datetime] = None, retry_after: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.reset_at = reset_at
        self.retry_after = retry_after


class GitHubAPIError(RegistryError):
    """Structured error response returned by the GitHub API"""

    def __init__(self, status_code: int, message: str, errors: Optional[List[Dict]] = None,
                 documentation_url: Optional[str] = None, method: str = '', url: str = ''):
        self.status_code = status_code
        self.message = message
        self.errors = errors or []
        self.documentation_url = documentation_url
        self.method = method
        self.url = url
        super().__init__(str(self))

    @property
    def is_conflict(self) -> bool:
        """
        Whether GitHub rejected the request because of the runner's current state

        Removing a runner that is still registering or still running a job
        fails with 422.
        """
        return self.status_code == 422

    def __str__(self) -> str:
        prefix = f"{self.method} {self.url}: " if self.url else ''
        details = f" {self.errors}" if self.errors else ''
        return f"{prefix}{self.status_code} {self.message}{details}"


class RunnerNotFoundError(GitHubAPIError):
    """The runner does not exist (anymore) in GitHub"""

    def __init__(self, message: str = 'Not Found', **kwargs):
        super().__init__(404, message, **kwargs)
