"""
Runner Controller Package

Graceful stop and registration bookkeeping for GitHub Actions runners that
run as Kubernetes pods.
"""

__version__ = '0.1.0'

from .annotations import PodAnnotator
from .config import ControllerConfig
from .errors import GitHubAPIError, RateLimitError, RegistryError, RunnerNotFoundError, TransportError
from .github_api import GitHubAPI, RunnerScope
from .graceful_stop import GracefulStop, RegistrationTracker
from .manager import RunnerPodManager
from .results import Requeue, TickResult
from .unregistration import UnregistrationDecider

__all__ = [
    'ControllerConfig',
    'GitHubAPI',
    'RunnerScope',
    'PodAnnotator',
    'UnregistrationDecider',
    'GracefulStop',
    'RegistrationTracker',
    'RunnerPodManager',
    'Requeue',
    'TickResult',
    'RegistryError',
    'TransportError',
    'RateLimitError',
    'GitHubAPIError',
    'RunnerNotFoundError',
]
