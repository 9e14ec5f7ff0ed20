"""
Unregistration Module

Decides whether a runner pod can be deleted without disrupting a workflow job,
removing the runner from GitHub on the way.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from kubernetes.client import V1Pod

from .constants import (
    ANNOTATION_KEY_RUNNER_ID,
    ANNOTATION_KEY_UNREGISTRATION_COMPLETE_TIMESTAMP,
    ANNOTATION_KEY_UNREGISTRATION_START_TIMESTAMP,
    RATE_LIMIT_RETRY_DELAY,
)
from .errors import GitHubAPIError, RateLimitError, RegistryError, RunnerNotFoundError
from .github_api import GitHubAPI, RunnerScope
from .pods import get_annotation, parse_timestamp, runner_container_exit_code, runner_pod_or_container_is_stopped
from .results import Requeue


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UnregistrationDecider:
    """Remove a runner from GitHub and decide whether its pod is safe to delete"""

    def __init__(self, github_api: GitHubAPI, logger: logging.Logger, clock: Optional[Callable[[], datetime]] = None):
        """
        Initialize unregistration decider

        Args:
            github_api: GitHubAPI instance
            logger: Logger instance
            clock: Returns the current time as an aware datetime
        """
        self.github = github_api
        self.logger = logger
        self.clock = clock or utcnow

    def unregister_runner(self, scope: RunnerScope, name: str, runner_id: Optional[int] = None) -> bool:
        """
        Remove the runner from GitHub, looking it up by name when the id is unknown

        There is no busy check here. GitHub itself refuses to remove a runner
        that is running a job (422), so a successful removal guarantees the
        runner will not come back.

        A False return cannot tell apart a runner that was already removed, one
        that will never be created, and one that is about to register. Callers
        resolve that with the pod state and a grace period.

        Returns:
            True if the runner was removed, False if GitHub does not know it

        Raises:
            RegistryError: When listing or removing failed
        """
        if runner_id is None:
            runner = self.github.get_runner_by_name(scope, name)
            if runner is None or runner.get('id') is None:
                return False
            runner_id = runner['id']

        try:
            self.github.remove_runner(scope, runner_id)
        except RunnerNotFoundError:
            return False

        return True

    def decide(self, scope: RunnerScope, runner_name: str, pod: Optional[V1Pod],
               unregistration_timeout: timedelta, retry_delay: timedelta) -> Optional[Requeue]:
        """
        Unregister the runner and classify the outcome

        Args:
            scope: Enterprise, organization or repository of the runner
            runner_name: Runner name in GitHub
            pod: Runner pod, or None if it does not exist
            unregistration_timeout: Grace period measured from the
                unregistration start annotation
            retry_delay: Delay between unregistration attempts

        Returns:
            None when the pod is safe to delete, otherwise a Requeue
        """
        runner_id = None
        value, ok = get_annotation(pod, ANNOTATION_KEY_RUNNER_ID)
        if ok:
            if not (value.isascii() and value.isdigit()):
                self.logger.error(f"Invalid runner id annotation on pod for runner {runner_name}: {value!r}")
                return Requeue(error=ValueError(f"Invalid runner id: {value!r}"))
            runner_id = int(value)

        try:
            removed = self.unregister_runner(scope, runner_name, runner_id)
        except RateLimitError as e:
            self.logger.error(
                f"Failed to unregister runner {runner_name} due to GitHub API rate limits. "
                f"Delaying retry for {RATE_LIMIT_RETRY_DELAY} to avoid excessive GitHub API calls: {e}"
            )
            return Requeue(after=RATE_LIMIT_RETRY_DELAY, error=e)
        except RegistryError as e:
            self.logger.error(f"Failed to unregister runner {runner_name} before deleting the pod: {e}")

            if isinstance(e, GitHubAPIError) and e.is_conflict:
                code = runner_container_exit_code(pod)
                if code is not None:
                    self.logger.debug(
                        f"Runner container has already stopped but the unregistration attempt failed. "
                        f"This can happen when the runner container crashed due to an unhandled error, OOM, etc. "
                        f"The pod is deleted anyway; runner {runner_name} may need to be removed manually "
                        f"(exit code: {code}, runner id: {self._lookup_runner_id(scope, runner_name)})"
                    )
                    return None

            return Requeue(error=e)

        if removed:
            self.logger.info(f"Runner {runner_name} has just been unregistered")
            return None

        if pod is None:
            # The pod was never created, so the runner can never register
            self.logger.info(f"Runner {runner_name} was not found in GitHub and its pod does not exist")
            return None

        if get_annotation(pod, ANNOTATION_KEY_UNREGISTRATION_COMPLETE_TIMESTAMP)[0]:
            self.logger.info(f"Runner pod {pod.metadata.name} is marked as already unregistered")
            return None

        if runner_pod_or_container_is_stopped(pod):
            # An ephemeral runner unregisters itself after its job, hence the 404
            self.logger.info(f"Runner pod {pod.metadata.name} has been stopped with a successful status")
            return None

        started, _ = get_annotation(pod, ANNOTATION_KEY_UNREGISTRATION_START_TIMESTAMP)
        if started:
            try:
                started_at = parse_timestamp(started)
            except ValueError as e:
                self.logger.error(f"Invalid unregistration start timestamp on pod {pod.metadata.name}: {started!r}")
                return Requeue(error=e)

            remaining = started_at + unregistration_timeout - self.clock()
            if remaining > timedelta(0):
                self.logger.info(
                    f"Runner {runner_name} unregistration is in progress "
                    f"(timeout: {unregistration_timeout}, remaining: {remaining})"
                )
                return Requeue(after=retry_delay)

            self.logger.info(
                f"Runner {runner_name} unregistration has timed out after {unregistration_timeout}. "
                f"The runner pod will be deleted soon"
            )
            return None

        # Pods created by this controller always match one of the branches
        # above; older pods without annotations land here.
        self.logger.debug(f"Runner {runner_name} unregistration is being retried later")
        return Requeue(after=retry_delay)

    def _lookup_runner_id(self, scope: RunnerScope, runner_name: str) -> int:
        try:
            runner = self.github.get_runner_by_name(scope, runner_name)
        except RegistryError as e:
            self.logger.debug(f"Could not look up runner {runner_name}: {e}")
            return 0
        if runner is None or runner.get('id') is None:
            return 0
        return runner['id']
