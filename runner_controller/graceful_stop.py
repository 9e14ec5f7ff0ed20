"""
Graceful Stop Module

Tick operations that drive a runner pod towards safe deletion, and the
registration bookkeeping done while the runner starts up.

Both are meant to be called repeatedly by a reconciler. Each call reads the
progress recorded in pod annotations, does at most one step of work, and
returns a TickResult telling the caller whether to requeue.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from kubernetes.client import V1Pod

from .annotations import PATCH_ERRORS, PodAnnotator, is_conflict
from .constants import (
    ANNOTATION_KEY_RUNNER_ID,
    ANNOTATION_KEY_UNREGISTRATION_COMPLETE_TIMESTAMP,
    ANNOTATION_KEY_UNREGISTRATION_START_TIMESTAMP,
    REGISTRATION_RETRY_DELAY,
)
from .errors import RegistryError
from .github_api import GitHubAPI, RunnerScope
from .pods import format_timestamp, get_annotation, runner_pod_or_container_is_stopped
from .results import Requeue, TickResult
from .unregistration import UnregistrationDecider, utcnow


class GracefulStop:
    """Stop a runner without losing a job that is running or about to be scheduled"""

    def __init__(self, annotator: PodAnnotator, decider: UnregistrationDecider, logger: logging.Logger,
                 clock: Optional[Callable[[], datetime]] = None):
        self.annotator = annotator
        self.decider = decider
        self.logger = logger
        self.clock = clock or utcnow

    def tick(self, scope: RunnerScope, runner_name: str, pod: Optional[V1Pod],
             unregistration_timeout: timedelta, retry_delay: timedelta) -> TickResult:
        """
        Run one step of the graceful stop

        Args:
            scope: Enterprise, organization or repository of the runner
            runner_name: Runner name in GitHub
            pod: Runner pod as last observed, or None if it does not exist
            unregistration_timeout: How long to wait for an unregisterable
                runner before deleting its pod anyway
            retry_delay: Delay between unregistration attempts

        Returns:
            A done TickResult carrying the (annotated) pod once it is safe to
            delete, otherwise a TickResult with a Requeue
        """
        try:
            pod = self.annotator.annotate_once(
                pod, ANNOTATION_KEY_UNREGISTRATION_START_TIMESTAMP, format_timestamp(self.clock())
            )
        except PATCH_ERRORS as e:
            return TickResult(requeue=self._patch_failed(e, retry_delay))

        requeue = self.decider.decide(scope, runner_name, pod, unregistration_timeout, retry_delay)
        if requeue is not None:
            return TickResult(requeue=requeue)

        try:
            pod = self.annotator.annotate_once(
                pod, ANNOTATION_KEY_UNREGISTRATION_COMPLETE_TIMESTAMP, format_timestamp(self.clock())
            )
        except PATCH_ERRORS as e:
            return TickResult(requeue=self._patch_failed(e, retry_delay))

        return TickResult(pod=pod)

    @staticmethod
    def _patch_failed(error: Exception, retry_delay: timedelta) -> Requeue:
        # Conflicts resolve themselves once the next tick reads the fresh pod
        if is_conflict(error):
            return Requeue(after=retry_delay, error=error)
        return Requeue(error=error)


class RegistrationTracker:
    """Record the GitHub runner id on the runner pod once the runner has registered"""

    def __init__(self, github_api: GitHubAPI, annotator: PodAnnotator, logger: logging.Logger):
        self.github = github_api
        self.annotator = annotator
        self.logger = logger

    def ensure_registered(self, scope: RunnerScope, runner_name: str, pod: V1Pod) -> TickResult:
        """
        Annotate the pod with the runner id, polling GitHub until the runner shows up

        Returns:
            A done TickResult with the (annotated) pod, or a TickResult asking
            to retry after the registration retry delay
        """
        if runner_pod_or_container_is_stopped(pod) or get_annotation(pod, ANNOTATION_KEY_RUNNER_ID)[1]:
            return TickResult(pod=pod)

        try:
            runner = self.github.get_runner_by_name(scope, runner_name)
        except RegistryError as e:
            self.logger.error(f"Failed to look up runner {runner_name}: {e}")
            return TickResult(requeue=Requeue(after=REGISTRATION_RETRY_DELAY, error=e))

        if runner is None or runner.get('id') is None:
            self.logger.debug(f"Runner {runner_name} is not registered yet")
            return TickResult(requeue=Requeue(after=REGISTRATION_RETRY_DELAY))

        try:
            updated = self.annotator.annotate_once(pod, ANNOTATION_KEY_RUNNER_ID, str(runner['id']))
        except PATCH_ERRORS as e:
            return TickResult(requeue=Requeue(after=REGISTRATION_RETRY_DELAY, error=e))

        self.logger.info(f"Runner {runner_name} is registered with id {runner['id']}")
        return TickResult(pod=updated)
