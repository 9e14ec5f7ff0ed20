"""
Runner Pod Manager Module

Wires configuration, logging, the GitHub client and the Kubernetes client
together and exposes the per-runner operations a reconciler calls.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from kubernetes import client, config as kube_config
from kubernetes.client import CoreV1Api, V1Pod
from kubernetes.client.exceptions import ApiException

from .annotations import PodAnnotator
from .github_api import GitHubAPI
from .graceful_stop import GracefulStop, RegistrationTracker
from .pods import pod_runner_id
from .results import TickResult
from .unregistration import UnregistrationDecider


class RunnerPodManager:
    """Graceful stop and registration bookkeeping for runner pods"""

    def __init__(self, config, github_api: Optional[GitHubAPI] = None, core_api: Optional[CoreV1Api] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        """
        Initialize runner pod manager

        Args:
            config: ControllerConfig instance
            github_api: GitHubAPI instance (created from config if omitted)
            core_api: Kubernetes CoreV1Api (loaded from the cluster if omitted)
            clock: Returns the current time as an aware datetime

        Raises:
            ValueError: If the configuration is invalid
        """
        errors = config.validate()
        if errors:
            raise ValueError("Configuration errors: " + "; ".join(errors))

        self.config = config
        self.logger = self._setup_logger()
        self.github = github_api or GitHubAPI(config, self.logger)
        self.core_api = core_api or self._load_core_api()
        self.scope = config.scope

        self.annotator = PodAnnotator(self.core_api, self.logger, request_timeout=config.kubernetes_timeout)
        self.decider = UnregistrationDecider(self.github, self.logger, clock=clock)
        self.graceful_stop = GracefulStop(self.annotator, self.decider, self.logger, clock=clock)
        self.registration = RegistrationTracker(self.github, self.annotator, self.logger)

    def _setup_logger(self) -> logging.Logger:
        """
        Setup logging configuration

        Returns:
            Configured logger instance
        """
        logger = logging.getLogger('runner_controller')
        logger.setLevel(getattr(logging, self.config.log_level))

        if logger.handlers:
            return logger

        # Console handler
        console_handler = logging.StreamHandler()
        console_handler.setLevel(getattr(logging, self.config.log_level))
        console_formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(message)s')
        console_handler.setFormatter(console_formatter)
        logger.addHandler(console_handler)

        # File handler
        if self.config.log_file:
            file_handler = logging.FileHandler(self.config.log_file)
            file_handler.setLevel(getattr(logging, self.config.log_level))
            file_formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(name)s - %(message)s')
            file_handler.setFormatter(file_formatter)
            logger.addHandler(file_handler)

        return logger

    def _load_core_api(self) -> CoreV1Api:
        """Load in-cluster Kubernetes configuration, falling back to kubeconfig"""
        try:
            kube_config.load_incluster_config()
            self.logger.info("Loaded in-cluster Kubernetes configuration")
        except kube_config.ConfigException:
            kube_config.load_kube_config()
            self.logger.info("Loaded local Kubernetes configuration")
        return client.CoreV1Api()

    def get_pod(self, name: str) -> Optional[V1Pod]:
        """
        Read a runner pod from the configured namespace

        Returns:
            The pod, or None if it does not exist
        """
        try:
            return self.core_api.read_namespaced_pod(
                name, self.config.namespace, _request_timeout=self.config.kubernetes_timeout
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise

    def tick_graceful_stop(self, runner_name: str, pod: Optional[V1Pod]) -> TickResult:
        """Run one graceful stop step with the configured timeout and retry delay"""
        result = self.graceful_stop.tick(
            self.scope,
            runner_name,
            pod,
            self.config.unregistration_timeout,
            self.config.unregistration_retry_delay,
        )
        if result.done:
            runner_id = pod_runner_id(result.pod) or 'unknown'
            self.logger.info(f"Runner {runner_name} (id: {runner_id}) has stopped gracefully")
        elif result.requeue.after is not None:
            self.logger.debug(f"Graceful stop of runner {runner_name} continues in {result.requeue.after}")
        return result

    def ensure_runner_pod_registered(self, runner_name: str, pod: V1Pod) -> TickResult:
        """Record the GitHub runner id on the pod once the runner has registered"""
        return self.registration.ensure_registered(self.scope, runner_name, pod)
