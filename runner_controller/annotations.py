"""
Pod Annotation Module

Durable progress markers stored as annotations on the runner pod. This is the
only place where the lifecycle code writes to the cluster.
"""

import copy
import logging
from typing import Optional

import urllib3
from kubernetes.client import CoreV1Api, V1Pod
from kubernetes.client.exceptions import ApiException

from .pods import get_annotation

# Rejections by the API server, and transport failures such as request timeouts
PATCH_ERRORS = (ApiException, urllib3.exceptions.HTTPError)


def is_conflict(error: Exception) -> bool:
    """Whether a Kubernetes API error is an optimistic concurrency conflict"""
    return isinstance(error, ApiException) and error.status == 409


class PodAnnotator:
    """Add annotations to runner pods, at most once per key"""

    def __init__(self, core_api: CoreV1Api, logger: logging.Logger, request_timeout: Optional[float] = None):
        """
        Initialize pod annotator

        Args:
            core_api: Kubernetes CoreV1Api client
            logger: Logger instance
            request_timeout: Optional per-request timeout in seconds
        """
        self.core_api = core_api
        self.logger = logger
        self.request_timeout = request_timeout

    def annotate_once(self, pod: Optional[V1Pod], key: str, value: str) -> Optional[V1Pod]:
        """
        Annotate the pod unless it already carries the annotation

        The patch includes the resourceVersion the pod was read at, so the API
        server rejects it with 409 Conflict when the pod changed in the
        meantime. The given pod object is never modified.

        Args:
            pod: Pod as last observed, or None
            key: Annotation key
            value: Annotation value

        Returns:
            The pod unchanged if already annotated (or None), otherwise the
            patched pod returned by the API server

        Raises:
            ApiException: When the patch is rejected
            urllib3.exceptions.HTTPError: When the request fails or times out
        """
        if pod is None:
            return None

        if get_annotation(pod, key)[1]:
            return pod

        updated = copy.deepcopy(pod)
        if updated.metadata.annotations is None:
            updated.metadata.annotations = {}
        updated.metadata.annotations[key] = value

        body = {
            'metadata': {
                'resourceVersion': pod.metadata.resource_version,
                'annotations': {key: value},
            }
        }

        kwargs = {}
        if self.request_timeout:
            kwargs['_request_timeout'] = self.request_timeout

        try:
            patched = self.core_api.patch_namespaced_pod(
                pod.metadata.name, pod.metadata.namespace, body, **kwargs
            )
        except ApiException as e:
            self.logger.error(f"Failed to patch pod {pod.metadata.name} to have {key} annotation: {e.status} {e.reason}")
            raise
        except urllib3.exceptions.HTTPError as e:
            self.logger.error(f"Failed to patch pod {pod.metadata.name} to have {key} annotation: {e}")
            raise

        self.logger.debug(f"Annotated pod {pod.metadata.name}: {key}={value}")

        return patched if patched is not None else updated
