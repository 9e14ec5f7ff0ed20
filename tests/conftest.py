import copy
import logging
import os
from datetime import datetime, timedelta, timezone

import pytest
from kubernetes.client import (
    V1ContainerState,
    V1ContainerStateRunning,
    V1ContainerStateTerminated,
    V1ContainerStatus,
    V1ObjectMeta,
    V1Pod,
    V1PodStatus,
)
from kubernetes.client.exceptions import ApiException

from runner_controller.errors import RunnerNotFoundError
from runner_controller.github_api import RunnerScope

NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_pod(name='runner-0', namespace='default', annotations=None, phase='Running',
             exit_code=None, resource_version='1'):
    """Build a runner pod; exit_code=None means the runner container is still running"""
    if exit_code is None:
        state = V1ContainerState(running=V1ContainerStateRunning(started_at=NOW))
    else:
        state = V1ContainerState(terminated=V1ContainerStateTerminated(exit_code=exit_code))

    return V1Pod(
        metadata=V1ObjectMeta(
            name=name,
            namespace=namespace,
            annotations=dict(annotations) if annotations is not None else None,
            resource_version=resource_version,
        ),
        status=V1PodStatus(
            phase=phase,
            container_statuses=[
                V1ContainerStatus(
                    name='runner',
                    image='summerwind/actions-runner:latest',
                    image_id='',
                    ready=exit_code is None,
                    restart_count=0,
                    state=state,
                ),
                V1ContainerStatus(
                    name='docker',
                    image='docker:dind',
                    image_id='',
                    ready=True,
                    restart_count=0,
                    state=V1ContainerState(running=V1ContainerStateRunning(started_at=NOW)),
                ),
            ],
        ),
    )


class FakeCoreV1Api:
    """In-memory stand-in for CoreV1Api enforcing resourceVersion preconditions"""

    def __init__(self):
        self.pods = {}
        self.patches = []
        self.patch_error = None

    def add(self, pod):
        self.pods[(pod.metadata.namespace, pod.metadata.name)] = copy.deepcopy(pod)
        return pod

    def read_namespaced_pod(self, name, namespace, **kwargs):
        stored = self.pods.get((namespace, name))
        if stored is None:
            raise ApiException(status=404, reason='Not Found')
        return copy.deepcopy(stored)

    def patch_namespaced_pod(self, name, namespace, body, **kwargs):
        self.patches.append((name, namespace, body))
        if self.patch_error is not None:
            raise self.patch_error

        stored = self.pods.get((namespace, name))
        if stored is None:
            raise ApiException(status=404, reason='Not Found')

        expected = body['metadata'].get('resourceVersion')
        if expected is not None and expected != stored.metadata.resource_version:
            raise ApiException(status=409, reason='Conflict')

        if stored.metadata.annotations is None:
            stored.metadata.annotations = {}
        stored.metadata.annotations.update(body['metadata'].get('annotations', {}))
        stored.metadata.resource_version = str(int(stored.metadata.resource_version) + 1)
        return copy.deepcopy(stored)


class FakeGitHub:
    """Scripted runner registry"""

    def __init__(self, runners=None):
        self.runners = list(runners or [])
        self.list_error = None
        self.remove_error = None
        self.list_calls = 0
        self.removed = []

    def list_runners(self, scope):
        self.list_calls += 1
        if self.list_error is not None:
            raise self.list_error
        return list(self.runners)

    def get_runner_by_name(self, scope, name):
        for runner in self.list_runners(scope):
            if runner.get('name') == name:
                return runner
        return None

    def remove_runner(self, scope, runner_id):
        self.removed.append(runner_id)
        if self.remove_error is not None:
            raise self.remove_error
        if not any(r.get('id') == runner_id for r in self.runners):
            raise RunnerNotFoundError()
        self.runners = [r for r in self.runners if r.get('id') != runner_id]


class FakeClock:

    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, delta: timedelta):
        self.now += delta


@pytest.fixture
def logger():
    return logging.getLogger('runner_controller.tests')


@pytest.fixture
def scope():
    return RunnerScope(organization='acme')


@pytest.fixture
def core_api():
    return FakeCoreV1Api()


@pytest.fixture
def github():
    return FakeGitHub()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def clean_env(monkeypatch):
    """Hide controller settings from the real environment for the duration of a test"""
    prefixes = ('GITHUB_', 'RUNNER_', 'LOG_', 'KUBERNETES_', 'CONTROLLER_')
    environ = {k: v for k, v in os.environ.items() if not k.startswith(prefixes)}
    monkeypatch.setattr(os, 'environ', environ)
    return environ
