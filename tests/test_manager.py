from datetime import timedelta

import pytest

from conftest import make_pod
from runner_controller.config import ControllerConfig
from runner_controller.constants import (
    ANNOTATION_KEY_RUNNER_ID,
    ANNOTATION_KEY_UNREGISTRATION_COMPLETE_TIMESTAMP,
)
from runner_controller.manager import RunnerPodManager
from runner_controller.results import Requeue


@pytest.fixture
def config(clean_env, tmp_path):
    clean_env.update({
        'GITHUB_TOKEN': 't',
        'GITHUB_ORGANIZATION': 'acme',
        'RUNNER_NAMESPACE': 'default',
        'RUNNER_UNREGISTRATION_TIMEOUT': '120',
        'RUNNER_UNREGISTRATION_RETRY_DELAY': '15',
    })
    return ControllerConfig(tmp_path / '.env')


@pytest.fixture
def manager(config, github, core_api, clock):
    return RunnerPodManager(config, github_api=github, core_api=core_api, clock=clock)


def test_invalid_config_is_rejected(config, github, core_api):
    config.token = ''

    with pytest.raises(ValueError, match='GITHUB_TOKEN is required'):
        RunnerPodManager(config, github_api=github, core_api=core_api)


def test_get_pod(manager, core_api):
    core_api.add(make_pod())

    assert manager.get_pod('runner-0').metadata.name == 'runner-0'
    assert manager.get_pod('runner-1') is None


def test_register_then_stop(manager, core_api, github):
    github.runners = [{'id': 11, 'name': 'runner-0', 'busy': False}]
    pod = core_api.add(make_pod())

    registered = manager.ensure_runner_pod_registered('runner-0', pod)
    assert registered.done
    assert registered.pod.metadata.annotations[ANNOTATION_KEY_RUNNER_ID] == '11'

    result = manager.tick_graceful_stop('runner-0', manager.get_pod('runner-0'))

    assert result.done
    assert github.removed == [11]
    assert github.list_calls == 1
    assert ANNOTATION_KEY_UNREGISTRATION_COMPLETE_TIMESTAMP in result.pod.metadata.annotations


def test_tick_uses_configured_delays(manager, core_api, clock):
    pod = core_api.add(make_pod())

    result = manager.tick_graceful_stop('runner-0', pod)
    assert result.requeue == Requeue(after=timedelta(seconds=15))

    clock.advance(timedelta(minutes=2))
    result = manager.tick_graceful_stop('runner-0', manager.get_pod('runner-0'))
    assert result.done
