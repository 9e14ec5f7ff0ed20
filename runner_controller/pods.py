"""
Pod Inspection Module

Read-only helpers over kubernetes V1Pod objects.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from kubernetes.client import V1Pod

from .constants import ANNOTATION_KEY_RUNNER_ID, RUNNER_CONTAINER_NAME

RFC3339_FORMAT = '%Y-%m-%dT%H:%M:%SZ'
RFC3339_PATTERN = re.compile(
    r'(\d{4})-(\d{2})-(\d{2})[Tt](\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})',
    re.ASCII,
)


def get_annotation(pod: Optional[V1Pod], key: str) -> Tuple[str, bool]:
    """
    Look up an annotation

    Returns:
        Tuple of (value, present). An empty value can still be present.
    """
    if pod is None or pod.metadata is None or not pod.metadata.annotations:
        return '', False
    if key not in pod.metadata.annotations:
        return '', False
    return pod.metadata.annotations[key], True


def pod_runner_id(pod: Optional[V1Pod]) -> str:
    """Return the runner id annotation, or '' when the runner was never seen in GitHub"""
    value, _ = get_annotation(pod, ANNOTATION_KEY_RUNNER_ID)
    return value


def _runner_container_status(pod: V1Pod):
    if pod.status is None:
        return None
    for status in pod.status.container_statuses or []:
        if status.name == RUNNER_CONTAINER_NAME:
            return status
    return None


def runner_container_exit_code(pod: Optional[V1Pod]) -> Optional[int]:
    """
    Exit code of the runner container

    Returns:
        The exit code once the runner container has terminated, None while it
        is waiting or running (or when there is no pod)
    """
    if pod is None:
        return None
    status = _runner_container_status(pod)
    if status is None or status.state is None or status.state.terminated is None:
        return None
    return status.state.terminated.exit_code


def runner_pod_or_container_is_stopped(pod: Optional[V1Pod]) -> bool:
    """
    Whether the runner pod has finished, or its runner container exited successfully

    The latter happens when sidecars such as dind keep the pod running after
    the runner itself completed.
    """
    if pod is None or pod.status is None:
        return False

    phase = pod.status.phase
    if phase in ('Succeeded', 'Failed'):
        return True

    if phase == 'Running':
        return runner_container_exit_code(pod) == 0

    return False


def format_timestamp(t: datetime) -> str:
    """Format an aware datetime as an RFC3339 UTC timestamp"""
    return t.astimezone(timezone.utc).strftime(RFC3339_FORMAT)


def parse_timestamp(value: str) -> datetime:
    """
    Parse an RFC3339 timestamp

    Fractional seconds beyond microseconds are truncated.

    Raises:
        ValueError: If the value is not RFC3339
    """
    match = RFC3339_PATTERN.fullmatch(value)
    if match is None:
        raise ValueError(f"Invalid RFC3339 timestamp: {value!r}")

    year, month, day, hour, minute, second, fraction, offset = match.groups()
    microsecond = int((fraction or '').ljust(6, '0')[:6])

    if offset in ('Z', 'z'):
        tz = timezone.utc
    else:
        sign = -1 if offset[0] == '-' else 1
        tz = timezone(sign * timedelta(hours=int(offset[1:3]), minutes=int(offset[4:6])))

    return datetime(int(year), int(month), int(day), int(hour), int(minute), int(second), microsecond, tzinfo=tz)
