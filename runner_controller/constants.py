"""
Constants Module

Annotation keys and fixed delays shared by the runner pod lifecycle code.
"""

from datetime import timedelta

ANNOTATION_KEY_PREFIX = 'actions-runner/'

# Set once the runner shows up in GitHub; never changed afterwards
ANNOTATION_KEY_RUNNER_ID = ANNOTATION_KEY_PREFIX + 'runner-id'
ANNOTATION_KEY_UNREGISTRATION_START_TIMESTAMP = ANNOTATION_KEY_PREFIX + 'unregistration-start-timestamp'
ANNOTATION_KEY_UNREGISTRATION_COMPLETE_TIMESTAMP = ANNOTATION_KEY_PREFIX + 'unregistration-complete-timestamp'

# Name of the container running actions/runner inside a runner pod
RUNNER_CONTAINER_NAME = 'runner'

DEFAULT_UNREGISTRATION_TIMEOUT = timedelta(minutes=1)
DEFAULT_UNREGISTRATION_RETRY_DELAY = timedelta(seconds=10)

# Used while waiting for a freshly created runner to appear in GitHub
REGISTRATION_RETRY_DELAY = timedelta(seconds=10)

# Must stay well above the default retry delay to actually lower the call rate
RATE_LIMIT_RETRY_DELAY = timedelta(minutes=1)
