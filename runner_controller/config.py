"""
Controller Configuration Module

Handles configuration loading from environment variables, .env files and an
optional YAML file.
"""

import os
from datetime import timedelta
from pathlib import Path
from typing import List, Optional

import yaml

from .constants import (
    DEFAULT_UNREGISTRATION_RETRY_DELAY,
    DEFAULT_UNREGISTRATION_TIMEOUT,
    RATE_LIMIT_RETRY_DELAY,
)
from .github_api import RunnerScope

LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


class ControllerConfig:
    """Configuration manager for the runner pod controller"""

    def __init__(self, env_file: Optional[Path] = None):
        """
        Initialize configuration from environment, .env file and YAML file

        Environment variables always take precedence; the files only fill in
        variables that are not set.

        Args:
            env_file: Path of the .env file (defaults to ./.env)
        """
        self.load_env_file(env_file or Path('.env'))
        config_file = os.getenv('CONTROLLER_CONFIG_FILE', '')
        if config_file:
            self.load_yaml_file(Path(config_file))

        # GitHub configuration
        self.api_url = os.getenv('GITHUB_API_URL', 'https://api.github.com')
        self.token = os.getenv('GITHUB_TOKEN', '')
        self.enterprise = os.getenv('GITHUB_ENTERPRISE', '')
        self.organization = os.getenv('GITHUB_ORGANIZATION', '')
        self.repository = os.getenv('GITHUB_REPOSITORY', '')

        # Kubernetes configuration
        self.namespace = os.getenv('RUNNER_NAMESPACE', 'default')

        # Unregistration
        self.unregistration_timeout = timedelta(seconds=int(os.getenv(
            'RUNNER_UNREGISTRATION_TIMEOUT', str(int(DEFAULT_UNREGISTRATION_TIMEOUT.total_seconds()))
        )))
        self.unregistration_retry_delay = timedelta(seconds=int(os.getenv(
            'RUNNER_UNREGISTRATION_RETRY_DELAY', str(int(DEFAULT_UNREGISTRATION_RETRY_DELAY.total_seconds()))
        )))

        # Logging
        self.log_level = os.getenv('LOG_LEVEL', 'INFO').upper()
        log_file = os.getenv('LOG_FILE', '')
        self.log_file = Path(log_file) if log_file else None

        # Timeouts
        self.api_timeout = int(os.getenv('GITHUB_API_TIMEOUT', '30'))
        self.kubernetes_timeout = int(os.getenv('KUBERNETES_REQUEST_TIMEOUT', '30'))

    @property
    def scope(self) -> RunnerScope:
        return RunnerScope(self.enterprise, self.organization, self.repository)

    def load_env_file(self, env_file: Path):
        """Load environment variables from .env file if it exists"""
        if env_file.exists():
            with open(env_file) as f:
                for line in f:
                    line = line.strip()
                    if line and not line.startswith('#') and '=' in line:
                        key, value = line.split('=', 1)
                        key = key.strip()
                        value = value.strip()
                        if key and value and key not in os.environ:
                            os.environ[key] = value

    def load_yaml_file(self, config_file: Path):
        """
        Load settings from a YAML mapping of environment-style keys

        Example:
            GITHUB_ORGANIZATION: acme
            RUNNER_UNREGISTRATION_TIMEOUT: 300

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the document is not a mapping
        """
        with open(config_file) as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"{config_file}: expected a mapping of settings")

        for key, value in data.items():
            if value is None:
                continue
            key = str(key).strip()
            if key and key not in os.environ:
                os.environ[key] = str(value)

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors"""
        errors = []

        if not self.token:
            errors.append("GITHUB_TOKEN is required")

        if not (self.enterprise or self.organization or self.repository):
            errors.append("One of GITHUB_ENTERPRISE, GITHUB_ORGANIZATION or GITHUB_REPOSITORY is required")

        if self.repository and self.repository.count('/') != 1:
            errors.append(f"Invalid GITHUB_REPOSITORY: {self.repository} (must be 'owner/name')")

        if self.unregistration_timeout <= timedelta(0):
            errors.append("RUNNER_UNREGISTRATION_TIMEOUT must be positive")

        if self.unregistration_retry_delay <= timedelta(0):
            errors.append("RUNNER_UNREGISTRATION_RETRY_DELAY must be positive")
        elif self.unregistration_retry_delay >= RATE_LIMIT_RETRY_DELAY:
            errors.append(
                f"RUNNER_UNREGISTRATION_RETRY_DELAY must be shorter than the rate limit backoff "
                f"({int(RATE_LIMIT_RETRY_DELAY.total_seconds())}s)"
            )

        if self.api_timeout <= 0:
            errors.append("GITHUB_API_TIMEOUT must be positive")

        if self.kubernetes_timeout <= 0:
            errors.append("KUBERNETES_REQUEST_TIMEOUT must be positive")

        if self.log_level not in LOG_LEVELS:
            errors.append(f"Invalid LOG_LEVEL: {self.log_level}")

        return errors
