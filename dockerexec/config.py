"""
Executor configuration from environment variables.

Usage:
    from dockerexec.config import get_settings

    settings = get_settings()
    settings.validate()
    print(settings.docker_url, settings.strategy)
"""

from functools import lru_cache
from typing import Optional
import os

from dockerexec.exceptions import DockerExecConfigError

DEFAULT_DOCKER_URL = "unix:///var/run/docker.sock"
DEFAULT_IMAGE_ENV_VAR = "yarn.nodemanager.docker-container-executor.image-name"
DEFAULT_HELPER_PATH = "/usr/local/bin/container-executor"

# Privilege separation through the setuid helper is the access control,
# so only the simplest authentication mode is supported.
SUPPORTED_AUTH_MODE = "simple"

STRATEGIES = ("create_start", "run")
CLIENTS = ("docker", "podman")


def _env_truthy(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Settings:
    """Executor configuration loaded from environment variables.

    Keyword arguments override the environment, which keeps tests free of
    os.environ patching.
    """

    def __init__(
        self,
        *,
        docker_url: Optional[str] = None,
        image_env_var: Optional[str] = None,
        auth_mode: Optional[str] = None,
        helper_path: Optional[str] = None,
        client: Optional[str] = None,
        strategy: Optional[str] = None,
        watch_events: Optional[bool] = None,
        verify_daemon: Optional[bool] = None,
    ) -> None:
        # Daemon endpoint
        self.docker_url: str = (
            docker_url
            if docker_url is not None
            else os.getenv("DOCKEREXEC_DOCKER_URL", DEFAULT_DOCKER_URL)
        )
        self.client: str = client or os.getenv("DOCKEREXEC_CLIENT", "docker")

        # Name of the container environment variable holding the image reference
        self.image_env_var: str = image_env_var or os.getenv(
            "DOCKEREXEC_IMAGE_ENV_VAR", DEFAULT_IMAGE_ENV_VAR
        )

        # Authentication
        self.auth_mode: str = auth_mode or os.getenv(
            "DOCKEREXEC_AUTH_MODE", SUPPORTED_AUTH_MODE
        )

        # Privileged helper
        self.helper_path: str = helper_path or os.getenv(
            "DOCKEREXEC_HELPER_PATH", DEFAULT_HELPER_PATH
        )

        # Launch strategy: "create_start" (create, start -a, rm) or "run"
        self.strategy: str = strategy or os.getenv("DOCKEREXEC_STRATEGY", "create_start")

        self.watch_events: bool = (
            watch_events
            if watch_events is not None
            else _env_truthy(os.getenv("DOCKEREXEC_WATCH_EVENTS"), True)
        )
        self.verify_daemon: bool = (
            verify_daemon
            if verify_daemon is not None
            else _env_truthy(os.getenv("DOCKEREXEC_VERIFY_DAEMON"), False)
        )

    def validate(self) -> None:
        """Raise DockerExecConfigError if no launch could be attempted safely."""
        if self.auth_mode != SUPPORTED_AUTH_MODE:
            raise DockerExecConfigError(
                "Docker container executor only works with simple authentication mode",
                code="unsupported_auth_mode",
                details={"auth_mode": self.auth_mode},
            )
        if not self.docker_url or not self.docker_url.strip():
            raise DockerExecConfigError(
                "Docker URL must be configured", code="missing_docker_url"
            )
        if self.strategy not in STRATEGIES:
            raise DockerExecConfigError(
                f"Unknown launch strategy: {self.strategy}",
                code="unknown_strategy",
                details={"strategy": self.strategy, "allowed": list(STRATEGIES)},
            )
        if self.client not in CLIENTS:
            raise DockerExecConfigError(
                f"Unknown container client: {self.client}",
                code="unknown_client",
                details={"client": self.client, "allowed": list(CLIENTS)},
            )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def reset_settings() -> None:
    """Clear settings cache. For testing only."""
    get_settings.cache_clear()
