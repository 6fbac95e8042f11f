"""
Typed exceptions for dockerexec.

Provides structured error handling with:
- DockerExecError: Base exception for all dockerexec errors
- DockerExecConfigError: Startup configuration errors
- InvalidImageError: Image reference rejected before any process is spawned
- DaemonUnavailableError: Container daemon probe failed at startup

Invocation results (non-zero exit codes, helper spawn failures) are values,
not exceptions. See dockerexec.invoker.InvocationResult.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class DockerExecError(Exception):
    """Base exception for all dockerexec errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context as key-value pairs
    """

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class DockerExecConfigError(DockerExecError):
    """Configuration error. Fatal at startup, no launches are attempted.

    Raised when:
    - The daemon URL is empty
    - An authentication mode other than "simple" is configured
    - The launch strategy or client name is unknown

    Examples:
        DockerExecConfigError("Docker URL must be configured", code="missing_docker_url")
    """

    pass


class InvalidImageError(DockerExecError, ValueError):
    """Image reference failed validation.

    Attributes:
        image: The offending reference after quote stripping (None if missing)
    """

    def __init__(
        self,
        message: str,
        *,
        image: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if image is not None:
            details["image"] = image
        self.image = image
        super().__init__(message, code=code or "invalid_image", details=details)


class DaemonUnavailableError(DockerExecError):
    """Container daemon did not answer the startup probe.

    Attributes:
        docker_url: The endpoint that was probed
    """

    def __init__(
        self,
        message: str,
        *,
        docker_url: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if docker_url:
            details["docker_url"] = docker_url
        self.docker_url = docker_url
        super().__init__(message, code=code, details=details)


__all__ = [
    "DockerExecError",
    "DockerExecConfigError",
    "InvalidImageError",
    "DaemonUnavailableError",
]
