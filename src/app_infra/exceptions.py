"""Custom exceptions for App Infra.

Only covers what happens before CloudFormation takes over: invalid
configuration and failing toolkit commands.
"""

from __future__ import annotations

from typing import Any


class AppInfraError(Exception):
    """Base exception for all app-infra errors."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        error_code: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.error_code = error_code

    def __str__(self) -> str:
        if self.error_code:
            return f"[{self.error_code}] {self.message}"
        return self.message


class ConfigurationError(AppInfraError):
    """Raised when configuration is invalid or incomplete."""

    def __init__(self, message: str, config_key: str | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.config_key = config_key
        if config_key:
            self.details["config_key"] = config_key


class DeploymentError(AppInfraError):
    """Raised when a CDK toolkit command fails."""

    def __init__(self, message: str, command: list[str], returncode: int, **kwargs):
        super().__init__(message, **kwargs)
        self.command = command
        self.returncode = returncode
        self.details.update({"command": " ".join(command), "returncode": returncode})
