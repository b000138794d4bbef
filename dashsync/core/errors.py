"""
Error taxonomy for the adapter.

Propagation policy:
    - Entry-level failures (one app) are caught by the Reconciler, logged and skipped.
    - RemoteUnavailable is retried by the daemon loop after a fixed backoff.
    - RemoteRejected is surfaced and never retried (the same request would be
      refused again).
    - AuthRejected / OnboardingStuck / ConfigError are fatal for the process.
    - StateCorrupt never leaves the state store; it degrades to a fresh state.
"""

from __future__ import annotations

from typing import Optional


class AdapterError(Exception):
    """Base class for every error raised by dashsync."""


class ConfigError(AdapterError, ValueError):
    """Local configuration or descriptor file is missing or malformed."""


class StateCorrupt(AdapterError):
    """Persisted reconciler state could not be parsed."""


class RemoteError(AdapterError):
    """Base class for failures talking to the dashboard API."""

    def __init__(self, message: str, *, procedure: Optional[str] = None) -> None:
        super().__init__(message)
        self.procedure = procedure


class RemoteUnavailable(RemoteError):
    """Transport error, timeout or 5xx from the dashboard."""


class RemoteProtocol(RemoteError):
    """Response did not match the expected envelope/shape."""


class RemoteRejected(RemoteError):
    """Dashboard explicitly refused the operation."""

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        code: Optional[str] = None,
        procedure: Optional[str] = None,
    ) -> None:
        super().__init__(message, procedure=procedure)
        self.status = status
        self.code = code


class NotFound(RemoteRejected):
    """Requested remote object does not exist."""


class AuthRejected(RemoteRejected):
    """Credential (bootstrap key, API key or login) was refused."""


class OnboardingStuck(RemoteError):
    """Onboarding did not reach the finish step within the allowed number of steps."""

    def __init__(self, steps: int, last_step: str) -> None:
        super().__init__(f"onboarding did not finish after {steps} steps (last step: {last_step})")
        self.steps = steps
        self.last_step = last_step
