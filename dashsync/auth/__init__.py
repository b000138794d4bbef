"""
Auth package.

Onboarding wizard driver and credential acquisition.
"""

from dashsync.auth.credentials import CredentialManager, read_bootstrap_key
from dashsync.auth.onboarding import (
    STEP_ACTIONS,
    OnboardingResult,
    OnboardingStateMachine,
    OnboardingStep,
    StepAction,
)

__all__ = [
    "STEP_ACTIONS",
    "CredentialManager",
    "OnboardingResult",
    "OnboardingStateMachine",
    "OnboardingStep",
    "StepAction",
    "read_bootstrap_key",
]
