"""
Onboarding State Machine - drives the dashboard's first-run wizard.

The dashboard reports its current wizard step; we perform the action for that
step and poll again until it reports FINISH.

    START ──advance──> (next step reported by remote)
    USER ──create_initial_user──> ...
    SETTINGS ──apply_settings──> ...
    UNKNOWN ──advance──> ...          (steps added by newer dashboard versions)
    FINISH                            (terminal)

The remote decides the next step, so the machine has no fixed successor
table; it only maps each step to its action. Polling is capped at
max_steps and raises OnboardingStuck past it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Protocol

from dashsync.core.errors import OnboardingStuck
from dashsync.infra.logging_cfg import log_event

log = logging.getLogger("dashsync")


class OnboardingStep(Enum):
    START = "start"
    USER = "user"
    SETTINGS = "settings"
    FINISH = "finish"
    UNKNOWN = "unknown"

    @classmethod
    def from_wire(cls, name: str) -> "OnboardingStep":
        try:
            return cls(name)
        except ValueError:
            return cls.UNKNOWN


class StepAction(Enum):
    ADVANCE = "advance"
    CREATE_USER = "create_user"
    APPLY_SETTINGS = "apply_settings"


# Every non-terminal step must appear here; FINISH has no action.
STEP_ACTIONS: Dict[OnboardingStep, StepAction] = {
    OnboardingStep.START: StepAction.ADVANCE,
    OnboardingStep.USER: StepAction.CREATE_USER,
    OnboardingStep.SETTINGS: StepAction.APPLY_SETTINGS,
    OnboardingStep.UNKNOWN: StepAction.ADVANCE,
}


class OnboardingClient(Protocol):
    async def get_onboarding_step(self) -> str: ...
    async def advance_onboarding(self) -> None: ...
    async def create_initial_user(self, username: str, password: str) -> None: ...
    async def apply_settings(self, settings: Dict[str, Any]) -> None: ...


@dataclass
class OnboardingResult:
    steps_taken: int = 0
    visited: List[str] = field(default_factory=list)

    @property
    def already_finished(self) -> bool:
        return self.steps_taken == 0


class OnboardingStateMachine:
    """
    Usage:
        machine = OnboardingStateMachine(client, username, password, settings_payload)
        result = await machine.run()
    """

    def __init__(
        self,
        client: OnboardingClient,
        username: str,
        password: str,
        settings: Dict[str, Any],
        max_steps: int = 25,
    ) -> None:
        self.client = client
        self.username = username
        self.password = password
        self.settings = settings
        self.max_steps = max_steps

    async def run(self) -> OnboardingResult:
        result = OnboardingResult()
        while True:
            wire_name = await self.client.get_onboarding_step()
            step = OnboardingStep.from_wire(wire_name)
            log_event(log, "onboarding_step", step=wire_name)

            if step is OnboardingStep.FINISH:
                return result
            if result.steps_taken >= self.max_steps:
                raise OnboardingStuck(result.steps_taken, wire_name)

            await self._perform(STEP_ACTIONS[step], wire_name)
            result.steps_taken += 1
            result.visited.append(wire_name)

    async def _perform(self, action: StepAction, wire_name: str) -> None:
        if action is StepAction.CREATE_USER:
            await self.client.create_initial_user(self.username, self.password)
        elif action is StepAction.APPLY_SETTINGS:
            await self.client.apply_settings(self.settings)
        else:
            if wire_name != OnboardingStep.START.value:
                log_event(log, "onboarding_step_unhandled", level=logging.WARNING, step=wire_name)
            await self.client.advance_onboarding()
