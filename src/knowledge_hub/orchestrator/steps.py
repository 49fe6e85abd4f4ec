"""Step runner with per-step failure isolation.

Every backend call the orchestrator makes is a ``Step``. A critical step that
fails raises ``CriticalStepFailed`` and ends the flow; any other failed step
yields its fallback value and is recorded as degraded.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from knowledge_hub.errors import KnowledgeHubError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Success:
    payload: object


@dataclass(frozen=True)
class Failure:
    reason: str
    error: BaseException | None = None


StepResult = Success | Failure


class CriticalStepFailed(KnowledgeHubError):
    def __init__(self, step: str, cause: BaseException) -> None:
        super().__init__(f"Step {step} failed: {cause}")
        self.step = step
        self.cause = cause


@dataclass
class Step:
    name: str
    run: Callable[[], Awaitable[object]]
    critical: bool = False
    fallback: object = None


@dataclass
class StepOutcome:
    name: str
    result: StepResult
    value: object

    @property
    def degraded(self) -> bool:
        return isinstance(self.result, Failure)


async def run_step(step: Step) -> StepOutcome:
    try:
        payload = await step.run()
    except Exception as exc:
        if step.critical:
            logger.error("Critical step %s failed: %s", step.name, exc)
            raise CriticalStepFailed(step.name, exc) from exc
        logger.warning("Step %s failed, using fallback: %s", step.name, exc)
        # Fallbacks may be mutable; never hand out the shared instance.
        return StepOutcome(step.name, Failure(str(exc), exc), copy.deepcopy(step.fallback))
    return StepOutcome(step.name, Success(payload), payload)


@dataclass
class StepRunner:
    """Runs the steps of one flow and remembers which ones fell back."""

    outcomes: list[StepOutcome] = field(default_factory=list)

    @property
    def degraded(self) -> list[str]:
        return [outcome.name for outcome in self.outcomes if outcome.degraded]

    async def run(self, step: Step) -> object:
        outcome = await run_step(step)
        self.outcomes.append(outcome)
        return outcome.value

    async def gather(self, *steps: Step) -> list[object]:
        """Run independent steps concurrently; results keep the argument order."""
        outcomes = await asyncio.gather(*(run_step(step) for step in steps))
        self.outcomes.extend(outcomes)
        return [outcome.value for outcome in outcomes]

    def skip(self, name: str, value: object) -> object:
        """Record a step that had nothing to do."""
        self.outcomes.append(StepOutcome(name, Success(value), value))
        return value
