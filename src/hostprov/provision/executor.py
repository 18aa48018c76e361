# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from .errors import (
    ConfigValidationFailed,
    CredentialBootstrapFailed,
    FatalStepFailure,
    LockTimeout,
    ProvisionError,
)
from .oracle import IdempotencyOracle
from .steps import Step, check_unique
from .summary import RunSummary

# Observer bits
from ..observers.dispatcher import EventBus
from ..observers.events import (
    new_ctx,
    StepStarted,
    StepSkipped,
    StepApplied,
    StepWarning,
    StepRecovered,
    StepFailed,
    RunFinished,
)

log = logging.getLogger("hostprov")

# Raised from apply, these end the run no matter how the step is marked.
ALWAYS_FATAL = (LockTimeout, ConfigValidationFailed, CredentialBootstrapFailed)


@dataclass
class StepOutcome:
    name: str
    status: str                 # "SKIPPED" | "APPLIED" | "RECOVERED" | "WARNING" | "FAILED"
    error: Optional[str] = None
    duration_ms: int = 0


@dataclass
class RunOutcome:
    outcomes: List[StepOutcome] = field(default_factory=list)
    summary: RunSummary = field(default_factory=RunSummary)
    error: Optional[ProvisionError] = None
    failed_step: Optional[str] = None

    def add(self, outcome: StepOutcome) -> None:
        self.outcomes.append(outcome)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def exit_code(self) -> int:
        return 0 if self.error is None else self.error.exit_code

    def count(self, status: str) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def warnings(self) -> List[str]:
        return [f"{o.name}: {o.error}" for o in self.outcomes if o.status == "WARNING"]

    def report(self) -> str:
        return (
            f"APPLIED={self.count('APPLIED') + self.count('RECOVERED')} SKIPPED={self.count('SKIPPED')} "
            f"WARNINGS={self.count('WARNING')} FAILED={self.count('FAILED')}"
        )


class PipelineExecutor:
    """
    Runs steps strictly in order, one at a time.

    Each step is skipped when its precondition already holds; otherwise it
    is applied and verified. The first unrecoverable failure ends the run.
    """

    def __init__(
        self,
        oracle: IdempotencyOracle,
        *,
        bus: Optional[EventBus] = None,
        run_ctx: Optional[dict] = None,
    ):
        self.oracle = oracle
        self.bus = bus or EventBus()
        self.run_ctx = run_ctx or new_ctx(env="local", target=None)

    def _finish(self, result: RunOutcome) -> RunOutcome:
        self.bus.emit(
            RunFinished(
                applied=result.count("APPLIED") + result.count("RECOVERED"),
                skipped=result.count("SKIPPED"),
                warnings=result.count("WARNING"),
                failed=result.count("FAILED"),
                **self.run_ctx,
            )
        )
        return result

    def _fail(self, result: RunOutcome, step: Step, err: ProvisionError, t0: float) -> RunOutcome:
        if err.step is None:
            err.step = step.name
        result.add(StepOutcome(name=step.name, status="FAILED", error=str(err), duration_ms=_ms(t0)))
        result.error = err
        result.failed_step = step.name
        log.error("Step %s failed: %s", step.name, err)
        self.bus.emit(StepFailed(name=step.name, error=str(err), **self.run_ctx))
        return self._finish(result)

    def run(self, steps: Iterable[Step], summary: Optional[RunSummary] = None) -> RunOutcome:
        ordered = check_unique(steps)
        result = RunOutcome(summary=summary if summary is not None else RunSummary())

        for i, step in enumerate(ordered, 1):
            self.bus.emit(StepStarted(name=step.name, index=i, total=len(ordered), **self.run_ctx))
            t0 = time.monotonic()

            # 1) Already done?
            if self.oracle.is_satisfied(step.precondition):
                log.info("→ Skipping %s, already satisfied.", step.name)
                result.add(StepOutcome(name=step.name, status="SKIPPED"))
                self.bus.emit(StepSkipped(name=step.name, **self.run_ctx))
                self._record(step, result.summary)
                continue

            # 2) Apply, then verify
            log.info("→ Applying %s", step.name)
            cause: Optional[str] = None
            try:
                step.apply(result.summary)
            except ALWAYS_FATAL as e:
                return self._fail(result, step, e, t0)
            except Exception as e:
                cause = f"{type(e).__name__}: {e}"
                log.debug("apply of %s raised", step.name, exc_info=True)

            if cause is None:
                if self.oracle.is_satisfied(step.verify):
                    result.add(StepOutcome(name=step.name, status="APPLIED", duration_ms=_ms(t0)))
                    self.bus.emit(StepApplied(name=step.name, duration_ms=_ms(t0), **self.run_ctx))
                    self._record(step, result.summary)
                    continue
                cause = f"postcondition not met: {step.verify.describe()}"

            # 3) Failed: warn, recover, or abort
            if not step.critical:
                log.warning("Non-critical step %s failed (%s); continuing", step.name, cause)
                result.add(StepOutcome(name=step.name, status="WARNING", error=cause, duration_ms=_ms(t0)))
                self.bus.emit(StepWarning(name=step.name, error=cause, **self.run_ctx))
                continue

            if step.recovery is None:
                return self._fail(result, step, FatalStepFailure(f"{step.name}: {cause}", step=step.name), t0)

            try:
                step.recovery.recover(step, result.summary, cause)
            except ProvisionError as e:
                return self._fail(result, step, e, t0)
            except Exception as e:
                err = FatalStepFailure(f"{step.name}: recovery failed: {e}", step=step.name)
                err.__cause__ = e
                return self._fail(result, step, err, t0)

            if not self.oracle.is_satisfied(step.verify):
                err = FatalStepFailure(
                    f"{step.name}: postcondition not met after recovery: {step.verify.describe()}",
                    step=step.name,
                )
                return self._fail(result, step, err, t0)

            result.add(StepOutcome(name=step.name, status="RECOVERED", error=cause, duration_ms=_ms(t0)))
            self.bus.emit(StepRecovered(name=step.name, duration_ms=_ms(t0), **self.run_ctx))
            self._record(step, result.summary)

        return self._finish(result)

    @staticmethod
    def _record(step: Step, summary: RunSummary) -> None:
        if step.record is not None:
            step.record(summary)


def _ms(t0: float) -> int:
    return int((time.monotonic() - t0) * 1000)
