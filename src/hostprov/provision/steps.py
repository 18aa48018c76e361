# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostprov/provision/steps.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Protocol

from .oracle import Condition
from .summary import RunSummary


class RecoveryPolicy(Protocol):
    def recover(self, step: "Step", summary: RunSummary, cause: Optional[str]) -> None: ...


@dataclass(frozen=True)
class Step:
    """
    One idempotent provisioning action.

    ``apply`` only runs when ``precondition`` does not already hold, and the
    step counts as done once ``postcondition`` (the precondition when unset)
    holds afterwards. ``record`` runs whenever the step ends satisfied,
    skipped or applied, so the summary reflects the whole host.
    """
    name: str
    precondition: Condition
    apply: Callable[[RunSummary], None]
    postcondition: Optional[Condition] = None
    critical: bool = True
    recovery: Optional[RecoveryPolicy] = None
    record: Optional[Callable[[RunSummary], None]] = None
    description: str = ""

    @property
    def verify(self) -> Condition:
        return self.postcondition or self.precondition


class DuplicateStepError(ValueError):
    pass


def check_unique(steps: Iterable[Step]) -> List[Step]:
    ordered = list(steps)
    seen = set()
    for s in ordered:
        if s.name in seen:
            raise DuplicateStepError(f"Step '{s.name}' appears more than once")
        seen.add(s.name)
    return ordered
