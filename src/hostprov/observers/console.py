# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostprov/observers/console.py

from __future__ import annotations

import typer

from .events import (
    BaseEvent,
    StepStarted,
    StepSkipped,
    StepApplied,
    StepWarning,
    StepRecovered,
    StepFailed,
    LockWaiting,
    LockTimedOut,
    CredentialAttempt,
    ReinstallStarted,
    ConfigPatched,
    ConfigRejected,
    RunFinished,
)


class ConsoleObserver:
    """
    Prints one progress line per interesting event.
    """

    def notify(self, event: BaseEvent) -> None:
        line = self._format(event)
        if line is None:
            return
        err = isinstance(event, (StepFailed, LockTimedOut, ConfigRejected))
        typer.echo(line, err=err)

    def _format(self, event: BaseEvent):
        if isinstance(event, StepStarted):
            return f"[{event.index}/{event.total}] {event.name}"
        if isinstance(event, StepSkipped):
            return f"  → Skipping {event.name}, already satisfied."
        if isinstance(event, StepApplied):
            return f"  → {event.name} done ({event.duration_ms} ms)"
        if isinstance(event, StepRecovered):
            return f"  → {event.name} recovered ({event.duration_ms} ms)"
        if isinstance(event, StepWarning):
            return f"  ⚠ {event.name} did not complete: {event.error} (continuing)"
        if isinstance(event, StepFailed):
            return f"  ⛔ {event.name} failed: {event.error}"
        if isinstance(event, LockWaiting):
            return f"  → Waiting for {event.path} to be released ({event.waited_s:.0f}s)..."
        if isinstance(event, LockTimedOut):
            return f"  ⛔ Timeout waiting for {event.path} after {event.timeout_s:.0f}s."
        if isinstance(event, CredentialAttempt):
            status = "ok" if event.ok else f"failed: {event.error}"
            return f"  → Setting credential for '{event.user}' (attempt {event.attempt}): {status}"
        if isinstance(event, ReinstallStarted):
            return f"  → Reinstalling {', '.join(event.packages)}..."
        if isinstance(event, ConfigPatched):
            return f"  → {event.path}: {event.result.replace('_', ' ')}"
        if isinstance(event, ConfigRejected):
            return f"  ⛔ {event.path} rejected by validation, previous config restored: {event.error}"
        if isinstance(event, RunFinished):
            return (
                f"\nAPPLIED={event.applied} SKIPPED={event.skipped} "
                f"WARNINGS={event.warnings} FAILED={event.failed}"
            )
        return None
