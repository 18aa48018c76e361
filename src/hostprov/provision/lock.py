# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostprov/provision/lock.py

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from ..observers.dispatcher import EventBus
from ..observers.events import LockAcquired, LockTimedOut, LockWaiting, new_ctx
from ..utils.retry import PollTimeout, poll_until
from ..utils.runner import CommandRunner, q
from .errors import LockTimeout

log = logging.getLogger("hostprov")


@dataclass(frozen=True)
class LockSpec:
    path: str = "/var/lib/dpkg/lock-frontend"
    poll_interval: float = 3.0
    max_wait: float = 300.0


class LockInspector(Protocol):
    def is_held(self, path: str) -> bool: ...


class FuserLockInspector:
    """
    ``fuser`` exits 0 when some process has the file open.
    """

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    def is_held(self, path: str) -> bool:
        rc, _, err = self.runner.run(f"fuser {q(path)}", sudo=True)
        if rc == 0:
            return True
        if rc != 1:
            # 127 = fuser missing; nothing else can tell us, so proceed
            log.warning("fuser %s exited %d (%s), assuming the lock is free", path, rc, err.strip())
        return False


class LockArbiter:
    """
    Waits until no other process holds the package database lock.

    There is no release: apt takes and drops the real lock itself, the
    arbiter only avoids launching our command while someone else's runs.
    """

    def __init__(
        self,
        inspector: LockInspector,
        spec: Optional[LockSpec] = None,
        *,
        bus: Optional[EventBus] = None,
        run_ctx: Optional[dict] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.inspector = inspector
        self.spec = spec or LockSpec()
        self.bus = bus or EventBus()
        self.run_ctx = run_ctx or new_ctx(env="local", target=None)
        self._clock = clock
        self._sleep = sleep

    def acquire_or_wait(self, timeout: Optional[float] = None) -> float:
        """
        Block until the lock is free. Returns the seconds waited.

        Raises LockTimeout once ``timeout`` (default ``LockSpec.max_wait``) elapses.
        """
        limit = self.spec.max_wait if timeout is None else timeout
        path = self.spec.path

        def _on_wait(waited: float) -> None:
            log.info("Waiting for %s to be released (%.0fs so far)", path, waited)
            self.bus.emit(LockWaiting(path=path, waited_s=waited, **self.run_ctx))

        try:
            waited = poll_until(
                lambda: not self.inspector.is_held(path),
                interval=self.spec.poll_interval,
                timeout=limit,
                on_wait=_on_wait,
                clock=self._clock,
                sleep=self._sleep,
            )
        except PollTimeout as e:
            self.bus.emit(LockTimedOut(path=path, timeout_s=limit, **self.run_ctx))
            raise LockTimeout(
                f"Timed out after {e.waited:.0f}s waiting for {path}; "
                "another package operation is still running"
            ) from e

        if waited:
            self.bus.emit(LockAcquired(path=path, waited_s=waited, **self.run_ctx))
        return waited
