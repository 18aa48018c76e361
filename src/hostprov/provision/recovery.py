# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostprov/provision/recovery.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from ..logging.log import mask_secret
from ..observers.dispatcher import EventBus
from ..observers.events import CredentialAttempt, ReinstallStarted, new_ctx
from ..system.interfaces import DatabaseServer, PackageManager, SecretGenerator, ServiceManager
from .errors import CredentialBootstrapFailed, CredentialMutationError, LockTimeout
from .summary import Credential, RunSummary

log = logging.getLogger("hostprov")


class BootstrapState(str, Enum):
    PENDING = "pending"
    ATTEMPT1 = "attempt1"
    ATTEMPT2_VIA_REINSTALL = "attempt2_via_reinstall"
    SUCCESS = "success"
    FATAL = "fatal"


class Outcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class CredentialBootstrapResult:
    attempt_number: int
    outcome: Outcome
    generated_secret: Optional[str] = field(default=None, repr=False)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.SUCCESS


@dataclass(frozen=True)
class ReinstallPlan:
    purge: Sequence[str] = ("mysql-server", "mysql-client", "mysql-common")
    install: Sequence[str] = ("mysql-server",)
    service: str = "mysql"


class CredentialBootstrapPolicy:
    """
    Sets the database root credential, with one destructive retry.

    Attempt 1 mutates the credential in place. If that fails, the database
    packages are purged and reinstalled, a brand new secret is generated and
    the mutation is retried exactly once. A second failure is fatal.
    """

    def __init__(
        self,
        *,
        database: DatabaseServer,
        packages: PackageManager,
        services: ServiceManager,
        secrets: SecretGenerator,
        user: str = "root",
        scope: str = "localhost",
        secret_bytes: int = 16,
        reinstall: Optional[ReinstallPlan] = None,
        allow_destructive_reinstall: bool = True,
        bus: Optional[EventBus] = None,
        run_ctx: Optional[dict] = None,
    ):
        self.database = database
        self.packages = packages
        self.services = services
        self.secrets = secrets
        self.user = user
        self.scope = scope
        self.secret_bytes = secret_bytes
        self.reinstall = reinstall or ReinstallPlan()
        self.allow_destructive_reinstall = allow_destructive_reinstall
        self.bus = bus or EventBus()
        self.run_ctx = run_ctx or new_ctx(env="local", target=None)

        self.state = BootstrapState.PENDING
        self.results: List[CredentialBootstrapResult] = []
        self.reinstalls = 0

    # ------------------ attempts ------------------

    def _attempt(self, n: int) -> CredentialBootstrapResult:
        secret = self.secrets.random_hex(self.secret_bytes)
        mask_secret(secret)
        try:
            self.database.set_credential(self.user, self.scope, secret)
            result = CredentialBootstrapResult(attempt_number=n, outcome=Outcome.SUCCESS, generated_secret=secret)
        except CredentialMutationError as e:
            result = CredentialBootstrapResult(attempt_number=n, outcome=Outcome.FAILED, error=str(e))

        self.results.append(result)
        self.bus.emit(
            CredentialAttempt(user=self.user, attempt=n, ok=result.ok, error=result.error, **self.run_ctx)
        )
        return result

    def _succeed(self, result: CredentialBootstrapResult, summary: RunSummary) -> None:
        self.state = BootstrapState.SUCCESS
        summary.credential = Credential(username=self.user, secret=result.generated_secret)
        log.info("Credential for '%s'@'%s' set on attempt %d", self.user, self.scope, result.attempt_number)

    def _reinstall(self) -> None:
        if self.reinstalls:
            raise CredentialBootstrapFailed(
                "Refusing a second reinstall of the database server", step="credential"
            )
        self.reinstalls += 1
        plan = self.reinstall
        log.warning("Reinstalling %s to recover credential bootstrap", ", ".join(plan.purge))
        self.bus.emit(ReinstallStarted(packages=list(plan.purge), **self.run_ctx))
        self.packages.remove_purge(*plan.purge)
        self.packages.autoremove()
        self.packages.install(*plan.install)
        self.services.enable_and_start(plan.service)

    # ------------------ public API ------------------

    def first_attempt(self, summary: RunSummary) -> None:
        """
        Step apply: one in-place attempt. Raises CredentialMutationError on failure.
        """
        self.state = BootstrapState.ATTEMPT1
        result = self._attempt(1)
        if not result.ok:
            raise CredentialMutationError(f"set credential for {self.user}", 1, result.error or "")
        self._succeed(result, summary)

    def recover(self, step, summary: RunSummary, cause: Optional[str]) -> None:
        """
        Purge, reinstall, and retry once with a fresh secret.
        """
        step_name = getattr(step, "name", "credential")
        summary.credential = None

        if not self.allow_destructive_reinstall:
            self.state = BootstrapState.FATAL
            raise CredentialBootstrapFailed(
                f"Credential bootstrap failed ({cause}); destructive reinstall is disabled",
                step=step_name,
            )

        log.warning("Credential bootstrap failed (%s); attempting recovery", cause)
        self.state = BootstrapState.ATTEMPT2_VIA_REINSTALL
        try:
            self._reinstall()
        except (LockTimeout, CredentialBootstrapFailed):
            self.state = BootstrapState.FATAL
            raise
        except Exception as e:
            self.state = BootstrapState.FATAL
            raise CredentialBootstrapFailed(f"Reinstall of the database server failed: {e}", step=step_name) from e

        result = self._attempt(2)
        if not result.ok:
            self.state = BootstrapState.FATAL
            raise CredentialBootstrapFailed(
                f"Credential bootstrap failed after reinstall: {result.error}", step=step_name
            )
        self._succeed(result, summary)

    def run(self, summary: RunSummary) -> CredentialBootstrapResult:
        """
        Drive the full state machine outside a pipeline.
        """
        try:
            self.first_attempt(summary)
        except CredentialMutationError as e:
            self.recover(None, summary, str(e))
        return self.results[-1]
