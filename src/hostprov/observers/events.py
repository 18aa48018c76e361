
from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import List, Dict, Any, Optional
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events in a single provisioning run
    env: str          # local/ssh
    target: Optional[str]  # host address, None for the local machine

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def new_ctx(env: str, target: Optional[str]) -> Dict[str, Any]:
    return {
        "ts": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
        "run_id": str(uuid.uuid4()),
        "env": env,
        "target": target,
    }


# ---------------------------------------------------------------------
# Step lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class StepStarted(BaseEvent):
    name: str
    index: int
    total: int

@dataclass(frozen=True)
class StepSkipped(BaseEvent):
    name: str

@dataclass(frozen=True)
class StepApplied(BaseEvent):
    name: str
    duration_ms: int

@dataclass(frozen=True)
class StepWarning(BaseEvent):
    name: str
    error: str

@dataclass(frozen=True)
class StepRecovered(BaseEvent):
    name: str
    duration_ms: int

@dataclass(frozen=True)
class StepFailed(BaseEvent):
    name: str
    error: str


# ---------------------------------------------------------------------
# Package lock
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class LockWaiting(BaseEvent):
    path: str
    waited_s: float

@dataclass(frozen=True)
class LockAcquired(BaseEvent):
    path: str
    waited_s: float

@dataclass(frozen=True)
class LockTimedOut(BaseEvent):
    path: str
    timeout_s: float


# ---------------------------------------------------------------------
# Credential bootstrap (never carries the secret)
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class CredentialAttempt(BaseEvent):
    user: str
    attempt: int
    ok: bool
    error: Optional[str] = None

@dataclass(frozen=True)
class ReinstallStarted(BaseEvent):
    packages: List[str]


# ---------------------------------------------------------------------
# Config patching
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class ConfigPatched(BaseEvent):
    path: str
    result: str       # "patched" | "already_patched"

@dataclass(frozen=True)
class ConfigRejected(BaseEvent):
    path: str
    error: str


# ---------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class RunFinished(BaseEvent):
    applied: int
    skipped: int
    warnings: int
    failed: int
