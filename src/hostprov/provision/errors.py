# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostprov/provision/errors.py

from __future__ import annotations

from typing import Optional


class ProvisionError(RuntimeError):
    """Base class for failures that end a provisioning run."""

    exit_code = 1

    def __init__(self, message: str, *, step: Optional[str] = None):
        super().__init__(message)
        self.step = step


class LockTimeout(ProvisionError):
    """The package database lock stayed held past the allowed wait."""

    exit_code = 10


class FatalStepFailure(ProvisionError):
    """A critical step failed and had no way to recover."""

    exit_code = 11


class CredentialBootstrapFailed(ProvisionError):
    """The database credential could not be set, even after a reinstall."""

    exit_code = 12


class ConfigValidationFailed(ProvisionError):
    """The proxy rejected the patched configuration; nothing was reloaded."""

    exit_code = 13


class IdempotencyQueryError(RuntimeError):
    """A state query could not be answered."""


class CommandError(RuntimeError):
    """A host command exited non-zero."""

    def __init__(self, cmd: str, rc: int, stderr: str = ""):
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else "no output"
        super().__init__(f"'{cmd}' exited with {rc}: {detail}")
        self.cmd = cmd
        self.rc = rc
        self.stderr = stderr


class CredentialMutationError(CommandError):
    """The database server refused the credential change."""
