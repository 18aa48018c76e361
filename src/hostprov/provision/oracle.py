# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostprov/provision/oracle.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from ..system.interfaces import DatabaseServer, HostFiles, PackageManager, ServiceManager
from .errors import IdempotencyQueryError

log = logging.getLogger("hostprov")


# ---------------------------------------------------------------------
# Condition kinds
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class Condition:
    def describe(self) -> str:
        return type(self).__name__

@dataclass(frozen=True)
class PackageInstalled(Condition):
    name: str

    def describe(self) -> str:
        return f"package {self.name} installed"

@dataclass(frozen=True)
class UnitActive(Condition):
    name: str

    def describe(self) -> str:
        return f"unit {self.name} enabled and running"

@dataclass(frozen=True)
class RepositoryPresent(Condition):
    pattern: str

    def describe(self) -> str:
        return f"repository matching '{self.pattern}' registered"

@dataclass(frozen=True)
class FileContains(Condition):
    path: str
    marker: str

    def describe(self) -> str:
        return f"{self.path} contains '{self.marker}'"

@dataclass(frozen=True)
class CredentialConfigured(Condition):
    user: str
    scope: str
    plugin: str

    def describe(self) -> str:
        return f"'{self.user}'@'{self.scope}' authenticates with {self.plugin}"

@dataclass(frozen=True)
class IndexFresh(Condition):
    max_age_seconds: float

    def describe(self) -> str:
        return f"package index refreshed within {self.max_age_seconds:.0f}s"

@dataclass(frozen=True)
class NoPendingUpgrades(Condition):
    def describe(self) -> str:
        return "no package upgrades pending"

@dataclass(frozen=True)
class AllOf(Condition):
    conditions: Tuple[Condition, ...]

    def describe(self) -> str:
        return " and ".join(c.describe() for c in self.conditions)


# ---------------------------------------------------------------------
# Oracle
# ---------------------------------------------------------------------
class IdempotencyOracle:
    """
    Answers "is this already done?" by querying the live host.

    A query that errors counts as not satisfied, so the step gets applied
    instead of being skipped.
    """

    def __init__(
        self,
        *,
        packages: PackageManager,
        services: ServiceManager,
        files: HostFiles,
        database: Optional[DatabaseServer] = None,
    ):
        self.packages = packages
        self.services = services
        self.files = files
        self.database = database

    def is_satisfied(self, condition: Condition) -> bool:
        _check_known(condition)
        try:
            return self._query(condition)
        except Exception as e:
            log.warning("Could not evaluate '%s' (%s); treating it as not satisfied", condition.describe(), e)
            return False

    def _query(self, c: Condition) -> bool:
        if isinstance(c, PackageInstalled):
            return self.packages.is_installed(c.name)
        if isinstance(c, UnitActive):
            return self.services.is_active(c.name)
        if isinstance(c, RepositoryPresent):
            return self.packages.has_repository(c.pattern)
        if isinstance(c, FileContains):
            content = self.files.read_text(c.path)
            return content is not None and c.marker in content
        if isinstance(c, CredentialConfigured):
            if self.database is None:
                raise IdempotencyQueryError("no database capability configured")
            return self.database.auth_plugin(c.user, c.scope) == c.plugin
        if isinstance(c, IndexFresh):
            age = self.packages.index_age()
            return age is not None and age <= c.max_age_seconds
        if isinstance(c, NoPendingUpgrades):
            return self.packages.pending_upgrades() == 0
        if isinstance(c, AllOf):
            return all(self._query(member) for member in c.conditions)
        raise TypeError(f"Unknown condition type: {type(c).__name__}")


_KNOWN = (
    PackageInstalled,
    UnitActive,
    RepositoryPresent,
    FileContains,
    CredentialConfigured,
    IndexFresh,
    NoPendingUpgrades,
    AllOf,
)


def _check_known(c: Condition) -> None:
    if not isinstance(c, _KNOWN):
        raise TypeError(f"Unknown condition type: {type(c).__name__}")
    if isinstance(c, AllOf):
        for member in c.conditions:
            _check_known(member)
