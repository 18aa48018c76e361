# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostprov/system/interfaces.py

from __future__ import annotations

from typing import Iterable, Optional, Protocol


class PackageManager(Protocol):
    def is_installed(self, name: str) -> bool: ...
    def has_repository(self, pattern: str) -> bool: ...
    def index_age(self) -> Optional[float]: ...
    def pending_upgrades(self) -> int: ...

    def install(self, *names: str) -> None: ...
    def remove_purge(self, *names: str) -> None: ...
    def autoremove(self) -> None: ...
    def add_repository(self, spec: str) -> None: ...
    def refresh_index(self) -> None: ...
    def upgrade(self) -> None: ...
    def preseed(self, selections: Iterable[str]) -> None: ...


class ServiceManager(Protocol):
    def is_active(self, unit: str) -> bool: ...
    def enable_and_start(self, unit: str) -> None: ...
    def reload(self, unit: str) -> None: ...
    def restart(self, unit: str) -> None: ...


class DatabaseServer(Protocol):
    def set_credential(self, user: str, scope: str, secret: str) -> None: ...
    def auth_plugin(self, user: str, scope: str) -> Optional[str]: ...


class SecretGenerator(Protocol):
    def random_hex(self, byte_length: int) -> str: ...


class HostFacts(Protocol):
    def primary_ip_address(self) -> str: ...


class HostFiles(Protocol):
    def read_text(self, path: str) -> Optional[str]: ...
    def write_atomic(self, path: str, content: str) -> None: ...


class ConfigValidator(Protocol):
    def validate(self, path: str) -> None: ...
