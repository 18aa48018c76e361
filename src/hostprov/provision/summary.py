# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostprov/provision/summary.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Set


@dataclass(frozen=True)
class Credential:
    username: str
    secret: str = field(repr=False)


@dataclass
class RunSummary:
    """
    Facts gathered while provisioning, rendered once at the end.

    Lives in memory only; the secret is kept out of repr so it cannot leak
    through logging of this object.
    """
    service_path: str = "/db"
    host_address: Optional[str] = None
    credential: Optional[Credential] = None
    credential_user: Optional[str] = None     # set when the credential already existed
    installed_versions: List[str] = field(default_factory=list)
    installed_extensions: Set[str] = field(default_factory=set)

    @property
    def service_endpoint(self) -> Optional[str]:
        if not self.host_address:
            return None
        return f"http://{self.host_address}{self.service_path}"

    def add_version(self, version: str) -> None:
        if version not in self.installed_versions:
            self.installed_versions.append(version)

    def add_extension(self, ext: str) -> None:
        self.installed_extensions.add(ext)


def render(summary: RunSummary, warnings: Optional[List[str]] = None) -> str:
    """
    Human readable end-of-run report. Contains the plaintext secret, so it is
    printed to the terminal and never passed to a logger.
    """
    lines = ["", "✅ Setup complete!", ""]

    lines.append("🔗 phpMyAdmin is available at:")
    lines.append(f"    {summary.service_endpoint or '(host address unknown)'}")
    lines.append("")

    lines.extend(_credential_lines(summary))
    lines.append("")

    lines.append("📦 PHP versions installed:")
    lines.append(f"    • {' '.join(summary.installed_versions) or '(none)'}")
    lines.append("📦 Extensions installed for each:")
    lines.append(f"    • {' '.join(sorted(summary.installed_extensions)) or '(none)'}")

    if warnings:
        lines.append("")
        lines.append("⚠️  Completed with warnings:")
        for w in warnings:
            lines.append(f"    • {w}")

    lines.append("")
    return "\n".join(lines)


def _credential_lines(summary: RunSummary) -> List[str]:
    lines = ["👤 MySQL root credentials:"]
    if summary.credential is not None:
        lines.append(f"    username: {summary.credential.username}")
        lines.append(f"    password: {summary.credential.secret}")
    else:
        lines.append(f"    username: {summary.credential_user or 'root'}")
        lines.append("    password: unchanged (configured by an earlier run)")
    return lines


def render_credential(summary: RunSummary) -> str:
    """
    Credential block on its own, for a run that stopped after the password
    was already changed. A re-run skips the credential step, so this is the
    only time the secret is shown.
    """
    lines = ["", "⚠️  The MySQL root password was set before the failure. Save it now:"]
    lines.extend(_credential_lines(summary))
    lines.append("")
    return "\n".join(lines)
