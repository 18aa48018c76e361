# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostprov/system/apt.py

from __future__ import annotations

import logging
import re
from typing import Iterable, Optional

from ..provision.errors import IdempotencyQueryError
from ..provision.lock import LockArbiter
from ..utils.runner import CommandRunner, check, q

log = logging.getLogger("hostprov")

APT = "DEBIAN_FRONTEND=noninteractive apt-get -y -o Dpkg::Options::=--force-confdef -o Dpkg::Options::=--force-confold"
SOURCES_DIR = "/etc/apt/sources.list.d"
INDEX_STAMPS = ("/var/lib/apt/periodic/update-success-stamp", "/var/lib/apt/lists")


class AptPackageManager:
    """
    apt/dpkg behind the PackageManager capability.

    Every mutating call waits on the lock arbiter first; queries never do.
    """

    def __init__(self, runner: CommandRunner, arbiter: LockArbiter):
        self.runner = runner
        self.arbiter = arbiter

    # ------------------ queries ------------------

    def is_installed(self, name: str) -> bool:
        rc, out, err = self.runner.run(f"dpkg-query -W -f='${{Status}}' {q(name)}")
        if rc not in (0, 1):
            raise IdempotencyQueryError(f"dpkg-query failed for {name}: {err.strip()}")
        if rc == 0 and "install ok installed" in out:
            return True
        return self._provided(name)

    def _provided(self, name: str) -> bool:
        """
        Virtual packages (php8.1-tokenizer is shipped by php8.1-common)
        count as installed when an installed package provides them.
        """
        rc, out, err = self.runner.run("dpkg-query -W -f='${db:Status-Abbrev}|${Provides}\\n'")
        if rc != 0:
            raise IdempotencyQueryError(f"dpkg-query failed: {err.strip()}")
        for line in out.splitlines():
            status, _, provides = line.partition("|")
            if not status.startswith("ii"):
                continue
            for item in provides.split(","):
                if item.strip().split(" ", 1)[0] == name:
                    return True
        return False

    def has_repository(self, pattern: str) -> bool:
        # one-line ("deb ...") and deb822 ("URIs: ...") source formats
        regex = f"^(deb .+|URIs: .*){re.escape(pattern)}"
        rc, _, err = self.runner.run(f"grep -RqsE {q(regex)} {SOURCES_DIR}")
        if rc > 1:
            raise IdempotencyQueryError(f"cannot search {SOURCES_DIR}: {err.strip()}")
        return rc == 0

    def index_age(self) -> Optional[float]:
        stamps = " ".join(INDEX_STAMPS)
        rc, out, err = self.runner.run(
            f"newest=$(stat -c %Y {stamps} 2>/dev/null | sort -n | tail -1); "
            f'[ -n "$newest" ] && echo $(( $(date +%s) - newest ))'
        )
        out = out.strip()
        if rc != 0 or not out:
            return None
        return float(out)

    def pending_upgrades(self) -> int:
        rc, out, err = self.runner.run("apt-get -s -o Debug::NoLocking=1 upgrade")
        if rc != 0:
            raise IdempotencyQueryError(f"apt-get upgrade simulation failed: {err.strip()}")
        return sum(1 for line in out.splitlines() if line.startswith("Inst "))

    # ------------------ mutations ------------------

    def _apt(self, args: str) -> None:
        self.arbiter.acquire_or_wait()
        check(self.runner, f"{APT} {args}", sudo=True)

    def install(self, *names: str) -> None:
        log.info("Installing %s", " ".join(names))
        self._apt("install " + " ".join(q(n) for n in names))

    def remove_purge(self, *names: str) -> None:
        log.info("Purging %s", " ".join(names))
        self._apt("remove --purge " + " ".join(q(n) for n in names))

    def autoremove(self) -> None:
        self._apt("autoremove")

    def refresh_index(self) -> None:
        log.info("Updating package index")
        self._apt("update")

    def upgrade(self) -> None:
        log.info("Upgrading installed packages")
        self._apt("upgrade")

    def add_repository(self, spec: str) -> None:
        log.info("Adding repository %s", spec)
        self.arbiter.acquire_or_wait()
        check(self.runner, f"add-apt-repository -y {q(spec)}", sudo=True)

    def preseed(self, selections: Iterable[str]) -> None:
        data = "".join(line.rstrip("\n") + "\n" for line in selections)
        if data:
            check(self.runner, "debconf-set-selections", sudo=True, stdin_data=data)
