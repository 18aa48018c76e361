# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import logging

from ..utils.runner import CommandRunner, check, q

log = logging.getLogger("hostprov")


class SystemdServiceManager:
    def __init__(self, runner: CommandRunner):
        self.runner = runner

    def is_active(self, unit: str) -> bool:
        enabled, _, _ = self.runner.run(f"systemctl is-enabled --quiet {q(unit)}")
        if enabled != 0:
            return False
        active, _, _ = self.runner.run(f"systemctl is-active --quiet {q(unit)}")
        return active == 0

    def enable_and_start(self, unit: str) -> None:
        log.info("Enabling and starting %s", unit)
        check(self.runner, f"systemctl enable --now {q(unit)}", sudo=True)

    def reload(self, unit: str) -> None:
        log.info("Reloading %s", unit)
        check(self.runner, f"systemctl reload {q(unit)}", sudo=True)

    def restart(self, unit: str) -> None:
        log.info("Restarting %s", unit)
        check(self.runner, f"systemctl restart {q(unit)}", sudo=True)
