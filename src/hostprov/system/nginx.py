# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import logging

from ..utils.runner import CommandRunner, check, q

log = logging.getLogger("hostprov")


class NginxValidator:
    """
    ``nginx -t`` on the main config, which includes every enabled site.
    """

    def __init__(self, runner: CommandRunner, main_config: str = "/etc/nginx/nginx.conf"):
        self.runner = runner
        self.main_config = main_config

    def validate(self, path: str) -> None:
        log.info("Testing nginx configuration after change to %s", path)
        check(self.runner, f"nginx -t -q -c {q(self.main_config)}", sudo=True)
