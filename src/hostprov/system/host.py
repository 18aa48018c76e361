# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import ipaddress
import secrets

from ..utils.runner import CommandRunner, check


class RunnerHostFacts:
    def __init__(self, runner: CommandRunner):
        self.runner = runner

    def primary_ip_address(self) -> str:
        """
        First address reported by ``hostname -I``.
        """
        out = check(self.runner, "hostname -I")
        for token in out.split():
            try:
                ipaddress.ip_address(token)
            except ValueError:
                continue
            return token
        raise RuntimeError("hostname -I reported no usable address")


class TokenSecretGenerator:
    def random_hex(self, byte_length: int) -> str:
        return secrets.token_hex(byte_length)
