# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostprov/utils/runner.py

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from typing import Optional, Protocol, Tuple, Type

from hostprov.provision.errors import CommandError

log = logging.getLogger("hostprov")

Result = Tuple[int, str, str]


class CommandRunner(Protocol):
    def run(self, cmd: str, *, sudo: bool = False, stdin_data: Optional[str] = None) -> Result: ...


def q(s: str) -> str:
    """
    Quote a single shell word.
    """
    return shlex.quote(s)


def check(
    runner: CommandRunner,
    cmd: str,
    *,
    sudo: bool = False,
    stdin_data: Optional[str] = None,
    error: Type[CommandError] = CommandError,
) -> str:
    """
    Run a command and return its stdout, raising ``error`` on a non-zero exit.
    """
    rc, out, err = runner.run(cmd, sudo=sudo, stdin_data=stdin_data)
    if rc != 0:
        raise error(cmd, rc, err)
    return out


class LocalRunner:
    """
    Runs commands on this machine through ``bash -lc``.

    sudo=True prefixes ``sudo -n`` unless we already run as root. Stdin data
    (SQL, file contents) is passed through but never logged.
    """

    def __init__(self, *, use_sudo: Optional[bool] = None, env: Optional[dict] = None):
        if use_sudo is None:
            use_sudo = os.geteuid() != 0
        self.use_sudo = use_sudo
        self.env = env

    def run(self, cmd: str, *, sudo: bool = False, stdin_data: Optional[str] = None) -> Result:
        argv = ["bash", "-lc", cmd]
        if sudo and self.use_sudo:
            argv = ["sudo", "-n"] + argv

        log.debug("$ %s%s", "sudo " if sudo else "", cmd)
        cp = subprocess.run(
            argv,
            input=stdin_data,
            capture_output=True,
            text=True,
            check=False,
            env=self.env,
        )
        log.debug("rc=%d", cp.returncode)
        if cp.returncode != 0 and cp.stderr:
            log.debug("stderr: %s", cp.stderr.strip())
        return cp.returncode, cp.stdout, cp.stderr
