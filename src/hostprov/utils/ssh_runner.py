# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostprov/utils/ssh_runner.py

from __future__ import annotations

import logging
import uuid
from typing import Optional

import paramiko

from .runner import Result, q

log = logging.getLogger("hostprov")


class SSHRunner:
    """
    Runs commands on the target host over an open paramiko client.
    """

    def __init__(
        self,
        client: paramiko.SSHClient,
        *,
        become_password: Optional[str] = None,
        cmd_timeout: Optional[float] = None,
    ):
        self.client = client
        self.become_password = become_password
        self.cmd_timeout = cmd_timeout
        self._sftp: Optional[paramiko.SFTPClient] = None

    def _sftp_client(self) -> paramiko.SFTPClient:
        if self._sftp is None:
            self._sftp = self.client.open_sftp()
        return self._sftp

    def _stage(self, data: str) -> str:
        """
        Upload ``data`` to a private temp file and return its remote path.
        """
        path = f"/tmp/.hostprov-{uuid.uuid4().hex}"
        with self._sftp_client().file(path, "w") as f:
            f.chmod(0o600)
            f.write(data)
        return path

    def run(self, cmd: str, *, sudo: bool = False, stdin_data: Optional[str] = None) -> Result:
        """
        Run a shell command.

        With sudo=True and a become password, the channel carries the password
        and nothing else. ``sudo -S`` does not read it when no prompt is needed
        (NOPASSWD, cached credentials), so the command's own stdin is
        redirected: from a staged temp file when there is stdin data, from
        /dev/null otherwise.
        """
        staged: Optional[str] = None
        if sudo and self.become_password:
            if stdin_data:
                staged = self._stage(stdin_data)
            inner = f"{{ {cmd} ; }} < {staged or '/dev/null'}"
            wrapped = f"sudo -S -p '' bash -lc {q(inner)}"
            feed = self.become_password + "\n"
        elif sudo:
            wrapped = f"sudo -n bash -lc {q(cmd)}"
            feed = stdin_data
        else:
            wrapped = f"bash -lc {q(cmd)}"
            feed = stdin_data

        log.debug("$ %s%s", "sudo " if sudo else "", cmd)
        try:
            stdin, stdout, stderr = self.client.exec_command(wrapped, timeout=self.cmd_timeout)
            if feed:
                stdin.write(feed)
            stdin.flush()
            stdin.channel.shutdown_write()

            out = stdout.read().decode("utf-8", errors="replace")
            err = stderr.read().decode("utf-8", errors="replace")
            rc = stdout.channel.recv_exit_status()
        finally:
            if staged:
                self._sftp_client().remove(staged)
        log.debug("rc=%d", rc)
        return rc, out, err

    def close(self) -> None:
        if self._sftp is not None:
            self._sftp.close()
        self.client.close()
