# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import paramiko

from .retry import retry
from .ssh_runner import SSHRunner

log = logging.getLogger("hostprov")


@dataclass
class SSHTarget:
    """
    The single host we provision when not running locally.
    """
    address: str
    username: str = "root"
    port: int = 22
    password: Optional[str] = None
    pkey_path: Optional[Path] = None
    become_password: Optional[str] = None     # for sudo -S


def _load_pkey(path: Path):
    for key_cls in (
        paramiko.Ed25519Key,
        paramiko.RSAKey,
        paramiko.ECDSAKey,
    ):
        try:
            return key_cls.from_private_key_file(str(path))
        except paramiko.SSHException:
            continue
    raise RuntimeError(f"Unsupported private key format for {path}")


def _log_retry(attempt: int, exc: Exception) -> None:
    log.info("SSH not ready (attempt %d, %s: %s), retrying...", attempt, type(exc).__name__, exc)


def open_ssh(
    target: SSHTarget,
    *,
    connect_timeout: float = 20.0,
    retries: int = 5,
    delay: int = 10,
) -> SSHRunner:
    pkey = _load_pkey(target.pkey_path) if target.pkey_path else None

    @retry(
        retries=retries,
        delay=delay,
        retry_on=(paramiko.SSHException, OSError),
        on_retry=_log_retry,
    )
    def _connect() -> paramiko.SSHClient:
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        client.connect(
            hostname=target.address,
            port=target.port,
            username=target.username,
            password=target.password if not pkey else None,
            pkey=pkey,
            timeout=connect_timeout,
            allow_agent=pkey is None,
            look_for_keys=pkey is None,
        )
        return client

    return SSHRunner(_connect(), become_password=target.become_password)
