# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

#src/hostprov/logging/log.py

from __future__ import annotations

import logging
import os
from pathlib import Path
from datetime import datetime, timezone
from typing import Set
import uuid

MASK = "********"
LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class SecretFilter(logging.Filter):
    """
    Replaces every registered secret in a record's message with ``MASK``.

    Attached to each handler, so it also covers records from child loggers
    that propagate up to ``hostprov``.
    """

    def __init__(self):
        super().__init__()
        self._secrets: Set[str] = set()

    def add(self, value: str) -> None:
        if value:
            self._secrets.add(value)

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True
        message = record.getMessage()
        masked = message
        for secret in self._secrets:
            masked = masked.replace(secret, MASK)
        if masked != message:
            record.msg, record.args = masked, None
        return True


_secrets = SecretFilter()


def mask_secret(value: str) -> None:
    """
    Register a generated secret so no handler set up here ever writes it.
    """
    _secrets.add(value)


def _file_handler(path: Path) -> logging.FileHandler:
    fh = logging.FileHandler(path)
    # operator-only: the trace names hosts, users and commands
    os.chmod(path, 0o600)
    fh.setLevel(logging.DEBUG)
    return fh


def _console_handler(verbose: bool) -> logging.StreamHandler:
    ch = logging.StreamHandler()
    # progress lines come from ConsoleObserver; the handler only adds problems
    ch.setLevel(logging.DEBUG if verbose else logging.WARNING)
    return ch


def init_logging(
    *,
    base_dir: Path | None = None,
    name: str = "hostprov",
    verbose: bool = False,
) -> tuple[logging.Logger, str, Path]:
    """
    Initializes:
      - full trace log file, mode 0600 (every command and event)
      - console handler, WARNING by default (DEBUG with verbose)
      - secret masking on both handlers, see ``mask_secret``
      - returns run_id so observers can reuse it
    """
    run_id = str(uuid.uuid4())

    if base_dir is None:
        base_dir = Path.home() / ".hostprov" / "logs"
    base_dir.mkdir(parents=True, exist_ok=True)

    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    log_path = base_dir / f"{name}-{ts}-{run_id}.log"

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()
    logger.propagate = False

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    for handler in (_file_handler(log_path), _console_handler(verbose)):
        handler.setFormatter(formatter)
        handler.addFilter(_secrets)
        logger.addHandler(handler)

    logger.info("=== hostprov run %s ===", run_id)
    logger.info("log_file=%s", log_path)

    return logger, run_id, log_path
