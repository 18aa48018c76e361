# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostprov/provision/patcher.py

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from ..observers.dispatcher import EventBus
from ..observers.events import ConfigPatched, ConfigRejected, new_ctx
from ..system.interfaces import ConfigValidator, HostFiles, ServiceManager
from .errors import CommandError, ConfigValidationFailed

log = logging.getLogger("hostprov")


class PatchResult(str, Enum):
    PATCHED = "patched"
    ALREADY_PATCHED = "already_patched"


class PatchTargetMissing(FileNotFoundError):
    pass


def insert_block(content: str, block: str, anchor: Optional[str] = None) -> str:
    """
    Insert ``block`` right after the first line containing ``anchor``, or
    at end of file when there is no anchor (or it is not found).
    """
    if not block.endswith("\n"):
        block += "\n"

    lines = content.splitlines(keepends=True)
    if anchor is not None:
        for i, line in enumerate(lines):
            if anchor in line:
                if not line.endswith("\n"):
                    lines[i] = line + "\n"
                return "".join(lines[: i + 1]) + block + "".join(lines[i + 1 :])
        log.warning("Anchor '%s' not found, appending block at end of file", anchor)

    if content and not content.endswith("\n"):
        content += "\n"
    return content + block


class ConfigPatcher:
    """
    At-most-once insertion of a text block, keyed on a marker substring.
    """

    def __init__(self, files: HostFiles, *, bus: Optional[EventBus] = None, run_ctx: Optional[dict] = None):
        self.files = files
        self.bus = bus or EventBus()
        self.run_ctx = run_ctx or new_ctx(env="local", target=None)

    def patch(
        self,
        target_path: str,
        marker: str,
        insertion_block: str,
        anchor: Optional[str] = None,
    ) -> PatchResult:
        if marker not in insertion_block:
            raise ValueError(f"Marker '{marker}' does not occur in the insertion block")

        content = self.files.read_text(target_path)
        if content is None:
            raise PatchTargetMissing(f"Cannot patch missing file {target_path}")

        if marker in content:
            log.info("%s already contains '%s', skipping", target_path, marker)
            self.bus.emit(ConfigPatched(path=target_path, result=PatchResult.ALREADY_PATCHED.value, **self.run_ctx))
            return PatchResult.ALREADY_PATCHED

        self.files.write_atomic(target_path, insert_block(content, insertion_block, anchor))
        log.info("Inserted block marked '%s' into %s", marker, target_path)
        self.bus.emit(ConfigPatched(path=target_path, result=PatchResult.PATCHED.value, **self.run_ctx))
        return PatchResult.PATCHED


def apply_gated_patch(
    patcher: ConfigPatcher,
    validator: ConfigValidator,
    services: ServiceManager,
    *,
    target_path: str,
    marker: str,
    insertion_block: str,
    unit: str,
    anchor: Optional[str] = None,
) -> PatchResult:
    """
    Patch, validate, then reload ``unit``.

    A rejected config is rolled back on disk and the running service is
    never reloaded, so it keeps serving the previous configuration.
    """
    previous = patcher.files.read_text(target_path)
    result = patcher.patch(target_path, marker, insertion_block, anchor)
    if result is PatchResult.ALREADY_PATCHED:
        return result

    try:
        validator.validate(target_path)
    except CommandError as e:
        patcher.files.write_atomic(target_path, previous)
        patcher.bus.emit(ConfigRejected(path=target_path, error=str(e), **patcher.run_ctx))
        raise ConfigValidationFailed(
            f"{target_path} failed validation, previous version restored: {e}"
        ) from e

    services.reload(unit)
    return result
