# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostprov/system/files.py

from __future__ import annotations

import os
import stat
import tempfile
from pathlib import Path
from typing import Optional

from ..provision.errors import CommandError
from ..utils.runner import CommandRunner, check, q


class LocalFiles:
    """
    Files on this machine, written with temp-file-then-rename.
    """

    def read_text(self, path: str) -> Optional[str]:
        p = Path(path)
        if not p.exists():
            return None
        return p.read_text(encoding="utf-8")

    def write_atomic(self, path: str, content: str) -> None:
        p = Path(path)
        mode = stat.S_IMODE(p.stat().st_mode) if p.exists() else 0o644
        fd, tmp = tempfile.mkstemp(prefix=f".{p.name}.", suffix=".hostprov-tmp", dir=str(p.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp, mode)
            os.replace(tmp, p)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise


class RunnerFiles:
    """
    Files reached through a command runner (sudo locally, or over SSH).

    Content travels on stdin into a temp file next to the target, which is
    then renamed over it.
    """

    MISSING_RC = 3

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    def read_text(self, path: str) -> Optional[str]:
        p = q(path)
        rc, out, err = self.runner.run(
            f"if [ -e {p} ]; then cat {p}; else exit {self.MISSING_RC}; fi", sudo=True
        )
        if rc == self.MISSING_RC:
            return None
        if rc != 0:
            raise CommandError(f"cat {path}", rc, err)
        return out

    def write_atomic(self, path: str, content: str) -> None:
        p = q(path)
        tmp = q(f"{path}.hostprov-tmp")
        check(
            self.runner,
            f"umask 022 && cat > {tmp} && "
            f"{{ chmod --reference={p} {tmp} 2>/dev/null || true; }} && "
            f"mv -f {tmp} {p}",
            sudo=True,
            stdin_data=content,
        )
