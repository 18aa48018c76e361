# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostprov/system/mysql.py

from __future__ import annotations

import logging
from typing import Optional

from ..provision.errors import CredentialMutationError, IdempotencyQueryError
from ..utils.runner import CommandRunner, q

log = logging.getLogger("hostprov")


def _sql_str(value: str) -> str:
    return "'" + value.replace("\\", "\\\\").replace("'", "''") + "'"


class MysqlServer:
    """
    Talks to the local MySQL server through the ``mysql`` client.

    Statements go over stdin so secrets never show up in argv or logs.
    Credential changes connect as the OS root user (auth_socket); state
    queries use the Debian maintenance account so they keep working after
    root got a password.
    """

    def __init__(
        self,
        runner: CommandRunner,
        *,
        auth_plugin: str = "mysql_native_password",
        admin_defaults_file: str = "/etc/mysql/debian.cnf",
    ):
        self.runner = runner
        self.plugin = auth_plugin
        self.admin_defaults_file = admin_defaults_file

    def set_credential(self, user: str, scope: str, secret: str) -> None:
        sql = (
            f"ALTER USER {_sql_str(user)}@{_sql_str(scope)}\n"
            f"  IDENTIFIED WITH {self.plugin} BY {_sql_str(secret)};\n"
            "FLUSH PRIVILEGES;\n"
        )
        log.info("Setting credential for %s@%s (%s)", user, scope, self.plugin)
        rc, _, err = self.runner.run("mysql", sudo=True, stdin_data=sql)
        if rc != 0:
            raise CredentialMutationError(f"ALTER USER {user}@{scope}", rc, err)

    def auth_plugin(self, user: str, scope: str) -> Optional[str]:
        sql = (
            "SELECT plugin FROM mysql.user "
            f"WHERE User = {_sql_str(user)} AND Host = {_sql_str(scope)};\n"
        )
        rc, out, err = self.runner.run(
            f"mysql --defaults-file={q(self.admin_defaults_file)} -N -B",
            sudo=True,
            stdin_data=sql,
        )
        if rc != 0:
            raise IdempotencyQueryError(f"cannot query mysql.user: {err.strip()}")
        rows = [line.strip() for line in out.splitlines() if line.strip()]
        return rows[0] if rows else None
