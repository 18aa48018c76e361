# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostprov/config/models.py

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class _Section(BaseModel):
    model_config = {
        "extra": "forbid"
    }


class LockConfig(_Section):
    path: str = "/var/lib/dpkg/lock-frontend"
    poll_interval: float = Field(default=3.0, gt=0)
    max_wait: float = Field(default=300.0, gt=0)


class PackagesConfig(_Section):
    prerequisites: List[str] = [
        "software-properties-common",
        "lsb-release",
        "ca-certificates",
        "apt-transport-https",
        "openssl",
    ]
    upgrade: bool = True
    index_max_age: float = 3600.0


class DatabaseConfig(_Section):
    package: str = "mysql-server"
    service: str = "mysql"
    purge_packages: List[str] = ["mysql-server", "mysql-client", "mysql-common"]
    root_user: str = "root"
    root_scope: str = "localhost"
    auth_plugin: str = "mysql_native_password"
    admin_defaults_file: str = "/etc/mysql/debian.cnf"
    secret_bytes: int = Field(default=16, ge=8, le=64)
    # Purges the server (and its data) when the first credential change fails.
    allow_destructive_reinstall: bool = True


class PhpConfig(_Section):
    repository: str = "ppa:ondrej/php"
    repository_pattern: str = "ondrej/php"
    versions: List[str] = ["8.1", "8.2", "8.3", "8.4"]
    extensions: List[str] = [
        "fpm", "cli", "mysql", "mbstring", "curl", "xml", "zip",
        "gd", "opcache", "bcmath", "intl", "tokenizer", "fileinfo",
    ]

    @field_validator("versions")
    @classmethod
    def _at_least_one(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("at least one PHP version is required")
        return v


class ProxyConfig(_Section):
    package: str = "nginx"
    service: str = "nginx"
    site_path: str = "/etc/nginx/sites-available/default"
    main_config: str = "/etc/nginx/nginx.conf"
    anchor: Optional[str] = "server_name _;"
    marker: Optional[str] = None      # defaults to "location <location>/"
    location: str = "/db"
    # PHP version whose FPM socket serves the console; defaults to the first one.
    fpm_version: Optional[str] = None


class AdminConsoleConfig(_Section):
    package: str = "phpmyadmin"
    document_root: str = "/usr/share/phpmyadmin"
    preseed: List[str] = [
        "phpmyadmin phpmyadmin/dbconfig-install boolean false",
        "phpmyadmin phpmyadmin/reconfigure-webserver multiselect",
    ]


class TargetConfig(_Section):
    """
    Remote host to provision over SSH. Absent = this machine.
    """
    address: str
    username: str = "root"
    port: int = 22
    pkey_path: Optional[Path] = None
    password: Optional[str] = None
    become_password: Optional[str] = None


class ProvisionConfig(_Section):
    environment: str = "local"
    lock: LockConfig = Field(default_factory=LockConfig)
    packages: PackagesConfig = Field(default_factory=PackagesConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    php: PhpConfig = Field(default_factory=PhpConfig)
    proxy: ProxyConfig = Field(default_factory=ProxyConfig)
    admin_console: AdminConsoleConfig = Field(default_factory=AdminConsoleConfig)
    target: Optional[TargetConfig] = None

    @property
    def fpm_version(self) -> str:
        return self.proxy.fpm_version or self.php.versions[0]
