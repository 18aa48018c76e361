# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostprov/config/loader.py

import logging
import os
import yaml
from pathlib import Path
from .models import ProvisionConfig

log = logging.getLogger("hostprov")

SYSTEM_CONFIG = Path("/etc/hostprov/config.yaml")


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Recursively merge *override* into *base* (mutates base).
    Only overwrites when the override value is non-empty.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            _deep_merge(base[key], value)
        else:
            if value not in (None, ""):
                base[key] = value
    return base


def _find_config_file(path: str | Path | None) -> Path | None:
    """
    Locate the config using this priority:

    1. explicit path (must exist)
    2. HOSTPROV_CONFIG environment variable
    3. /etc/hostprov/config.yaml
    """
    if path is not None:
        p = Path(path)
        if not p.is_file():
            raise FileNotFoundError(f"Config file not found: {p}")
        return p

    env = os.environ.get("HOSTPROV_CONFIG")
    if env:
        p = Path(env)
        if p.is_file():
            return p
        log.warning("HOSTPROV_CONFIG=%s does not exist, using defaults", env)
        return None

    if SYSTEM_CONFIG.is_file():
        return SYSTEM_CONFIG

    return None


def _load_yaml(path: Path) -> dict:
    """Load a YAML file, expanding ${ENV_VAR} references."""
    raw = path.read_text()
    expanded = os.path.expandvars(raw)
    data = yaml.safe_load(expanded) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping at the top level")
    return data


def load_config(path: str | Path | None = None) -> ProvisionConfig:
    """
    Load and validate the provisioning config.

    Every field has a default matching a stock LEMP + phpMyAdmin host, so
    with no file at all the defaults are used as-is.

    An optional overrides file named by ``HOSTPROV_OVERRIDES`` is deep-merged
    on top before validation, e.g. to pin ``php.versions`` on one machine.
    """
    data: dict = {}
    cfg_path = _find_config_file(path)
    if cfg_path:
        log.debug("Loading config from %s", cfg_path)
        data = _load_yaml(cfg_path)
    else:
        log.debug("No config file found, using defaults")

    overrides = os.environ.get("HOSTPROV_OVERRIDES")
    if overrides:
        p = Path(overrides)
        if p.is_file():
            log.debug("Merging overrides from %s", p)
            _deep_merge(data, _load_yaml(p))
        else:
            log.warning("HOSTPROV_OVERRIDES=%s does not exist, skipping", overrides)

    return ProvisionConfig.model_validate(data)
