# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostprov/provision/plan.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from ..config.models import ProvisionConfig
from ..observers.dispatcher import EventBus
from ..observers.events import new_ctx
from ..system.apt import AptPackageManager
from ..system.files import RunnerFiles
from ..system.host import RunnerHostFacts, TokenSecretGenerator
from ..system.interfaces import (
    ConfigValidator,
    DatabaseServer,
    HostFacts,
    HostFiles,
    PackageManager,
    SecretGenerator,
    ServiceManager,
)
from ..system.mysql import MysqlServer
from ..system.nginx import NginxValidator
from ..system.systemd import SystemdServiceManager
from ..utils.runner import CommandRunner
from ..utils.templates import render_jinja_text
from .executor import PipelineExecutor, RunOutcome
from .lock import FuserLockInspector, LockArbiter, LockSpec
from .oracle import (
    CredentialConfigured,
    FileContains,
    IdempotencyOracle,
    IndexFresh,
    NoPendingUpgrades,
    PackageInstalled,
    RepositoryPresent,
    UnitActive,
)
from .patcher import ConfigPatcher, apply_gated_patch
from .recovery import CredentialBootstrapPolicy, ReinstallPlan
from .steps import Step
from .summary import RunSummary

log = logging.getLogger("hostprov")


DB_LOCATION_TEMPLATE = r"""
    # phpMyAdmin alias
    location {{ location }}/ {
        alias {{ document_root }}/;
        index index.php index.html;
    }
    location ~ ^{{ location }}/(.+\.php)$ {
        alias {{ document_root }}/$1;
        include fastcgi_params;
        fastcgi_param SCRIPT_FILENAME {{ document_root }}/$1;
        fastcgi_pass unix:/run/php/php{{ fpm_version }}-fpm.sock;
    }
""".lstrip("\n")


@dataclass
class HostStack:
    """
    Every capability the pipeline needs, bound to one host.
    """
    packages: PackageManager
    services: ServiceManager
    database: DatabaseServer
    secrets: SecretGenerator
    facts: HostFacts
    files: HostFiles
    validator: ConfigValidator
    bus: EventBus = field(default_factory=EventBus)
    run_ctx: dict = field(default_factory=lambda: new_ctx(env="local", target=None))


def build_stack(
    cfg: ProvisionConfig,
    runner: CommandRunner,
    *,
    files: Optional[HostFiles] = None,
    bus: Optional[EventBus] = None,
    run_ctx: Optional[dict] = None,
) -> HostStack:
    bus = bus or EventBus()
    run_ctx = run_ctx or new_ctx(env=cfg.environment, target=cfg.target.address if cfg.target else None)
    arbiter = LockArbiter(
        FuserLockInspector(runner),
        LockSpec(path=cfg.lock.path, poll_interval=cfg.lock.poll_interval, max_wait=cfg.lock.max_wait),
        bus=bus,
        run_ctx=run_ctx,
    )
    return HostStack(
        packages=AptPackageManager(runner, arbiter),
        services=SystemdServiceManager(runner),
        database=MysqlServer(
            runner,
            auth_plugin=cfg.database.auth_plugin,
            admin_defaults_file=cfg.database.admin_defaults_file,
        ),
        secrets=TokenSecretGenerator(),
        facts=RunnerHostFacts(runner),
        files=files or RunnerFiles(runner),
        validator=NginxValidator(runner, main_config=cfg.proxy.main_config),
        bus=bus,
        run_ctx=run_ctx,
    )


def build_oracle(stack: HostStack) -> IdempotencyOracle:
    return IdempotencyOracle(
        packages=stack.packages,
        services=stack.services,
        files=stack.files,
        database=stack.database,
    )


def build_credential_policy(cfg: ProvisionConfig, stack: HostStack) -> CredentialBootstrapPolicy:
    db = cfg.database
    return CredentialBootstrapPolicy(
        database=stack.database,
        packages=stack.packages,
        services=stack.services,
        secrets=stack.secrets,
        user=db.root_user,
        scope=db.root_scope,
        secret_bytes=db.secret_bytes,
        reinstall=ReinstallPlan(purge=tuple(db.purge_packages), install=(db.package,), service=db.service),
        allow_destructive_reinstall=db.allow_destructive_reinstall,
        bus=stack.bus,
        run_ctx=stack.run_ctx,
    )


def proxy_marker(cfg: ProvisionConfig) -> str:
    return cfg.proxy.marker or f"location {cfg.proxy.location}/"


def render_location_block(cfg: ProvisionConfig) -> str:
    return render_jinja_text(
        DB_LOCATION_TEMPLATE,
        {
            "location": cfg.proxy.location.rstrip("/"),
            "document_root": cfg.admin_console.document_root.rstrip("/"),
            "fpm_version": cfg.fpm_version,
        },
    )


# ------------------------------------------------------------------
# Step factories
# ------------------------------------------------------------------

def _package_step(
    packages: PackageManager,
    name: str,
    *,
    critical: bool = True,
    record: Optional[Callable[[RunSummary], None]] = None,
) -> Step:
    return Step(
        name=f"package:{name}",
        precondition=PackageInstalled(name),
        apply=lambda summary: packages.install(name),
        critical=critical,
        record=record,
        description=f"Install {name}",
    )


def _service_step(services: ServiceManager, unit: str, *, critical: bool = True) -> Step:
    return Step(
        name=f"service:{unit}",
        precondition=UnitActive(unit),
        apply=lambda summary: services.enable_and_start(unit),
        critical=critical,
        description=f"Enable and start {unit}",
    )


def _record_version(version: str) -> Callable[[RunSummary], None]:
    return lambda summary: summary.add_version(version)


def _record_extension(ext: str) -> Callable[[RunSummary], None]:
    return lambda summary: summary.add_extension(ext)


def build_pipeline(
    cfg: ProvisionConfig,
    stack: HostStack,
    policy: Optional[CredentialBootstrapPolicy] = None,
) -> List[Step]:
    """
    The fixed step order for a LEMP + phpMyAdmin host.

    Order carries the dependencies: repository before PHP packages, package
    before its service, database before its credential, runtime before its
    extensions, proxy package before the route patch.
    """
    pk = stack.packages
    svc = stack.services
    steps: List[Step] = []

    # 1) Index, upgrades and prerequisites
    steps.append(
        Step(
            name="refresh-index",
            precondition=IndexFresh(cfg.packages.index_max_age),
            apply=lambda summary: pk.refresh_index(),
            description="apt-get update",
        )
    )
    if cfg.packages.upgrade:
        steps.append(
            Step(
                name="upgrade-packages",
                precondition=NoPendingUpgrades(),
                apply=lambda summary: pk.upgrade(),
                description="apt-get upgrade",
            )
        )
    for pkg in cfg.packages.prerequisites:
        steps.append(_package_step(pk, pkg))

    # 2) PHP repository
    def _add_php_repository(summary: RunSummary) -> None:
        pk.add_repository(cfg.php.repository)
        pk.refresh_index()

    steps.append(
        Step(
            name="php-repository",
            precondition=RepositoryPresent(cfg.php.repository_pattern),
            apply=_add_php_repository,
            description=f"Register {cfg.php.repository}",
        )
    )

    # 3) Web server
    steps.append(_package_step(pk, cfg.proxy.package))
    steps.append(_service_step(svc, cfg.proxy.service))

    # 4) Database server and root credential
    db = cfg.database
    steps.append(_package_step(pk, db.package))
    steps.append(_service_step(svc, db.service))

    policy = policy or build_credential_policy(cfg, stack)

    def _note_credential(summary: RunSummary) -> None:
        summary.credential_user = db.root_user

    steps.append(
        Step(
            name="database-credential",
            precondition=CredentialConfigured(db.root_user, db.root_scope, db.auth_plugin),
            apply=policy.first_attempt,
            recovery=policy,
            record=_note_credential,
            description=f"Set a generated password for {db.root_user}@{db.root_scope}",
        )
    )

    # 5) PHP runtimes; extensions and FPM units are optional
    for ver in cfg.php.versions:
        steps.append(_package_step(pk, f"php{ver}", record=_record_version(ver)))
        for ext in cfg.php.extensions:
            steps.append(_package_step(pk, f"php{ver}-{ext}", critical=False, record=_record_extension(ext)))
        steps.append(_service_step(svc, f"php{ver}-fpm", critical=False))

    # 6) Administration console (no internal database setup)
    console = cfg.admin_console

    def _install_console(summary: RunSummary) -> None:
        pk.preseed(console.preseed)
        pk.install(console.package)

    steps.append(
        Step(
            name=f"package:{console.package}",
            precondition=PackageInstalled(console.package),
            apply=_install_console,
            description=f"Install {console.package} non-interactively",
        )
    )

    # 7) Route the console through the proxy
    marker = proxy_marker(cfg)
    block = render_location_block(cfg)
    patcher = ConfigPatcher(stack.files, bus=stack.bus, run_ctx=stack.run_ctx)

    def _route_console(summary: RunSummary) -> None:
        apply_gated_patch(
            patcher,
            stack.validator,
            svc,
            target_path=cfg.proxy.site_path,
            marker=marker,
            insertion_block=block,
            unit=cfg.proxy.service,
            anchor=cfg.proxy.anchor,
        )

    steps.append(
        Step(
            name=f"proxy-route:{cfg.proxy.location}",
            precondition=FileContains(cfg.proxy.site_path, marker),
            apply=_route_console,
            description=f"Expose {console.package} at {cfg.proxy.location}/ and reload {cfg.proxy.service}",
        )
    )

    return steps


def provision(
    cfg: ProvisionConfig,
    stack: HostStack,
    steps: Optional[List[Step]] = None,
) -> RunOutcome:
    """
    Run the full pipeline and fill in the host facts for the summary.
    """
    summary = RunSummary(service_path=cfg.proxy.location)
    executor = PipelineExecutor(build_oracle(stack), bus=stack.bus, run_ctx=stack.run_ctx)
    outcome = executor.run(steps if steps is not None else build_pipeline(cfg, stack), summary)

    if outcome.ok:
        try:
            summary.host_address = stack.facts.primary_ip_address()
        except Exception as e:
            log.warning("Could not determine the host address: %s", e)
    return outcome
