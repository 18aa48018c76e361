# src/hostprov/cli/app.py
from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, Optional, Tuple

import typer
from pydantic import ValidationError

from hostprov.config.loader import load_config
from hostprov.config.models import ProvisionConfig, TargetConfig

from hostprov.provision.plan import HostStack, build_oracle, build_pipeline, build_stack, provision
from hostprov.provision.summary import render, render_credential

from hostprov.system.files import LocalFiles, RunnerFiles
from hostprov.utils.retry import RetryError
from hostprov.utils.runner import LocalRunner
from hostprov.utils.ssh import SSHTarget, open_ssh

from hostprov.logging.log import init_logging
from hostprov.observers.console import ConsoleObserver
from hostprov.observers.dispatcher import EventBus
from hostprov.observers.logger import LoggerObserver
from hostprov.observers.events import new_ctx


# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="Provision this host (or one SSH target) as nginx + MySQL + PHP + phpMyAdmin.")

ConfigOpt = typer.Option(None, "--config", "-c", help="YAML config (default: $HOSTPROV_CONFIG or /etc/hostprov/config.yaml)")
HostOpt = typer.Option(None, "--host", help="Provision this address over SSH instead of the local machine")
UserOpt = typer.Option(None, "--ssh-user", help="SSH username for --host")
KeyOpt = typer.Option(None, "--ssh-key", help="Private key for --host")


# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------

def _load(config: Optional[Path], host: Optional[str], ssh_user: Optional[str], ssh_key: Optional[Path]) -> ProvisionConfig:
    try:
        cfg = load_config(config)
    except (FileNotFoundError, ValueError, ValidationError) as e:
        typer.echo(f"Invalid configuration: {e}", err=True)
        raise typer.Exit(1)

    if host:
        base = cfg.target.model_dump() if cfg.target else {}
        base.update({"address": host})
        if ssh_user:
            base["username"] = ssh_user
        if ssh_key:
            base["pkey_path"] = ssh_key
        cfg = cfg.model_copy(update={"target": TargetConfig(**base), "environment": "ssh"})
    return cfg


def _build_stack(cfg: ProvisionConfig, bus: EventBus, run_ctx: dict) -> Tuple[HostStack, Callable[[], None]]:
    """
    Bind the capabilities to the local machine or the SSH target.
    Returns the stack and a closer for the connection.
    """
    if cfg.target is None:
        runner = LocalRunner()
        # as root we can rename files in place ourselves
        files = LocalFiles() if os.geteuid() == 0 else RunnerFiles(runner)
        return build_stack(cfg, runner, files=files, bus=bus, run_ctx=run_ctx), lambda: None

    t = cfg.target
    ssh = open_ssh(
        SSHTarget(
            address=t.address,
            username=t.username,
            port=t.port,
            password=t.password,
            pkey_path=t.pkey_path,
            become_password=t.become_password,
        )
    )
    return build_stack(cfg, ssh, bus=bus, run_ctx=run_ctx), ssh.close


def _run_ctx(cfg: ProvisionConfig, run_id: str) -> dict:
    ctx = new_ctx(env=cfg.environment, target=cfg.target.address if cfg.target else None)
    ctx["run_id"] = run_id
    return ctx


# ------------------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------------------

@app.command()
def run(
    config: Optional[Path] = ConfigOpt,
    host: Optional[str] = HostOpt,
    ssh_user: Optional[str] = UserOpt,
    ssh_key: Optional[Path] = KeyOpt,
    debug: bool = typer.Option(False, "--debug", help="Verbose console logging"),
):
    """
    Apply every provisioning step. Safe to re-run: finished steps are skipped.
    """
    logger, run_id, log_path = init_logging(verbose=debug)
    cfg = _load(config, host, ssh_user, ssh_key)

    bus = EventBus([ConsoleObserver(), LoggerObserver(logger)])
    try:
        stack, close = _build_stack(cfg, bus, _run_ctx(cfg, run_id))
    except RetryError as e:
        typer.echo(f"Cannot reach {cfg.target.address if cfg.target else 'host'}: {e.__cause__ or e}", err=True)
        raise typer.Exit(1)
    try:
        outcome = provision(cfg, stack)
    finally:
        close()

    logger.info(outcome.report())
    if not outcome.ok:
        if outcome.summary.credential is not None:
            # stdout only, like the summary
            typer.echo(render_credential(outcome.summary))
        typer.echo(f"\n⛔ Provisioning stopped at step '{outcome.failed_step}': {outcome.error}", err=True)
        typer.echo(f"   Full log: {log_path}", err=True)
        raise typer.Exit(outcome.exit_code)

    # stdout only: the summary carries the generated password
    typer.echo(render(outcome.summary, outcome.warnings))


@app.command()
def check(
    config: Optional[Path] = ConfigOpt,
    host: Optional[str] = HostOpt,
    ssh_user: Optional[str] = UserOpt,
    ssh_key: Optional[Path] = KeyOpt,
):
    """
    Report which steps are already satisfied, without changing anything.
    Exits 1 when any step is still pending.
    """
    cfg = _load(config, host, ssh_user, ssh_key)
    stack, close = _build_stack(cfg, EventBus(), new_ctx(env=cfg.environment, target=None))
    try:
        oracle = build_oracle(stack)
        pending = 0
        for step in build_pipeline(cfg, stack):
            if oracle.is_satisfied(step.precondition):
                typer.echo(f"  ✔ {step.name}")
            else:
                pending += 1
                typer.echo(f"  ✗ {step.name}  ({step.precondition.describe()})")
    finally:
        close()

    typer.echo(f"\n{pending} step(s) pending")
    if pending:
        raise typer.Exit(1)


@app.command()
def steps(config: Optional[Path] = ConfigOpt):
    """
    List the pipeline in execution order.
    """
    cfg = _load(config, None, None, None)
    stack = build_stack(cfg, LocalRunner(use_sudo=False))
    for i, step in enumerate(build_pipeline(cfg, stack), 1):
        flag = "" if step.critical else "  [optional]"
        typer.echo(f"{i:3d}. {step.name}{flag}")
        if step.description:
            typer.echo(f"       {step.description}")


if __name__ == "__main__":
    app()
