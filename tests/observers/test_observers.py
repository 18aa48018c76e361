import logging

from hostprov.observers.console import ConsoleObserver
from hostprov.observers.dispatcher import EventBus
from hostprov.observers.events import (
    CredentialAttempt,
    LockWaiting,
    StepFailed,
    StepSkipped,
    StepWarning,
    new_ctx,
)
from hostprov.observers.logger import LoggerObserver

CTX = new_ctx(env="local", target=None)


def test_ctx_carries_run_fields():
    assert set(CTX) == {"ts", "run_id", "env", "target"}
    assert CTX["ts"].endswith("Z")


def test_console_lines(capsys):
    ob = ConsoleObserver()
    ob.notify(StepSkipped(name="package:nginx", **CTX))
    ob.notify(LockWaiting(path="/var/lib/dpkg/lock-frontend", waited_s=6.0, **CTX))
    ob.notify(StepFailed(name="service:mysql", error="boom", **CTX))

    out, err = capsys.readouterr()
    assert "  → Skipping package:nginx, already satisfied." in out
    assert "Waiting for /var/lib/dpkg/lock-frontend to be released (6s)" in out
    assert "service:mysql failed: boom" in err


def test_logger_observer_levels(caplog):
    logger = logging.getLogger("hostprov.test-observer")
    ob = LoggerObserver(logger)
    with caplog.at_level(logging.INFO, logger="hostprov.test-observer"):
        ob.notify(CredentialAttempt(user="root", attempt=1, ok=True, **CTX))
        ob.notify(StepWarning(name="package:php8.4-intl", error="not found", **CTX))

    info, warn = caplog.records
    assert info.levelno == logging.INFO
    assert info.getMessage().startswith("CredentialAttempt run_id=")
    assert "attempt=1" in info.getMessage()
    assert "ts=" not in info.getMessage()
    assert warn.levelno == logging.WARNING


def test_bus_survives_broken_observer():
    seen = []

    class Broken:
        def notify(self, ev): raise RuntimeError("observer bug")

    class Good:
        def notify(self, ev): seen.append(ev)

    bus = EventBus([Broken(), Good()])
    bus.emit(StepSkipped(name="x", **CTX))
    assert len(seen) == 1
