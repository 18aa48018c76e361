import pytest

from hostprov.provision.errors import CommandError, IdempotencyQueryError, LockTimeout
from hostprov.provision.lock import LockArbiter, LockSpec
from hostprov.system.apt import AptPackageManager

from fakes import FakeRunner


class CountingInspector:
    def __init__(self, held=False):
        self.held = held
        self.calls = 0
    def is_held(self, path):
        self.calls += 1
        return self.held


def _apt(rules=None, default=(0, "", ""), held=False):
    runner = FakeRunner(rules, default=default)
    inspector = CountingInspector(held)
    clock = {"now": 0.0}

    def _sleep(s): clock["now"] += s

    arbiter = LockArbiter(
        inspector,
        LockSpec(poll_interval=1, max_wait=3),
        clock=lambda: clock["now"],
        sleep=_sleep,
    )
    return AptPackageManager(runner, arbiter), runner, inspector


# ----------------- queries -----------------

def test_is_installed_from_dpkg_status():
    apt, runner, inspector = _apt([("${Status}' nginx", (0, "install ok installed", ""))])
    assert apt.is_installed("nginx") is True
    assert inspector.calls == 0
    assert runner.calls[0][1] is False


def test_not_installed_package():
    apt, _, _ = _apt([
        ("${Status}'", (1, "", "dpkg-query: no packages found matching php8.3")),
        ("db:Status-Abbrev", (0, "ii |\nii |php8.1-tokenizer (= 8.1.2)\n", "")),
    ])
    assert apt.is_installed("php8.3") is False


def test_virtual_package_counts_when_provided():
    apt, _, _ = _apt([
        ("${Status}'", (1, "", "no packages found")),
        ("db:Status-Abbrev", (0, "ii |\nii |php8.1-tokenizer (= 8.1.2), php8.1-fileinfo\nrc |php8.2-ctype\n", "")),
    ])
    assert apt.is_installed("php8.1-tokenizer") is True
    assert apt.is_installed("php8.1-fileinfo") is True
    # removed-but-configured packages do not count
    assert apt.is_installed("php8.2-ctype") is False


def test_dpkg_query_failure_raises():
    apt, _, _ = _apt([("${Status}'", (2, "", "dpkg: error: parsing file"))])
    with pytest.raises(IdempotencyQueryError):
        apt.is_installed("nginx")


def test_has_repository():
    apt, runner, _ = _apt(default=(0, "", ""))
    assert apt.has_repository("ondrej/php") is True
    cmd = runner.calls[0][0]
    assert cmd.startswith("grep -RqsE ")
    assert "ondrej/php" in cmd and "/etc/apt/sources.list.d" in cmd

    missing, _, _ = _apt(default=(1, "", ""))
    assert missing.has_repository("ondrej/php") is False

    broken, _, _ = _apt(default=(2, "", "grep: permission denied"))
    with pytest.raises(IdempotencyQueryError):
        broken.has_repository("ondrej/php")


def test_index_age():
    apt, _, _ = _apt(default=(0, "42\n", ""))
    assert apt.index_age() == 42.0
    never, _, _ = _apt(default=(1, "", ""))
    assert never.index_age() is None


def test_pending_upgrades_counts_inst_lines():
    sim = "Reading package lists...\nInst libc6 [2.35-0ubuntu3.6]\nInst curl [7.81]\nConf libc6\n"
    apt, runner, inspector = _apt(default=(0, sim, ""))
    assert apt.pending_upgrades() == 2
    assert "-s" in runner.calls[0][0].split()
    assert inspector.calls == 0


# ----------------- mutations -----------------

def test_install_waits_for_lock_then_runs_noninteractive():
    apt, runner, inspector = _apt()
    apt.install("php8.3", "php8.3-cli")

    assert inspector.calls == 1
    cmd, sudo, _ = runner.calls[-1]
    assert sudo is True
    assert cmd.startswith("DEBIAN_FRONTEND=noninteractive apt-get -y")
    assert "--force-confold" in cmd
    assert cmd.endswith("install php8.3 php8.3-cli")


def test_every_mutation_goes_through_the_arbiter():
    apt, runner, inspector = _apt()
    apt.refresh_index()
    apt.upgrade()
    apt.remove_purge("mysql-server", "mysql-common")
    apt.autoremove()
    apt.add_repository("ppa:ondrej/php")

    assert inspector.calls == 5
    cmds = runner.commands()
    assert cmds[0].endswith(" update")
    assert cmds[1].endswith(" upgrade")
    assert cmds[2].endswith("remove --purge mysql-server mysql-common")
    assert cmds[3].endswith(" autoremove")
    assert cmds[4] == "add-apt-repository -y ppa:ondrej/php"


def test_held_lock_times_out_without_running_apt():
    apt, runner, _ = _apt(held=True)
    with pytest.raises(LockTimeout):
        apt.install("nginx")
    assert runner.calls == []


def test_failed_install_raises_command_error():
    apt, _, _ = _apt(default=(100, "", "E: Unable to locate package php8.4-foo"))
    with pytest.raises(CommandError) as ei:
        apt.install("php8.4-foo")
    assert ei.value.rc == 100
    assert "Unable to locate package" in str(ei.value)


def test_preseed_goes_over_stdin():
    apt, runner, _ = _apt()
    apt.preseed(["phpmyadmin phpmyadmin/dbconfig-install boolean false"])
    cmd, sudo, stdin = runner.calls[0]
    assert cmd == "debconf-set-selections"
    assert stdin == "phpmyadmin phpmyadmin/dbconfig-install boolean false\n"
