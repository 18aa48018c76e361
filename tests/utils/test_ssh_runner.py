import re
import types

import paramiko
import pytest

from hostprov.system.files import RunnerFiles
from hostprov.system.mysql import MysqlServer
from hostprov.utils import ssh as ssh_mod
from hostprov.utils.retry import RetryError, retry
from hostprov.utils.ssh import SSHTarget, open_ssh
from hostprov.utils.ssh_runner import SSHRunner

# ----------------- Fakes for Paramiko -----------------

class _FakeChannel:
    def __init__(self, rc=0): self._rc = rc; self.write_closed = False
    def recv_exit_status(self): return self._rc
    def shutdown_write(self): self.write_closed = True

class _Buf:
    def __init__(self, s=""): self._s = s
    def read(self): return self._s.encode()

class _Stdin:
    def __init__(self, log): self.log = log; self.channel = _FakeChannel()
    def write(self, data): self.log.append(("stdin", data))
    def flush(self): pass

class FakeSSHClient:
    def __init__(self, log, responses=None):
        self.log = log
        self._responses = responses or {}
    def exec_command(self, cmd, timeout=None):
        self.log.append(("exec", cmd))
        out, err, rc = self._responses.get(cmd, ("", "", 0))
        stdout = _Buf(out)
        stdout.channel = _FakeChannel(rc)
        return _Stdin(self.log), stdout, _Buf(err)
    def close(self):
        self.log.append(("close",))


class FakeSFTP:
    def __init__(self):
        self.files = {}
        self.uploads = []       # (path, content, mode)
        self.closed = False
    def file(self, path, mode):
        return _FakeRemoteFile(self, path)
    def remove(self, path):
        del self.files[path]
    def close(self):
        self.closed = True

class _FakeRemoteFile:
    def __init__(self, sftp, path):
        self.sftp, self.path, self.mode, self._buf = sftp, path, None, []
    def __enter__(self): return self
    def __exit__(self, *exc):
        content = "".join(self._buf)
        self.sftp.files[self.path] = content
        self.sftp.uploads.append((self.path, content, self.mode))
        return False
    def chmod(self, mode): self.mode = mode
    def write(self, data): self._buf.append(data)


class NopasswdSudoClient:
    """
    Models a target where sudo never prompts: ``sudo -S`` reads nothing, so
    the wrapped command sees the whole channel stream unless its stdin is
    redirected.
    """

    def __init__(self):
        self.sftp = FakeSFTP()
        self.commands = []
        self.streams = []
        self.command_stdin = []     # what each wrapped command actually read

    def open_sftp(self): return self.sftp

    def exec_command(self, cmd, timeout=None):
        stream = []
        self.commands.append(cmd)
        self.streams.append(stream)
        stdin = types.SimpleNamespace(
            write=stream.append,
            flush=lambda: None,
            channel=types.SimpleNamespace(shutdown_write=lambda: None),
        )
        stdout = _Buf("")
        stdout.channel = types.SimpleNamespace(recv_exit_status=lambda: self._finish(cmd, stream))
        return stdin, stdout, _Buf("")

    def _finish(self, cmd, stream):
        m = re.search(r"< (/tmp/\.hostprov-[0-9a-f]+|/dev/null)'?$", cmd)
        if m is None:
            self.command_stdin.append("".join(stream))
        elif m.group(1) == "/dev/null":
            self.command_stdin.append("")
        else:
            self.command_stdin.append(self.sftp.files[m.group(1)])
        return 0

    def close(self): pass


# ----------------- SSHRunner -----------------

def test_plain_command_wrapped_in_login_shell():
    log = []
    client = FakeSSHClient(log, {"bash -lc 'hostname -I'": ("10.0.0.5 \n", "", 0)})
    rc, out, err = SSHRunner(client).run("hostname -I")

    assert (rc, out) == (0, "10.0.0.5 \n")
    assert log == [("exec", "bash -lc 'hostname -I'")]


def test_sudo_without_password_is_non_interactive():
    log = []
    SSHRunner(FakeSSHClient(log)).run("systemctl reload nginx", sudo=True)
    assert log[0] == ("exec", "sudo -n bash -lc 'systemctl reload nginx'")


def test_become_password_is_the_only_channel_input():
    client = NopasswdSudoClient()
    SSHRunner(client, become_password="hunter2").run("mysql", sudo=True, stdin_data="SELECT 1;\n")

    assert client.streams == [["hunter2\n"]]
    assert client.commands[0].startswith("sudo -S -p '' bash -lc '{ mysql ; } < /tmp/.hostprov-")
    assert client.command_stdin == ["SELECT 1;\n"]


def test_staged_stdin_is_private_and_removed():
    client = NopasswdSudoClient()
    runner = SSHRunner(client, become_password="hunter2")
    runner.run("mysql", sudo=True, stdin_data="ALTER USER 'root'@'localhost' IDENTIFIED BY 'x';\n")

    (path, content, mode), = client.sftp.uploads
    assert mode == 0o600
    assert "ALTER USER" in content
    assert client.sftp.files == {}

    runner.close()
    assert client.sftp.closed


def test_sudo_command_without_data_reads_dev_null():
    client = NopasswdSudoClient()
    SSHRunner(client, become_password="hunter2").run("systemctl reload nginx", sudo=True)

    assert client.commands[0] == "sudo -S -p '' bash -lc '{ systemctl reload nginx ; } < /dev/null'"
    assert client.command_stdin == [""]
    assert client.sftp.uploads == []


def test_nopasswd_sudo_keeps_password_out_of_written_files():
    client = NopasswdSudoClient()
    files = RunnerFiles(SSHRunner(client, become_password="hunter2"))
    site = "server {\n    server_name _;\n}\n"

    files.write_atomic("/etc/nginx/sites-available/default", site)

    assert client.command_stdin == [site]


def test_nopasswd_sudo_keeps_password_out_of_sql():
    client = NopasswdSudoClient()
    MysqlServer(SSHRunner(client, become_password="hunter2")).set_credential("root", "localhost", "abc123")

    sql, = client.command_stdin
    assert sql.startswith("ALTER USER 'root'@'localhost'")
    assert "hunter2" not in sql


def test_stdin_data_is_not_logged(caplog):
    log = []
    with caplog.at_level("DEBUG", logger="hostprov"):
        SSHRunner(FakeSSHClient(log)).run("mysql", sudo=True, stdin_data="IDENTIFIED BY 'topsecret'")
    assert "topsecret" not in caplog.text


def test_exit_status_and_close():
    log = []
    client = FakeSSHClient(log, {"bash -lc false": ("", "boom\n", 1)})
    runner = SSHRunner(client)
    assert runner.run("false") == (1, "", "boom\n")
    runner.close()
    assert log[-1] == ("close",)


# ----------------- open_ssh / retry -----------------

def test_open_ssh_retries_until_connected(monkeypatch):
    attempts = []

    class FlakyClient:
        def set_missing_host_key_policy(self, policy): pass
        def connect(self, **kw):
            attempts.append(kw)
            if len(attempts) < 3:
                raise OSError("Connection refused")

    monkeypatch.setattr(ssh_mod.paramiko, "SSHClient", FlakyClient)
    monkeypatch.setattr("hostprov.utils.retry.time.sleep", lambda s: None)

    runner = open_ssh(SSHTarget(address="192.0.2.10", password="pw"), retries=5, delay=0)

    assert isinstance(runner, SSHRunner)
    assert len(attempts) == 3
    assert attempts[0]["hostname"] == "192.0.2.10"
    assert attempts[0]["password"] == "pw"


def test_open_ssh_gives_up(monkeypatch):
    class DeadClient:
        def set_missing_host_key_policy(self, policy): pass
        def connect(self, **kw):
            raise paramiko.SSHException("Error reading SSH protocol banner")

    monkeypatch.setattr(ssh_mod.paramiko, "SSHClient", DeadClient)
    monkeypatch.setattr("hostprov.utils.retry.time.sleep", lambda s: None)

    with pytest.raises(RetryError) as ei:
        open_ssh(SSHTarget(address="192.0.2.10"), retries=2, delay=0)
    assert isinstance(ei.value.__cause__, paramiko.SSHException)


def test_retry_backoff(monkeypatch):
    sleeps = []
    monkeypatch.setattr("hostprov.utils.retry.time.sleep", sleeps.append)
    calls = types.SimpleNamespace(n=0)

    @retry(retries=4, delay=1, backoff=2, retry_on=(ValueError,))
    def flaky():
        calls.n += 1
        if calls.n < 4:
            raise ValueError("not yet")
        return "ok"

    assert flaky() == "ok"
    assert sleeps == [1, 2, 4]
