"""
In-memory stand-ins for the host capabilities, shared by the test modules.
"""
from typing import Dict, List, Optional, Set, Tuple

from hostprov.observers.dispatcher import EventBus
from hostprov.provision.errors import CommandError, CredentialMutationError
from hostprov.provision.plan import HostStack


class Capture:
    def __init__(self): self.events = []
    def notify(self, ev): self.events.append(ev)

    def kinds(self):
        return [type(e).__name__ for e in self.events]


class FakeHost:
    """
    Minimal model of a Debian box: installed packages, repositories, active
    units, files and the MySQL root plugin. Every mutation is logged in
    ``calls`` so tests can assert "nothing changed".
    """

    def __init__(self):
        self.installed: Set[str] = set()
        self.repos: Set[str] = set()
        self.active: Set[str] = set()
        self.files: Dict[str, str] = {}
        self.plugin: Optional[str] = None
        self.index_age: Optional[float] = None
        self.pending: int = 3

        self.uninstallable: Set[str] = set()
        self.broken_units: Set[str] = set()
        self.credential_failures: List[bool] = []
        self.nginx_valid = True

        self.calls: List[Tuple] = []
        self.secrets_issued: List[str] = []

    def mutations(self) -> List[Tuple]:
        return list(self.calls)


class FakePackages:
    def __init__(self, host: FakeHost): self.h = host

    def is_installed(self, name): return name in self.h.installed
    def has_repository(self, pattern): return any(pattern in r for r in self.h.repos)
    def index_age(self): return self.h.index_age
    def pending_upgrades(self): return self.h.pending

    def install(self, *names):
        self.h.calls.append(("install",) + names)
        for n in names:
            if n in self.h.uninstallable:
                raise CommandError(f"apt-get install {n}", 100, f"E: Unable to locate package {n}")
        self.h.installed.update(names)
        if "mysql-server" in names and self.h.plugin is None:
            self.h.plugin = "auth_socket"
        if "nginx" in names:
            self.h.files.setdefault(
                "/etc/nginx/sites-available/default",
                "server {\n    listen 80 default_server;\n    server_name _;\n    root /var/www/html;\n}\n",
            )

    def remove_purge(self, *names):
        self.h.calls.append(("remove_purge",) + names)
        self.h.installed.difference_update(names)
        if "mysql-server" in names:
            self.h.plugin = None
            self.h.active.discard("mysql")

    def autoremove(self):
        self.h.calls.append(("autoremove",))

    def add_repository(self, spec):
        self.h.calls.append(("add_repository", spec))
        self.h.repos.add(spec)

    def refresh_index(self):
        self.h.calls.append(("refresh_index",))
        self.h.index_age = 0.0

    def upgrade(self):
        self.h.calls.append(("upgrade",))
        self.h.pending = 0

    def preseed(self, selections):
        self.h.calls.append(("preseed", tuple(selections)))


class FakeServices:
    def __init__(self, host: FakeHost): self.h = host

    def is_active(self, unit): return unit in self.h.active

    def enable_and_start(self, unit):
        self.h.calls.append(("enable_and_start", unit))
        if unit in self.h.broken_units:
            raise CommandError(f"systemctl enable --now {unit}", 1, f"Unit {unit} not found.")
        self.h.active.add(unit)

    def reload(self, unit): self.h.calls.append(("reload", unit))
    def restart(self, unit): self.h.calls.append(("restart", unit))


class FakeDatabase:
    def __init__(self, host: FakeHost): self.h = host

    def set_credential(self, user, scope, secret):
        self.h.calls.append(("set_credential", user, scope))
        fail = self.h.credential_failures.pop(0) if self.h.credential_failures else False
        if fail:
            raise CredentialMutationError("ALTER USER", 1, "ERROR 1045 (28000): Access denied")
        self.h.plugin = "mysql_native_password"

    def auth_plugin(self, user, scope): return self.h.plugin


class FakeSecrets:
    def __init__(self, host: FakeHost): self.h = host

    def random_hex(self, byte_length):
        secret = f"{len(self.h.secrets_issued) + 1:0{byte_length * 2}x}"
        self.h.secrets_issued.append(secret)
        return secret


class FakeFacts:
    def primary_ip_address(self): return "192.0.2.10"


class FakeFiles:
    def __init__(self, host: FakeHost): self.h = host

    def read_text(self, path): return self.h.files.get(path)

    def write_atomic(self, path, content):
        self.h.calls.append(("write", path))
        self.h.files[path] = content


class FakeValidator:
    def __init__(self, host: FakeHost): self.h = host

    def validate(self, path):
        self.h.calls.append(("validate", path))
        if not self.h.nginx_valid:
            raise CommandError("nginx -t", 1, "nginx: [emerg] unexpected \"}\" in /etc/nginx/sites-enabled/default:30")


def make_stack(host: FakeHost, observers=None) -> HostStack:
    return HostStack(
        packages=FakePackages(host),
        services=FakeServices(host),
        database=FakeDatabase(host),
        secrets=FakeSecrets(host),
        facts=FakeFacts(),
        files=FakeFiles(host),
        validator=FakeValidator(host),
        bus=EventBus(observers or []),
    )


class FakeRunner:
    """
    CommandRunner that answers from a list of (substring, (rc, out, err))
    rules; the first rule whose substring occurs in the command wins.
    """

    def __init__(self, rules=None, default=(0, "", "")):
        self.rules = list(rules or [])
        self.default = default
        self.calls: List[Tuple[str, bool, Optional[str]]] = []

    def run(self, cmd, *, sudo=False, stdin_data=None):
        self.calls.append((cmd, sudo, stdin_data))
        for needle, result in self.rules:
            if needle in cmd:
                return result
        return self.default

    def commands(self) -> List[str]:
        return [c for c, _, _ in self.calls]
