"""Shared fixtures for focusctl tests.

FakeSessions stands in for loginctl/logind, FakeRunner for subprocess.run,
so no test reaches real session tooling or the bus.
"""

import subprocess

import pytest

from focusctl.identity import AccountDirectory
from focusctl.misc import ColorFlag, LogFlag, NotifyFlag


@pytest.fixture(autouse=True)
def quiet_flags(monkeypatch):
    "No notifications, syslog or colors from tests, global flags restored afterwards"
    monkeypatch.setattr(NotifyFlag, "notify", False)
    monkeypatch.setattr(LogFlag, "log", False)
    monkeypatch.setattr(ColorFlag, "color", False)


class FakeSessions:
    """Session manager over a dict of session id -> properties.
    Records every query in .calls."""

    def __init__(self, sessions=None):
        self.sessions = sessions or {}
        self.calls = []

    def list_sessions(self):
        self.calls.append(("list",))
        return list(self.sessions)

    def show_session(self, session_id, prop):
        self.calls.append(("show", session_id, prop))
        return self.sessions.get(session_id, {}).get(prop)


class FakeRunner:
    """subprocess.run double, answers by tool name."""

    def __init__(self, returncodes=None, stdout=""):
        self.returncodes = returncodes or {}
        self.stdout = stdout
        self.calls = []

    def __call__(self, cmd, **kwargs):
        self.calls.append((cmd, kwargs))
        rc = self.returncodes.get(cmd[0], 0)
        if isinstance(rc, BaseException):
            raise rc
        return subprocess.CompletedProcess(cmd, rc, stdout=self.stdout, stderr="")


def finder_for(*available):
    def finder(tool, path=None):
        return f"/usr/bin/{tool}" if tool in available else None

    return finder


def no_tools(tool, path=None):
    return None


def graphical(uid, session_type="wayland", **extra):
    props = {"User": str(uid), "Active": "yes", "Class": "user", "Type": session_type}
    props.update(extra)
    return props


@pytest.fixture
def homes(tmp_path):
    base = tmp_path / "home"
    for name in ("alice", "bob"):
        (base / name / ".config").mkdir(parents=True)
    return base


@pytest.fixture
def accounts(tmp_path, homes):
    passwd = tmp_path / "passwd"
    passwd.write_text(
        "\n".join(
            [
                "# comment line",
                "root:x:0:0:root:/root:/bin/bash",
                f"alice:x:1000:1000:Alice:{homes / 'alice'}:/bin/bash",
                "broken:x:notanumber:100::/nowhere:/bin/sh",
                "short:x:5",
                "",
                f"bob:x:1001:1001::{homes / 'bob'}:/bin/sh",
            ]
        )
        + "\n"
    )
    return AccountDirectory(str(passwd))


@pytest.fixture
def runtime_root(tmp_path):
    root = tmp_path / "run" / "user"
    root.mkdir(parents=True)
    return root
