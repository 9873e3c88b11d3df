"""Session lookup backends and session environment resolution."""

import subprocess

import pytest

from conftest import FakeRunner, FakeSessions, graphical
from focusctl.identity import Account
from focusctl.misc import NotFoundError
from focusctl.session import (
    Login1Sessions,
    LoginctlSessions,
    SessionEnvironment,
    find_graphical_session,
    find_wayland_socket,
    get_session_manager,
    resolve_session_env,
)


@pytest.fixture
def alice(homes):
    return Account(1000, 1000, "alice", str(homes / "alice"))


class TestSessionEnvironment:
    def test_from_environ_requires_runtime_or_bus(self):
        assert SessionEnvironment.from_environ({"DISPLAY": ":0"}) is None
        assert SessionEnvironment.from_environ({"XDG_RUNTIME_DIR": ""}) is None

    def test_from_environ_takes_all_vars(self):
        session = SessionEnvironment.from_environ(
            {
                "DBUS_SESSION_BUS_ADDRESS": "unix:path=/run/user/5/bus",
                "WAYLAND_DISPLAY": "wayland-1",
                "XDG_SESSION_TYPE": "wayland",
                "DISPLAY": "",
            }
        )
        assert session == SessionEnvironment(
            bus_address="unix:path=/run/user/5/bus",
            wayland_display="wayland-1",
            session_type="wayland",
        )

    def test_as_env_omits_absent(self):
        session = SessionEnvironment(runtime_dir="/run/user/1000", display=":0")
        assert session.as_env() == {"XDG_RUNTIME_DIR": "/run/user/1000", "DISPLAY": ":0"}


class TestResolveSessionEnv:
    def test_inherited_env_skips_logind(self, alice, runtime_root):
        sessions = FakeSessions({"1": graphical(1000)})
        session = resolve_session_env(
            alice, {"XDG_RUNTIME_DIR": "/run/user/77"}, sessions, str(runtime_root)
        )
        assert session.runtime_dir == "/run/user/77"
        assert sessions.calls == []

    def test_missing_runtime_dir_fails_fast(self, alice, runtime_root):
        sessions = FakeSessions({"1": graphical(1000)})
        with pytest.raises(NotFoundError):
            resolve_session_env(alice, {}, sessions, str(runtime_root))
        assert sessions.calls == []

    def test_no_graphical_session(self, alice, runtime_root):
        (runtime_root / "1000").mkdir()
        sessions = FakeSessions({"1": graphical(1000, session_type="tty")})
        with pytest.raises(NotFoundError, match="uid 1000"):
            resolve_session_env(alice, {}, sessions, str(runtime_root))

    def test_wayland_session(self, alice, runtime_root):
        user_dir = runtime_root / "1000"
        user_dir.mkdir()
        for name in ("bus", "wayland-1.lock", "wayland-1", "wayland-2"):
            (user_dir / name).touch()
        sessions = FakeSessions({"7": graphical(1000)})

        session = resolve_session_env(alice, {}, sessions, str(runtime_root))

        assert session == SessionEnvironment(
            runtime_dir=str(user_dir),
            bus_address=f"unix:path={user_dir}/bus",
            wayland_display="wayland-1",
            session_type="wayland",
        )

    def test_advertised_values_win(self, alice, runtime_root):
        (runtime_root / "1000").mkdir()
        sessions = FakeSessions(
            {
                "7": graphical(
                    1000,
                    session_type="x11",
                    XDG_RUNTIME_DIR="/elsewhere",
                    DBUS_SESSION_BUS_ADDRESS="unix:abstract=x",
                )
            }
        )
        session = resolve_session_env(alice, {}, sessions, str(runtime_root))
        assert session.runtime_dir == "/elsewhere"
        assert session.bus_address == "unix:abstract=x"
        assert session.display == ":0"
        assert session.xauthority == f"{alice.home}/.Xauthority"
        assert session.wayland_display is None

    def test_other_users_sessions_skipped(self, alice, runtime_root):
        (runtime_root / "1000").mkdir()
        sessions = FakeSessions({"1": graphical(1001), "2": graphical(1000, session_type="x11")})
        session = resolve_session_env(alice, {}, sessions, str(runtime_root))
        assert session.session_type == "x11"
        assert session.bus_address is None


def test_wayland_socket_default(tmp_path):
    assert find_wayland_socket(str(tmp_path)) == "wayland-0"
    assert find_wayland_socket(str(tmp_path / "missing")) == "wayland-0"


def test_find_graphical_session_any_user():
    sessions = FakeSessions({"1": graphical("x"), "2": graphical(1001)})
    assert find_graphical_session(sessions) == ("2", 1001)


class TestLoginctlSessions:
    def test_list_sessions(self):
        runner = FakeRunner(
            stdout="      2 1000 alice seat0 tty2\n     c1  120 gdm   seat0 tty1\n\n"
        )
        assert LoginctlSessions(runner=runner).list_sessions() == ["2", "c1"]
        cmd, kwargs = runner.calls[0]
        assert cmd == ["loginctl", "list-sessions", "--no-legend", "--no-pager"]
        assert kwargs["timeout"] == 10.0

    def test_show_session(self):
        runner = FakeRunner(stdout="wayland\n")
        assert LoginctlSessions(timeout=3, runner=runner).show_session("2", "Type") == "wayland"
        cmd, kwargs = runner.calls[0]
        assert cmd == ["loginctl", "show-session", "2", "--property", "Type", "--value"]
        assert kwargs["timeout"] == 3

    def test_failure_is_no_information(self):
        assert LoginctlSessions(runner=FakeRunner({"loginctl": 1})).list_sessions() == []
        missing = FakeRunner({"loginctl": FileNotFoundError("loginctl")})
        assert LoginctlSessions(runner=missing).show_session("2", "Type") is None
        hung = FakeRunner({"loginctl": subprocess.TimeoutExpired("loginctl", 1)})
        assert LoginctlSessions(runner=hung).show_session("2", "Type") is None


class FakeLoginBus:
    def __init__(self):
        self.props = {
            "/s/3": {"Active": True, "Class": "user", "Type": "wayland", "User": (1000, "/u/1000")},
        }

    def list_login_sessions(self):
        return [("3", 1000, "alice", "seat0", "/s/3")]

    def get_session_path(self, session_id):
        raise RuntimeError("no such session")

    def get_session_property(self, session_path, prop):
        return self.props[session_path][prop]

    def get_user_property(self, uid, prop):
        assert (uid, prop) == (1000, "RuntimePath")
        return "/run/user/1000"


class TestLogin1Sessions:
    def test_loginctl_compatible_values(self):
        sessions = Login1Sessions(bus=FakeLoginBus())
        assert sessions.list_sessions() == ["3"]
        assert sessions.show_session("3", "Active") == "yes"
        assert sessions.show_session("3", "User") == "1000"
        assert sessions.show_session("3", "Type") == "wayland"
        assert sessions.show_session("3", "XDG_RUNTIME_DIR") == "/run/user/1000"
        assert sessions.show_session("3", "DBUS_SESSION_BUS_ADDRESS") is None

    def test_errors_are_no_information(self):
        sessions = Login1Sessions(bus=FakeLoginBus())
        assert sessions.show_session("9", "Type") is None
        sessions.list_sessions()
        assert sessions.show_session("3", "Seat") is None

    def test_used_for_auto_detection(self):
        assert find_graphical_session(Login1Sessions(bus=FakeLoginBus())) == ("3", 1000)


def test_unknown_backend():
    with pytest.raises(ValueError):
        get_session_manager("systemd")
