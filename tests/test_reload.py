"""KWin bus calls through the bus tool fallback chain."""

import subprocess

from conftest import FakeRunner, finder_for, no_tools
from focusctl.reload import call_kwin, reload_kwin, script_loaded
from focusctl.session import SessionEnvironment

SESSION = SessionEnvironment(
    runtime_dir="/run/user/1000",
    bus_address="unix:path=/run/user/1000/bus",
    session_type="wayland",
    wayland_display="wayland-0",
)


def test_first_working_tool_wins(capsys):
    runner = FakeRunner({"qdbus6": 1})
    tool = reload_kwin(
        SESSION,
        {"PATH": "/usr/bin", "LANG": "C"},
        runner=runner,
        finder=finder_for("qdbus6", "qdbus-qt5", "qdbus"),
    )
    assert tool == "qdbus-qt5"
    assert [cmd for cmd, _ in runner.calls] == [
        ["qdbus6", "org.kde.KWin", "/KWin", "reconfigure"],
        ["qdbus-qt5", "org.kde.KWin", "/KWin", "reconfigure"],
    ]
    assert "via qdbus-qt5" in capsys.readouterr().err


def test_session_env_overlaid():
    runner = FakeRunner()
    reload_kwin(
        SESSION,
        {"PATH": "/usr/bin", "XDG_RUNTIME_DIR": "/run/user/0"},
        runner=runner,
        finder=finder_for("qdbus"),
    )
    env = runner.calls[0][1]["env"]
    assert env["XDG_RUNTIME_DIR"] == "/run/user/1000"
    assert env["DBUS_SESSION_BUS_ADDRESS"] == "unix:path=/run/user/1000/bus"
    assert env["WAYLAND_DISPLAY"] == "wayland-0"
    assert env["PATH"] == "/usr/bin"
    assert "DISPLAY" not in env


def test_all_failing_is_not_an_error(capsys):
    runner = FakeRunner(
        {
            "qdbus6": FileNotFoundError("qdbus6"),
            "qdbus-qt6": subprocess.TimeoutExpired("qdbus-qt6", 10),
            "qdbus-qt5": 2,
            "qdbus": 1,
        }
    )
    assert reload_kwin(SESSION, {}, runner=runner, finder=finder_for("qdbus6", "qdbus-qt6", "qdbus-qt5", "qdbus")) is None
    assert len(runner.calls) == 4
    err = capsys.readouterr().err
    assert err.startswith("focusctl: ")
    assert "qdbus org.kde.KWin /KWin reconfigure" in err


def test_missing_tools_not_run():
    runner = FakeRunner()
    assert call_kwin(["x"], None, {}, runner=runner, finder=no_tools) is None
    assert runner.calls == []


def test_script_loaded():
    runner = FakeRunner(stdout="true\n")
    assert script_loaded(SESSION, {}, runner=runner, finder=finder_for("qdbus6")) is True
    assert runner.calls[0][0] == [
        "qdbus6",
        "org.kde.KWin",
        "/Scripting",
        "org.kde.kwin.Scripting.isScriptLoaded",
        "kwin-focus-helper",
    ]
    runner = FakeRunner(stdout="false\n")
    assert script_loaded(SESSION, {}, runner=runner, finder=finder_for("qdbus6")) is False
    assert script_loaded(SESSION, {}, runner=FakeRunner(), finder=no_tools) is None
