"""
Session lookup and session environment for a target account.

logind is reached through a session manager object with two methods:
  list_sessions() -> list of session IDs
  show_session(session_id, prop) -> string value or None
Failures of the underlying tool read as "no information".
"""

import os
import shlex
import subprocess
from dataclasses import dataclass, fields
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from focusctl.misc import NotFoundError, print_debug, print_warning
from focusctl.params import (
    DEFAULT_SESSION_BACKEND,
    DEFAULT_WAYLAND_DISPLAY,
    DEFAULT_X11_DISPLAY,
    RUNTIME_ROOT,
    SESSION_BACKENDS,
    SESSION_CLASS,
    SESSION_TYPES,
    TOOL_TIMEOUT,
)


class LoginctlSessions:
    "Session manager backed by loginctl"

    def __init__(self, timeout: float = TOOL_TIMEOUT, runner: Callable = subprocess.run):
        self.timeout = timeout
        self._run = runner

    def _loginctl(self, *args) -> Optional[str]:
        "Runs loginctl with args, returns stdout or None on any failure"
        cmd = ["loginctl", *args]
        try:
            sprc = self._run(
                cmd,
                text=True,
                capture_output=True,
                check=False,
                timeout=self.timeout,
            )
        except (OSError, subprocess.SubprocessError) as caught_exception:
            print_debug(f'"{shlex.join(cmd)}" failed', caught_exception)
            return None
        print_debug(sprc)
        if sprc.returncode != 0:
            return None
        return sprc.stdout

    def list_sessions(self) -> List[str]:
        "Returns session IDs in loginctl order"
        stdout = self._loginctl("list-sessions", "--no-legend", "--no-pager")
        if stdout is None:
            return []
        session_ids = []
        for line in stdout.splitlines():
            # id is the first column, can be space-padded
            parts = line.split()
            if parts:
                session_ids.append(parts[0])
        return session_ids

    def show_session(self, session_id: str, prop: str) -> Optional[str]:
        "Returns single session property value"
        stdout = self._loginctl(
            "show-session", session_id, "--property", prop, "--value"
        )
        if stdout is None:
            return None
        return stdout.strip()


class Login1Sessions:
    "Session manager backed by org.freedesktop.login1 on the system bus"

    def __init__(self, bus=None):
        if bus is None:
            from focusctl.dbus import DbusInteractions

            bus = DbusInteractions("system")
        self.bus = bus
        self._paths: Dict[str, str] = {}

    def list_sessions(self) -> List[str]:
        "Returns session IDs in logind order"
        try:
            sessions = self.bus.list_login_sessions()
        except Exception as caught_exception:
            print_debug("ListSessions failed", caught_exception)
            return []
        session_ids = []
        for session_id, _, _, _, session_path in sessions:
            self._paths[str(session_id)] = str(session_path)
            session_ids.append(str(session_id))
        return session_ids

    def _session_path(self, session_id: str) -> str:
        if session_id not in self._paths:
            self._paths[session_id] = str(self.bus.get_session_path(session_id))
        return self._paths[session_id]

    def show_session(self, session_id: str, prop: str) -> Optional[str]:
        "Returns single session property value, in loginctl textual form"
        try:
            session_path = self._session_path(session_id)
            if prop == "XDG_RUNTIME_DIR":
                # runtime dir belongs to the user object
                uid = self.bus.get_session_property(session_path, "User")[0]
                return str(self.bus.get_user_property(int(uid), "RuntimePath"))
            if prop == "DBUS_SESSION_BUS_ADDRESS":
                # not tracked by logind
                return None
            value = self.bus.get_session_property(session_path, prop)
        except Exception as caught_exception:
            print_debug(f"logind {session_id} {prop} failed", caught_exception)
            return None
        if prop == "User":
            # (uid, object path) struct
            return str(int(value[0]))
        if prop == "Active":
            return "yes" if value else "no"
        return str(value)


def get_session_manager(backend: str = DEFAULT_SESSION_BACKEND, timeout: float = TOOL_TIMEOUT):
    "Returns session manager object for backend name"
    if backend not in SESSION_BACKENDS:
        raise ValueError(
            f'Session backend should be one of {", ".join(SESSION_BACKENDS)}, got "{backend}"'
        )
    if backend == "dbus":
        return Login1Sessions()
    return LoginctlSessions(timeout=timeout)


def _show_uid(sessions, session_id: str) -> Optional[int]:
    value = (sessions.show_session(session_id, "User") or "").strip()
    if not value.isdecimal():
        return None
    return int(value)


def _is_graphical(sessions, session_id: str) -> bool:
    "Active=yes, Class=user, Type=x11|wayland"
    if (sessions.show_session(session_id, "Active") or "").strip() != "yes":
        return False
    if (sessions.show_session(session_id, "Class") or "").strip() != SESSION_CLASS:
        return False
    return (sessions.show_session(session_id, "Type") or "").strip() in SESSION_TYPES


def find_graphical_session(sessions, uid: Optional[int] = None) -> Optional[Tuple[str, int]]:
    """
    Returns (session_id, uid) of the first active graphical user session,
    limited to given uid if any. First match in listing order wins.
    """
    for session_id in sessions.list_sessions():
        if uid is not None:
            session_uid = _show_uid(sessions, session_id)
            if session_uid != uid:
                continue
            if _is_graphical(sessions, session_id):
                return session_id, uid
            continue

        if not _is_graphical(sessions, session_id):
            continue
        session_uid = _show_uid(sessions, session_id)
        if session_uid is not None:
            return session_id, session_uid
    return None


@dataclass
class SessionEnvironment:
    "Variables needed to reach a running desktop session"

    runtime_dir: Optional[str] = None
    bus_address: Optional[str] = None
    display: Optional[str] = None
    wayland_display: Optional[str] = None
    xauthority: Optional[str] = None
    session_type: Optional[str] = None

    # field -> environment variable
    VARNAMES = {
        "runtime_dir": "XDG_RUNTIME_DIR",
        "bus_address": "DBUS_SESSION_BUS_ADDRESS",
        "session_type": "XDG_SESSION_TYPE",
        "display": "DISPLAY",
        "wayland_display": "WAYLAND_DISPLAY",
        "xauthority": "XAUTHORITY",
    }

    @classmethod
    def from_environ(cls, environ: Mapping[str, str]) -> Optional["SessionEnvironment"]:
        """
        Takes session variables from given environment.
        Returns None unless XDG_RUNTIME_DIR or DBUS_SESSION_BUS_ADDRESS is non-empty.
        """
        if not (environ.get("XDG_RUNTIME_DIR") or environ.get("DBUS_SESSION_BUS_ADDRESS")):
            return None
        return cls(
            **{
                field_name: environ.get(varname) or None
                for field_name, varname in cls.VARNAMES.items()
            }
        )

    def as_env(self) -> Dict[str, str]:
        "Returns dict of set variables"
        return {
            varname: getattr(self, field_name)
            for field_name, varname in self.VARNAMES.items()
            if getattr(self, field_name)
        }

    def __str__(self):
        return (
            f"{self.__class__.__name__}("
            + ", ".join(
                f"{field.name}={getattr(self, field.name)}"
                for field in fields(self)
                if getattr(self, field.name) is not None
            )
            + ")"
        )


def find_wayland_socket(runtime_dir: str) -> str:
    "Returns first wayland-* socket name in runtime_dir or the default"
    try:
        names = sorted(os.listdir(runtime_dir))
    except OSError as caught_exception:
        print_debug(caught_exception)
        names = []
    for name in names:
        if name.startswith("wayland-") and not name.endswith(".lock"):
            return name
    return DEFAULT_WAYLAND_DISPLAY


def session_env_for_uid(account, sessions, runtime_root: str = RUNTIME_ROOT) -> SessionEnvironment:
    """
    Reconstructs session environment of account's active graphical session.
    Raises NotFoundError if account has no runtime dir or no such session.
    """
    user_runtime_dir = os.path.join(runtime_root, str(account.uid))
    if not os.path.isdir(user_runtime_dir):
        raise NotFoundError(f'"{user_runtime_dir}" does not exist (no user session?)')

    match = find_graphical_session(sessions, account.uid)
    if match is None:
        raise NotFoundError(f"No active graphical session found for uid {account.uid}")
    session_id = match[0]
    print_debug("session for uid", account.uid, session_id)

    session = SessionEnvironment(
        runtime_dir=sessions.show_session(session_id, "XDG_RUNTIME_DIR") or None,
        bus_address=sessions.show_session(session_id, "DBUS_SESSION_BUS_ADDRESS") or None,
        session_type=(sessions.show_session(session_id, "Type") or "").strip() or None,
    )

    # fill what logind did not tell from the verified runtime dir
    if not session.runtime_dir:
        session.runtime_dir = user_runtime_dir
    if not session.bus_address:
        bus_socket = os.path.join(session.runtime_dir, "bus")
        if os.path.exists(bus_socket):
            session.bus_address = f"unix:path={bus_socket}"

    if session.session_type == "wayland":
        session.wayland_display = find_wayland_socket(session.runtime_dir)
    elif session.session_type == "x11":
        session.display = DEFAULT_X11_DISPLAY
        session.xauthority = os.path.join(account.home, ".Xauthority")

    return session


def resolve_session_env(
    account,
    environ: Mapping[str, str],
    sessions,
    runtime_root: str = RUNTIME_ROOT,
) -> SessionEnvironment:
    """
    Returns session environment for account.
    Session variables of the running process are trusted as is,
    otherwise they are reconstructed via logind.
    """
    inherited = SessionEnvironment.from_environ(environ)
    if inherited is not None:
        print_debug("using session env of current process", inherited)
        return inherited
    return session_env_for_uid(account, sessions, runtime_root)


def try_resolve_session_env(account, environ, sessions, runtime_root: str = RUNTIME_ROOT):
    "Same as resolve_session_env, but warns and returns None on failure"
    try:
        return resolve_session_env(account, environ, sessions, runtime_root)
    except NotFoundError as caught_exception:
        print_warning(
            f"Could not resolve session env for uid {account.uid} ({account.username}):",
            caught_exception,
        )
        return None
