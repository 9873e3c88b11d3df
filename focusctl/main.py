"""
# focusctl
Manages forced focus classes of kwin-focus-helper KWin script

Edits per-user kwinrc in place, toggles the script plugin flag,
asks running KWin to reconfigure. Can act on behalf of another user
when run as root, i.e. from a wrapper that launches GUI apps.
"""

import os
import sys
import shlex
import argparse
import subprocess
from typing import List, Mapping, Optional

from focusctl.params import *
from focusctl.misc import *
from focusctl.classes import (
    auto_class_from_cmd,
    contains,
    dedupe,
    normalize,
    parse_classes,
    single_class,
    without,
)
from focusctl import kwinrc
from focusctl.identity import (
    AccountDirectory,
    current_euid,
    parse_uid,
    resolve_target_user,
)
from focusctl.reload import reload_kwin, script_loaded
from focusctl.session import (
    SessionEnvironment,
    get_session_manager,
    resolve_session_env,
    try_resolve_session_env,
)


class HelpFormatterNewlines(argparse.HelpFormatter):
    "Treats double newlines as line breaks, preserves indents after them"

    def _fill_text(self, text, width, indent):
        "For parser descriptions and epilogs"
        lines = []
        for line in text.split("\n\n"):
            p_indent = line[0 : len(line) - len(line.lstrip())]
            lines.append(
                argparse.HelpFormatter._fill_text(self, line, width, indent + p_indent)
            )
        return "\n".join(lines)

    def _split_lines(self, text, width):
        "For argument descriptions"
        lines = []
        for line in text.split("\n\n"):
            p_indent = line[0 : len(line) - len(line.lstrip())]
            p_indent_width = len(p_indent)
            lines.extend(
                p_indent + l
                for l in argparse.HelpFormatter._split_lines(
                    self, line, width - p_indent_width
                )
            )
        return lines


def uid_arg(value: str) -> int:
    "argparse type for uid"
    try:
        return parse_uid(value)
    except InvalidInputError as caught_exception:
        raise argparse.ArgumentTypeError(str(caught_exception))


def timeout_arg(value: str) -> float:
    "argparse type for positive timeout"
    try:
        timeout = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f'Expected number of seconds, got "{value}"')
    if timeout <= 0:
        raise argparse.ArgumentTypeError(f"Timeout should be positive, got {value}")
    return timeout


def env_defaults(environ: Mapping[str, str]) -> dict:
    "Reads FOCUSCTL_* defaults from environment, warns about invalid values"
    defaults = {"timeout": TOOL_TIMEOUT, "backend": DEFAULT_SESSION_BACKEND}

    raw_timeout = environ.get("FOCUSCTL_TOOL_TIMEOUT", "")
    if raw_timeout:
        try:
            defaults["timeout"] = timeout_arg(raw_timeout)
        except argparse.ArgumentTypeError as caught_exception:
            print_warning(
                f"FOCUSCTL_TOOL_TIMEOUT: {caught_exception}, using {TOOL_TIMEOUT}"
            )

    raw_backend = environ.get("FOCUSCTL_SESSION_BACKEND", "")
    if raw_backend:
        if raw_backend in SESSION_BACKENDS:
            defaults["backend"] = raw_backend
        else:
            print_warning(
                f'FOCUSCTL_SESSION_BACKEND: expected one of {", ".join(SESSION_BACKENDS)}, '
                f'got "{raw_backend}", using {DEFAULT_SESSION_BACKEND}'
            )
    return defaults


class Args:
    """
    Parses args. Stores attributes 'parsers' and 'parsed'.
    Everything after "--" is stored as 'parsed.cmdline' for wrap.
    """

    def __init__(self, args: List[str], defaults: Optional[dict] = None):
        "Parses given args list"

        print_debug("parsing args", args)

        if defaults is None:
            defaults = {"timeout": TOOL_TIMEOUT, "backend": DEFAULT_SESSION_BACKEND}

        cmdline = []
        if "--" in args:
            split = args.index("--")
            args, cmdline = args[:split], args[split + 1 :]

        # keep parsers in a dict
        parsers = {}

        parsers["main"] = argparse.ArgumentParser(
            prog=BIN_NAME,
            formatter_class=HelpFormatterNewlines,
            description=dedent(
                f"""
                Manages forced focus classes of {SCRIPT_ID} KWin script.\n
                \n
                Matching is case-insensitive and ignores trailing ".desktop".
                Stored names preserve your spelling.
                """
            ),
            epilog=dedent(
                f"""
                See "{BIN_NAME} {{subcommand}} -h" for further help on each subcommand.\n
                \n
                Environment: DEBUG, NO_COLOR, FOCUSCTL_TOOL_TIMEOUT, FOCUSCTL_SESSION_BACKEND.
                """
            ),
        )
        target_group = parsers["main"].add_argument_group("Target selection")
        target_group.add_argument(
            "--uid",
            type=uid_arg,
            dest="uid",
            help="Target this uid's KWin config and session.",
        )
        target_group.add_argument(
            "--user",
            dest="username",
            metavar="NAME",
            help="Target this user's KWin config and session.",
        )
        target_group.add_argument(
            "--session-auto",
            action="store_true",
            help="Target the user of the active graphical session (root only).",
        )
        parsers["main"].add_argument(
            "--backend",
            choices=SESSION_BACKENDS,
            default=defaults["backend"],
            help=f"Source of logind session info (default: {defaults['backend']}).",
        )
        parsers["main"].add_argument(
            "--timeout",
            type=timeout_arg,
            default=defaults["timeout"],
            metavar="SECONDS",
            help=f"Timeout for external tools (default: {defaults['timeout']:g}).",
        )
        parsers["main"].add_argument(
            "--log",
            action="store_true",
            help="Also log messages to syslog.",
        )
        parsers["main"].add_argument(
            "--no-notify",
            action="store_true",
            help="Do not send desktop notifications about wrap failures.",
        )

        parsers["main_subparsers"] = parsers["main"].add_subparsers(
            title="Action subcommands",
            description=None,
            dest="mode",
            metavar="{subcommand}",
            required=True,
        )

        parsers["list_classes"] = parsers["main_subparsers"].add_parser(
            "list-classes",
            formatter_class=HelpFormatterNewlines,
            help="Lists forced focus classes.",
        )
        parsers["list_classes"].add_argument(
            "-k",
            "--keys",
            action="store_true",
            help="Also show normalized match keys.",
        )
        parsers["main_subparsers"].add_parser(
            "list-keys",
            formatter_class=HelpFormatterNewlines,
            help="Lists forced focus classes with their match keys.",
        )
        for name, verb in (("add-class", "Adds"), ("remove-class", "Removes")):
            parsers[name.replace("-", "_")] = parsers["main_subparsers"].add_parser(
                name,
                formatter_class=HelpFormatterNewlines,
                help=f"{verb} a window class.",
            )
            parsers[name.replace("-", "_")].add_argument("class_name", metavar="CLASS", help="Window class.")
        parsers["set_classes"] = parsers["main_subparsers"].add_parser(
            "set-classes",
            formatter_class=HelpFormatterNewlines,
            help="Replaces forced focus classes.",
            description='Classes can be separated by ";", "," or whitespace, duplicates are dropped.',
        )
        parsers["set_classes"].add_argument("spec", metavar="SPEC", help='i.e. "a;b;c"')
        parsers["main_subparsers"].add_parser(
            "clear", help="Removes all forced focus classes."
        )
        parsers["main_subparsers"].add_parser(
            "enable", help=f"Enables {SCRIPT_ID} plugin."
        )
        parsers["main_subparsers"].add_parser(
            "disable", help=f"Disables {SCRIPT_ID} plugin."
        )
        parsers["main_subparsers"].add_parser(
            "enabled", help="Prints plugin flag: true, false or (unset)."
        )
        parsers["main_subparsers"].add_parser(
            "reconfigure", help="Asks KWin to reload its config."
        )
        parsers["script_mode"] = parsers["main_subparsers"].add_parser(
            "mode", help="Shows or sets how matching windows are focused."
        )
        parsers["script_mode"].add_argument(
            "value", nargs="?", choices=SCRIPT_MODES, help="New mode."
        )
        parsers["script_debug"] = parsers["main_subparsers"].add_parser(
            "script-debug", help="Shows or sets debug output of the KWin script."
        )
        parsers["script_debug"].add_argument(
            "value", nargs="?", choices=("true", "false"), help="New value."
        )
        parsers["main_subparsers"].add_parser(
            "status", help="Shows target, config and KWin script state."
        )

        parsers["wrap"] = parsers["main_subparsers"].add_parser(
            "wrap",
            formatter_class=HelpFormatterNewlines,
            help="Ensures a class is forced, then executes a command.",
            usage="%(prog)s [-h] CLASS|--auto [--dry-run] [--no-enable] [--no-reconfigure] -- COMMAND...",
            description=dedent(
                """
                Adds window class to forced focus classes, enables the plugin,
                asks KWin to reconfigure, executes command in the target session.\n
                \n
                When run as root, the command is executed as the target user.
                """
            ),
        )
        parsers["wrap"].add_argument(
            "class_name", metavar="CLASS", nargs="?", help="Window class."
        )
        parsers["wrap"].add_argument(
            "--auto",
            action="store_true",
            help='Derive class from command name, i.e. "chromium" -> "ChromiumApp".',
        )
        parsers["wrap"].add_argument(
            "--dry-run", action="store_true", help="Only print what would be done."
        )
        parsers["wrap"].add_argument(
            "--no-enable", action="store_true", help="Do not touch plugin flag."
        )
        parsers["wrap"].add_argument(
            "--no-reconfigure", action="store_true", help="Do not reconfigure KWin."
        )

        self.parsers = argparse.Namespace(**parsers)
        self.parsed = parsers["main"].parse_args(args)
        self.parsed.cmdline = cmdline

        if self.parsed.mode == "wrap":
            if not cmdline:
                parsers["wrap"].error('requires "-- COMMAND..."')
            if self.parsed.auto == bool(self.parsed.class_name):
                parsers["wrap"].error("requires either CLASS or --auto")
        elif cmdline:
            parsers["main"].error('"--" is only accepted by wrap')

    def __str__(self):
        return str({"parsed": self.parsed})


class Context:
    "Target account, its kwinrc and the means to reach its session"

    def __init__(
        self,
        parsed,
        environ: Mapping[str, str],
        accounts: AccountDirectory = None,
        sessions=None,
        euid: int = None,
        runtime_root: str = RUNTIME_ROOT,
        tooling: dict = None,
    ):
        self.environ = environ
        self.timeout = parsed.timeout
        self.euid = current_euid() if euid is None else euid
        self.runtime_root = runtime_root
        self.tooling = tooling or {}
        self.sessions = (
            sessions
            if sessions is not None
            else get_session_manager(parsed.backend, parsed.timeout)
        )
        self.account = resolve_target_user(
            uid=parsed.uid,
            username=parsed.username,
            session_auto=parsed.session_auto,
            accounts=accounts,
            sessions=self.sessions,
            euid=self.euid,
        )
        print_debug("target account", self.account)
        self.path = self.kwinrc_path()
        # files written as root for another user are handed over to them
        self.owner = (
            (self.account.uid, self.account.gid)
            if self.euid == 0 and self.account.uid != 0
            else None
        )
        self._session = None
        self._session_resolved = False

    def kwinrc_path(self) -> str:
        """
        Unprivileged own kwinrc honors absolute XDG_CONFIG_HOME of given environment,
        root and other users get the one under passwd home
        """
        if self.account.uid == self.euid and self.euid != 0:
            config_home = self.environ.get("XDG_CONFIG_HOME", "")
            if os.path.isabs(config_home):
                return os.path.join(config_home, KWINRC_NAME)
        return os.path.join(self.account.home, KWINRC_SUBPATH)

    def session(self) -> Optional[SessionEnvironment]:
        "Session env of target, None if it could not be resolved"
        if not self._session_resolved:
            self._session = try_resolve_session_env(
                self.account, self.environ, self.sessions, self.runtime_root
            )
            self._session_resolved = True
        return self._session

    def reload(self, session=None) -> Optional[str]:
        return reload_kwin(
            session, self.environ, self.timeout, **self.tooling
        )

    def reload_after(self, done_msg: str):
        "Reconfigures KWin after a change if session is known, reports change"
        session = self.session()
        if session is None:
            print_info(f"{done_msg} (no session env for reconfigure)")
            return
        self.reload(session)
        print_info(done_msg)


def print_class_keys(classes: List[str]):
    if not classes:
        print_normal("(no forced classes configured)")
        return
    for class_name in classes:
        print_normal(f"{class_name:<24} -> {normalize(class_name)}")


def cmd_list_classes(ctx: Context, show_keys: bool) -> int:
    try:
        classes = kwinrc.get_classes(ctx.path)
    except OSError as caught_exception:
        print_error("failed to read config:", caught_exception)
        return 1
    if show_keys:
        print_class_keys(classes)
    elif not classes:
        print_normal("(no forced classes configured)")
    else:
        for class_name in classes:
            print_normal(class_name)
    return 0


def read_classes_for_update(ctx: Context) -> List[str]:
    "Stored classes, missing kwinrc is empty"
    try:
        return kwinrc.get_classes(ctx.path)
    except FileNotFoundError:
        return []


def cmd_add_class(ctx: Context, class_name: str) -> int:
    try:
        class_name = single_class(class_name)
    except InvalidInputError as caught_exception:
        print_error(caught_exception)
        return 1
    try:
        classes = read_classes_for_update(ctx)
        if contains(classes, class_name):
            print_info("class already present (case-insensitive / .desktop-insensitive)")
            return 0
        kwinrc.set_classes(ctx.path, dedupe(classes + [class_name]), ctx.owner)
    except OSError as caught_exception:
        print_error("failed to write config:", caught_exception)
        return 1
    ctx.reload_after("added class")
    return 0


def cmd_remove_class(ctx: Context, class_name: str) -> int:
    try:
        class_name = single_class(class_name)
    except InvalidInputError as caught_exception:
        print_error(caught_exception)
        return 1
    try:
        classes = read_classes_for_update(ctx)
        remaining = without(classes, class_name)
        if len(remaining) == len(classes):
            print_info("class not found (case-insensitive / .desktop-insensitive)")
            return 0
        kwinrc.set_classes(ctx.path, remaining, ctx.owner)
    except OSError as caught_exception:
        print_error("failed to write config:", caught_exception)
        return 1
    ctx.reload_after("removed class")
    return 0


def cmd_set_classes(ctx: Context, classes: List[str], done_msg: str) -> int:
    try:
        kwinrc.set_classes(ctx.path, dedupe(classes), ctx.owner)
    except OSError as caught_exception:
        print_error("failed to write config:", caught_exception)
        return 1
    ctx.reload_after(done_msg)
    return 0


def cmd_set_enabled(ctx: Context, enabled: bool) -> int:
    verb = "enable" if enabled else "disable"
    try:
        kwinrc.set_enabled(ctx.path, enabled, ctx.owner)
    except OSError as caught_exception:
        print_error(f"failed to {verb} script:", caught_exception)
        return 1
    ctx.reload_after(f"{verb}d {SCRIPT_ID}")
    return 0


def cmd_enabled(ctx: Context) -> int:
    try:
        enabled = kwinrc.get_enabled(ctx.path)
    except OSError as caught_exception:
        print_error("failed to read enabled flag:", caught_exception)
        return 1
    print_normal("(unset)" if enabled is None else str(enabled).lower())
    return 0


def cmd_script_value(ctx: Context, key: str, value: Optional[str]) -> int:
    "Shows or sets a key in the script section"
    if value is None:
        try:
            current = kwinrc.get_value(ctx.path, SCRIPT_GROUP, key)
        except OSError as caught_exception:
            print_error("failed to read config:", caught_exception)
            return 1
        print_normal("(unset)" if current is None else current)
        return 0
    try:
        kwinrc.set_value(ctx.path, SCRIPT_GROUP, key, value, ctx.owner)
    except OSError as caught_exception:
        print_error("failed to write config:", caught_exception)
        return 1
    ctx.reload_after(f"set {key}={value}")
    return 0


def cmd_reconfigure(ctx: Context) -> int:
    # without a known session, try with own environment
    ctx.reload(ctx.session() or SessionEnvironment())
    return 0


def cmd_status(ctx: Context) -> int:
    print_normal(f"Target user: {ctx.account.username} (uid={ctx.account.uid})")
    print_normal(f"Config: {ctx.path}")
    try:
        classes = kwinrc.get_classes(ctx.path)
        enabled = kwinrc.get_enabled(ctx.path)
        mode = kwinrc.get_value(ctx.path, SCRIPT_GROUP, MODE_KEY)
    except FileNotFoundError:
        print_warning(f'"{ctx.path}" does not exist')
        classes, enabled, mode = [], None, None
    except OSError as caught_exception:
        print_error("failed to read config:", caught_exception)
        return 1
    print_normal(f"Forced classes: {len(classes)}")
    print_normal(f"Enabled: {'(unset)' if enabled is None else str(enabled).lower()}")
    print_normal(f"Mode: {mode or '(unset)'}")

    session = ctx.session()
    loaded = None
    if session is not None:
        loaded = script_loaded(session, ctx.environ, ctx.timeout, **ctx.tooling)
    print_normal(
        "Loaded in KWin: "
        + {True: "yes", False: "no", None: "unknown"}[loaded]
    )
    return 0


def exec_command_as(
    account, session: SessionEnvironment, cmdline: List[str], environ, euid: int
) -> int:
    """
    Replaces this process with cmdline in target home and session env,
    dropping to target user when running as root.
    Returns exit code only if exec is not supported or fails.
    """
    env = dict(environ)
    env["HOME"] = account.home
    env.update(session.as_env())

    try:
        if os.name != "posix":
            sprc = subprocess.run(cmdline, cwd=account.home, env=env, check=False)
            return sprc.returncode
        os.chdir(account.home)
        if euid == 0 and account.uid != 0:
            os.initgroups(account.username, account.gid)
            os.setgid(account.gid)
            os.setuid(account.uid)
        print_debug("exec", cmdline)
        os.execvpe(cmdline[0], cmdline, env)
    except OSError as caught_exception:
        print_error("exec failed:", caught_exception, notify=1)
    return 127


def cmd_wrap(ctx: Context, parsed) -> int:
    cmdline = parsed.cmdline
    class_name = auto_class_from_cmd(cmdline[0]) if parsed.auto else parsed.class_name
    try:
        class_name = single_class(class_name)
    except InvalidInputError as caught_exception:
        print_error("failed to ensure integration:", caught_exception, notify=1)
        return 1

    try:
        session = resolve_session_env(
            ctx.account, ctx.environ, ctx.sessions, ctx.runtime_root
        )
    except NotFoundError as caught_exception:
        print_error(
            f"failed to resolve session env for uid {ctx.account.uid} ({ctx.account.username}):",
            caught_exception,
            notify=1,
        )
        print_normal(
            f"hint: target uid must have an active graphical session (check {RUNTIME_ROOT}/<uid>).",
            file=sys.stderr,
        )
        return 1

    if parsed.dry_run:
        print_info(f"[dry-run] target user: {ctx.account.username} (uid={ctx.account.uid})")
        print_info(f"[dry-run] class: {class_name}")
        print_info(f"[dry-run] session env: {session}")
        print_info(f"[dry-run] exec: {shlex.join(cmdline)}")
        return 0

    try:
        if not parsed.no_enable:
            try:
                kwinrc.set_enabled(ctx.path, True, ctx.owner)
            except OSError as caught_exception:
                print_warning("could not enable plugin:", caught_exception)
        classes = read_classes_for_update(ctx)
        if not contains(classes, class_name):
            kwinrc.set_classes(
                ctx.path, dedupe(classes + [class_name]), ctx.owner
            )
    except OSError as caught_exception:
        print_error("failed to ensure integration:", caught_exception, notify=1)
        return 1

    if not parsed.no_reconfigure:
        ctx.reload(session)

    return exec_command_as(ctx.account, session, cmdline, ctx.environ, ctx.euid)


def run(
    argv: List[str],
    environ: Mapping[str, str],
    accounts: AccountDirectory = None,
    sessions=None,
    euid: int = None,
    runtime_root: str = RUNTIME_ROOT,
    tooling: dict = None,
) -> int:
    "Parses argv, runs subcommand, returns exit code"

    ColorFlag.color = not environ.get("NO_COLOR")
    if DebugFlag.warning:
        print_warning(DebugFlag.warning)

    args = Args(argv, env_defaults(environ))
    parsed = args.parsed
    LogFlag.log = parsed.log
    NotifyFlag.notify = not parsed.no_notify
    print_debug("Args.parsed", parsed)

    try:
        ctx = Context(
            parsed,
            environ,
            accounts=accounts,
            sessions=sessions,
            euid=euid,
            runtime_root=runtime_root,
            tooling=tooling,
        )
    except NotFoundError as caught_exception:
        print_error(
            "failed to resolve target user:",
            caught_exception,
            notify=1 if parsed.mode == "wrap" else 0,
        )
        return 1

    if parsed.mode == "list-classes":
        return cmd_list_classes(ctx, parsed.keys)
    elif parsed.mode == "list-keys":
        return cmd_list_classes(ctx, True)
    elif parsed.mode == "add-class":
        return cmd_add_class(ctx, parsed.class_name)
    elif parsed.mode == "remove-class":
        return cmd_remove_class(ctx, parsed.class_name)
    elif parsed.mode == "set-classes":
        return cmd_set_classes(ctx, parse_classes(parsed.spec), "set classes")
    elif parsed.mode == "clear":
        return cmd_set_classes(ctx, [], "cleared classes")
    elif parsed.mode == "enable":
        return cmd_set_enabled(ctx, True)
    elif parsed.mode == "disable":
        return cmd_set_enabled(ctx, False)
    elif parsed.mode == "enabled":
        return cmd_enabled(ctx)
    elif parsed.mode == "reconfigure":
        return cmd_reconfigure(ctx)
    elif parsed.mode == "mode":
        return cmd_script_value(ctx, MODE_KEY, parsed.value)
    elif parsed.mode == "script-debug":
        return cmd_script_value(ctx, DEBUG_KEY, parsed.value)
    elif parsed.mode == "status":
        return cmd_status(ctx)
    elif parsed.mode == "wrap":
        return cmd_wrap(ctx, parsed)

    # argparse does not let us here
    print_error(f"unknown subcommand {parsed.mode}")
    return 1


def main():
    "focusctl main entrypoint"
    sys.exit(run(sys.argv[1:], os.environ))
