"""
KWin calls over the session bus.

Calls are made with the first working bus tool out of BUS_TOOLS,
in the target session's environment. Failures are never fatal:
config edits are already on disk when these run.
"""

import shlex
import subprocess
from typing import Callable, List, Mapping, Optional, Tuple

from xdg.util import which

from focusctl.misc import print_debug, print_info, print_warning
from focusctl.params import (
    BUS_TOOLS,
    KWIN_BUS_NAME,
    KWIN_PATH,
    KWIN_RECONFIGURE,
    KWIN_SCRIPT_LOADED,
    KWIN_SCRIPTING_PATH,
    SCRIPT_ID,
    TOOL_TIMEOUT,
)


def call_kwin(
    args: List[str],
    session=None,
    environ: Optional[Mapping[str, str]] = None,
    timeout: float = TOOL_TIMEOUT,
    runner: Callable = subprocess.run,
    finder: Callable = which,
) -> Optional[Tuple[str, subprocess.CompletedProcess]]:
    """
    Runs bus call with each of BUS_TOOLS until one succeeds.
    Returns (tool, completed process) or None if all failed.
    """
    env = dict(environ or {})
    if session is not None:
        env.update(session.as_env())

    for tool in BUS_TOOLS:
        if not finder(tool, path=env.get("PATH")):
            print_debug(f"{tool} not found")
            continue
        cmd = [tool, *args]
        try:
            sprc = runner(
                cmd,
                env=env,
                text=True,
                capture_output=True,
                check=False,
                timeout=timeout,
            )
        except (OSError, subprocess.SubprocessError) as caught_exception:
            print_debug(f'"{shlex.join(cmd)}" failed', caught_exception)
            continue
        print_debug(sprc)
        if sprc.returncode == 0:
            return tool, sprc
    return None


def reload_kwin(session=None, environ=None, timeout: float = TOOL_TIMEOUT, **tooling) -> Optional[str]:
    "Asks KWin to re-read its config, returns the tool that did it"
    result = call_kwin(
        [KWIN_BUS_NAME, KWIN_PATH, KWIN_RECONFIGURE],
        session,
        environ,
        timeout,
        **tooling,
    )
    if result is None:
        print_warning(
            f"Could not call {'/'.join(BUS_TOOLS)}; run manually inside session:\n"
            f"\tqdbus {KWIN_BUS_NAME} {KWIN_PATH} {KWIN_RECONFIGURE}"
        )
        return None
    print_info(f"requested KWin reconfigure via {result[0]}")
    return result[0]


def script_loaded(session=None, environ=None, timeout: float = TOOL_TIMEOUT, **tooling) -> Optional[bool]:
    "Asks KWin if the script is loaded, None if it could not be asked"
    result = call_kwin(
        [KWIN_BUS_NAME, KWIN_SCRIPTING_PATH, KWIN_SCRIPT_LOADED, SCRIPT_ID],
        session,
        environ,
        timeout,
        **tooling,
    )
    if result is None:
        return None
    return result[1].stdout.strip().lower() == "true"
