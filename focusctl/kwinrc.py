"""
Format-preserving edits of kwinrc.

The file is kept as a list of raw lines, lookups return line indexes into it,
mutations replace or insert single lines and leave everything else as is.
The file is re-read on every operation, KWin itself may rewrite it at any time.

Read-modify-write is not locked: two concurrent writers race and the last
rename wins for the whole file.
"""

import os
import stat
import tempfile
from dataclasses import dataclass
from typing import List, Optional, Tuple

from focusctl.classes import dedupe, join_classes, parse_classes
from focusctl.misc import print_debug
from focusctl.params import (
    CLASSES_KEY,
    ENABLED_KEY,
    ENABLED_TRUE_VALUES,
    PLUGINS_GROUP,
    SCRIPT_GROUP,
    TMP_SUFFIX,
)


@dataclass
class SectionKeyLocation:
    "Where a key of a section was found, indexes are None when absent"

    section_header_index: Optional[int] = None
    value_line_index: Optional[int] = None
    current_value: str = ""


def split_lines(contents: str) -> List[str]:
    "Splits file contents into lines without terminators, no phantom last line"
    if not contents:
        return []
    lines = contents.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [line.removesuffix("\r") for line in lines]


def serialize(lines: List[str]) -> str:
    "Joins lines back, every line including the last one gets a newline"
    return "".join(f"{line}\n" for line in lines)


def locate(lines: List[str], section_name: str, key_name: str) -> SectionKeyLocation:
    """
    Scans lines for "[section_name]" and "key_name=" inside it.
    Any other header closes the section. If the key repeats,
    the last one wins, same for repeated sections.
    """
    header = f"[{section_name}]"
    prefix = f"{key_name}="
    location = SectionKeyLocation()
    in_section = False

    for index, line in enumerate(lines):
        trimmed = line.strip()

        if trimmed.startswith("[") and trimmed.endswith("]"):
            in_section = trimmed == header
            if in_section:
                location.section_header_index = index
            continue

        if in_section and trimmed.startswith(prefix):
            location.value_line_index = index
            location.current_value = trimmed[len(prefix) :]

    return location


def upsert(
    lines: List[str], location: SectionKeyLocation, section_name: str, new_line: str
) -> List[str]:
    "Returns new list of lines with new_line put where location says"
    lines = list(lines)
    if location.value_line_index is not None:
        lines[location.value_line_index] = new_line
    elif location.section_header_index is not None:
        lines.insert(location.section_header_index + 1, new_line)
    else:
        if lines and lines[-1] != "":
            lines.append("")
        lines.append(f"[{section_name}]")
        lines.append(new_line)
    return lines


def write_atomic(path: str, contents: str, owner: Optional[Tuple[int, int]] = None):
    """
    Writes contents to a fresh sibling temp file, syncs it, renames it over path.
    Permissions of existing file are carried over (new files are 0600),
    'owner' (uid, gid) is applied to the new file if given. Mode and owner
    are set through the open descriptor, never by name. On failure the temp
    file is removed and path is left untouched.
    """
    directory, name = os.path.split(path)
    try:
        old_mode = stat.S_IMODE(os.stat(path).st_mode)
    except FileNotFoundError:
        old_mode = None

    # unique name created with O_EXCL, links planted in the directory are not followed
    tmp_fd, tmp_path = tempfile.mkstemp(
        dir=directory or os.curdir, prefix=f".{name}.", suffix=TMP_SUFFIX
    )
    try:
        with os.fdopen(tmp_fd, "w", encoding="UTF-8") as tmp_file:
            tmp_file.write(contents)
            tmp_file.flush()
            if old_mode is not None:
                os.fchmod(tmp_file.fileno(), old_mode)
            if owner is not None:
                os.fchown(tmp_file.fileno(), *owner)
            os.fsync(tmp_file.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.remove(tmp_path)
        except FileNotFoundError:
            pass
        raise
    print_debug(f'wrote "{path}"')


def read_lines(path: str, missing_ok: bool = False) -> List[str]:
    "Reads file into lines, missing file is empty if missing_ok"
    try:
        with open(path, "r", encoding="UTF-8") as kwinrc_file:
            return split_lines(kwinrc_file.read())
    except FileNotFoundError:
        if missing_ok:
            print_debug(f'"{path}" does not exist, starting empty')
            return []
        raise


def get_value(path: str, section_name: str, key_name: str) -> Optional[str]:
    "Returns value of key in section, None if unset"
    location = locate(read_lines(path), section_name, key_name)
    if location.value_line_index is None:
        return None
    return location.current_value


def set_value(
    path: str,
    section_name: str,
    key_name: str,
    value: str,
    owner: Optional[Tuple[int, int]] = None,
) -> bool:
    "Sets key in section to value, returns False if file already had it"
    lines = read_lines(path, missing_ok=True)
    location = locate(lines, section_name, key_name)
    new_lines = upsert(lines, location, section_name, f"{key_name}={value}")
    if new_lines == lines:
        print_debug(f"{section_name}/{key_name} unchanged")
        return False
    write_atomic(path, serialize(new_lines), owner=owner)
    return True


def get_classes(path: str) -> List[str]:
    "Returns stored forced focus classes, deduplicated"
    value = get_value(path, SCRIPT_GROUP, CLASSES_KEY)
    if not value:
        return []
    return dedupe(parse_classes(value))


def set_classes(
    path: str, classes: List[str], owner: Optional[Tuple[int, int]] = None
) -> bool:
    "Stores forced focus classes"
    return set_value(path, SCRIPT_GROUP, CLASSES_KEY, join_classes(classes), owner)


def parse_enabled(value: str) -> bool:
    "Interprets stored flag, only true/1/yes (any case) are True"
    return value.strip().lower() in ENABLED_TRUE_VALUES


def get_enabled(path: str) -> Optional[bool]:
    "Returns plugin enabled flag, None if unset"
    value = get_value(path, PLUGINS_GROUP, ENABLED_KEY)
    if value is None:
        return None
    return parse_enabled(value)


def set_enabled(
    path: str, enabled: bool, owner: Optional[Tuple[int, int]] = None
) -> bool:
    "Stores plugin enabled flag"
    return set_value(
        path, PLUGINS_GROUP, ENABLED_KEY, "true" if enabled else "false", owner
    )
