"""
Window class list helpers.

Matching is case-insensitive and ignores one trailing ".desktop",
stored values keep the spelling they were given with.
"""

import os
import re
from typing import Iterable, List

from focusctl.misc import InvalidInputError

DESKTOP_SUFFIX = ".desktop"

# any run of ";", "," or whitespace separates classes
_SEPARATORS = re.compile(r"[;,\s]+")
_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")


def normalize(raw: str) -> str:
    "Returns comparison key of a window class, empty string if there is none"
    key = raw.strip()
    if not key:
        return ""
    return key.lower().removesuffix(DESKTOP_SUFFIX)


def parse_classes(value: str) -> List[str]:
    "Splits stored or user-given value into a list of classes, drops empty items"
    return [item for item in _SEPARATORS.split(value) if item]


def join_classes(classes: Iterable[str]) -> str:
    "Joins classes for storage"
    return ";".join(classes)


def dedupe(classes: Iterable[str]) -> List[str]:
    "Drops classes with empty or repeated keys, first occurrence wins"
    seen = set()
    out = []
    for item in classes:
        key = normalize(item)
        if not key or key in seen:
            continue
        seen.add(key)
        out.append(item)
    return out


def contains(classes: Iterable[str], raw: str) -> bool:
    "Checks if class matching raw by key is present"
    key = normalize(raw)
    return any(normalize(item) == key for item in classes)


def without(classes: Iterable[str], raw: str) -> List[str]:
    "Returns classes except those matching raw by key"
    key = normalize(raw)
    return [item for item in classes if normalize(item) != key]


def auto_class_from_cmd(cmd0: str) -> str:
    """
    Derives a class name from command basename:
    ASCII alphanumerics only, first letter upper-cased, "App" appended.
    """
    name = _NON_ALNUM.sub("", os.path.basename(cmd0.rstrip("/")) or cmd0)
    if not name:
        return "FocusApp"
    return name[0].upper() + name[1:] + "App"


def single_class(raw: str) -> str:
    """
    Returns raw trimmed if it names exactly one class.
    Raises InvalidInputError if it is blank or holds separators.
    """
    name = raw.strip()
    if not normalize(name):
        raise InvalidInputError("class is empty")
    if parse_classes(name) != [name]:
        raise InvalidInputError(
            f'class "{name}" contains separators (";", "," or whitespace)'
        )
    return name
