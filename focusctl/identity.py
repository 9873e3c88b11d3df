"Target account selection"

import os
from dataclasses import dataclass
from typing import Iterator, Optional

from focusctl.misc import InvalidInputError, NotFoundError, print_debug
from focusctl.params import PASSWD_PATH
from focusctl.session import find_graphical_session


@dataclass(frozen=True)
class Account:
    "Resolved target account"

    uid: int
    gid: int
    username: str
    home: str


class AccountDirectory:
    "Reads passwd-format file, linear scan on every lookup"

    def __init__(self, path: str = PASSWD_PATH):
        self.path = path

    def __iter__(self) -> Iterator[Account]:
        "Yields well-formed records in file order"
        with open(self.path, "r", encoding="UTF-8") as passwd_file:
            for line in passwd_file:
                line = line.rstrip("\n")
                if not line.strip() or line.startswith("#"):
                    continue
                # name:pw:uid:gid:gecos:home:shell
                parts = line.split(":")
                if len(parts) < 7 or not parts[2].isdecimal():
                    continue
                gid = int(parts[3]) if parts[3].isdecimal() else 0
                yield Account(
                    uid=int(parts[2]), gid=gid, username=parts[0], home=parts[5]
                )

    def by_uid(self, uid: int) -> Account:
        for account in self:
            if account.uid == uid:
                return account
        raise NotFoundError(f"uid {uid} not found in {self.path}")

    def by_name(self, username: str) -> Account:
        for account in self:
            if account.username == username:
                return account
        raise NotFoundError(f'user "{username}" not found in {self.path}')


def parse_uid(value: str) -> int:
    "Validates uid string"
    value = value.strip()
    if not value.isdecimal():
        raise InvalidInputError(f'Expected numeric uid, got "{value}"')
    return int(value)


def current_euid() -> int:
    "Effective uid of this process"
    return os.geteuid()


def resolve_target_user(
    uid: Optional[int] = None,
    username: Optional[str] = None,
    session_auto: bool = False,
    accounts: Optional[AccountDirectory] = None,
    sessions=None,
    euid: Optional[int] = None,
) -> Account:
    """
    Decides target account. Priority:
      1) explicit uid
      2) explicit username
      3) active graphical session user, if session_auto and running as root
      4) effective uid of this process
    Raises NotFoundError if the selected account or session is absent.
    """
    if accounts is None:
        accounts = AccountDirectory()
    if euid is None:
        euid = current_euid()

    if uid is not None:
        return accounts.by_uid(uid)
    if username is not None:
        return accounts.by_name(username)

    if session_auto:
        if euid == 0:
            match = find_graphical_session(sessions)
            if match is None:
                raise NotFoundError("No active graphical user session detected")
            print_debug("auto-detected session", match)
            return accounts.by_uid(match[1])
        print_debug("session auto-detection needs root, using current process uid")

    return accounts.by_uid(euid)
