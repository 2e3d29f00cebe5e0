"""Correlate an audit user (AUID or account name) with its login sessions.

Session ids are anchored on login/authentication records: those are the ones
that bind an AUID to a session when it is created. The export pass then pulls
every record class for the resulting session ids, including records that no
longer carry the AUID.
"""

from dataclasses import dataclass
from typing import Iterable

from audit2csv.records import extract_field, looks_like_record, tokenize


UNSET_ID = 4294967295
INVALID_ID = 4294967294
SENTINEL_IDS = frozenset({UNSET_ID, INVALID_ID})

LOGIN_RECORD_TYPES = ("USER_LOGIN", "USER_AUTH", "USER_ACCT", "LOGIN")


@dataclass(frozen=True)
class Correlation:
    auids: tuple[int, ...]
    sessions: tuple[int, ...]

    @property
    def empty(self) -> bool:
        return not self.sessions


def parse_id(value: str | None) -> int | None:
    if not value or not value.isdigit():
        return None
    return int(value)


def resolve_auids(lines: Iterable[str], username: str) -> tuple[int, ...]:
    auids: set[int] = set()
    for line in lines:
        if not looks_like_record(line):
            continue
        record = tokenize(line)
        if extract_field(record, "acct") != username:
            continue
        auid = parse_id(extract_field(record, "auid"))
        if auid is None or auid in SENTINEL_IDS:
            continue
        auids.add(auid)
    return tuple(sorted(auids))


def find_sessions(lines: Iterable[str], auids: Iterable[int]) -> tuple[int, ...]:
    wanted = set(auids) - SENTINEL_IDS
    sessions: set[int] = set()
    if not wanted:
        return ()
    for line in lines:
        if not looks_like_record(line):
            continue
        record = tokenize(line)
        auid = parse_id(extract_field(record, "auid"))
        ses = parse_id(extract_field(record, "ses"))
        if auid is None or ses is None:
            continue
        if auid in wanted and ses not in SENTINEL_IDS:
            sessions.add(ses)
    return tuple(sorted(sessions))


def correlate(
    query,
    auid: int | None = None,
    username: str | None = None,
    login_types: Iterable[str] = LOGIN_RECORD_TYPES,
) -> Correlation:
    login_types = tuple(login_types)
    if username is not None:
        auids = resolve_auids(query.records(types=login_types), username)
        if not auids:
            return Correlation(auids=(), sessions=())
    elif auid is not None:
        auids = (auid,)
    else:
        raise ValueError("correlate needs an auid or a username")
    sessions = find_sessions(query.records(types=login_types), auids)
    return Correlation(auids=auids, sessions=sessions)
