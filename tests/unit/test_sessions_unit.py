from __future__ import annotations

import pytest

from audit2csv.query import LogFileQuery
from audit2csv.sessions import (
    INVALID_ID,
    UNSET_ID,
    Correlation,
    correlate,
    find_sessions,
    parse_id,
    resolve_auids,
)
from tests.support.synthetic_logs import make_login, make_syscall, make_user_login


pytestmark = pytest.mark.unit

LOGINS = [
    make_user_login(ts="1700000000.100", seq=1, auid=UNSET_ID, ses=UNSET_ID, acct="alice", res="failed"),
    make_user_login(ts="1700000000.200", seq=2, auid=1001, ses=3, acct="alice"),
    make_user_login(ts="1700000000.300", seq=3, auid=1002, ses=4, acct="bob"),
    make_user_login(ts="1700000000.400", seq=4, auid=1001, ses=UNSET_ID, acct="alice", record_type="USER_AUTH"),
    make_user_login(ts="1700000000.500", seq=5, auid=1001, ses=INVALID_ID, acct="alice", record_type="USER_ACCT"),
    make_login(ts="1700000000.600", seq=6, pid=2300, auid=1001, ses=10),
    make_user_login(ts="1700000000.700", seq=7, auid=1001, ses=9, acct="alice"),
]


def test_resolve_auids_matches_account_and_drops_sentinels() -> None:
    assert resolve_auids(LOGINS, "alice") == (1001,)
    assert resolve_auids(LOGINS, "bob") == (1002,)
    assert resolve_auids(LOGINS, "mallory") == ()


def test_find_sessions_excludes_sentinels_and_other_users() -> None:
    """Sentinel session ids never reach the session set; results sort numerically."""
    sessions = find_sessions(LOGINS, [1001])
    assert sessions == (3, 9, 10)
    assert UNSET_ID not in sessions
    assert INVALID_ID not in sessions


def test_find_sessions_ignores_old_auid_and_old_ses_keys() -> None:
    assert find_sessions([make_login(ts="1.0", seq=1, pid=1, auid=1005, ses=12)], [1005]) == (12,)
    assert find_sessions([make_login(ts="1.0", seq=1, pid=1, auid=1005, ses=12)], [UNSET_ID]) == ()


def test_find_sessions_needs_both_auid_and_ses() -> None:
    lines = ["type=USER_LOGIN msg=audit(1.0:1): pid=1 auid=1001", "type=USER_LOGIN msg=audit(1.0:2): ses=3"]
    assert find_sessions(lines, [1001]) == ()


def test_parse_id_rejects_non_numeric() -> None:
    assert parse_id("42") == 42
    assert parse_id("unset") is None
    assert parse_id("-1") is None
    assert parse_id("") is None


def test_correlate_by_username(audit_log) -> None:
    syscall = make_syscall(ts="1700000001.000", seq=8, auid=1001, ses=3, pid=10, ppid=1, comm="bash", exe="/bin/bash")
    with LogFileQuery([str(audit_log([*LOGINS, syscall]))]) as query:
        result = correlate(query, username="alice")
    assert result == Correlation(auids=(1001,), sessions=(3, 9, 10))
    assert not result.empty


def test_correlate_only_anchors_on_login_records(audit_log) -> None:
    """A syscall carrying the auid does not contribute its session id."""
    syscall = make_syscall(ts="1700000001.000", seq=8, auid=1001, ses=77, pid=10, ppid=1, comm="bash", exe="/bin/bash")
    with LogFileQuery([str(audit_log([*LOGINS, syscall]))]) as query:
        result = correlate(query, auid=1001)
    assert 77 not in result.sessions


def test_correlate_unknown_user_is_an_empty_outcome(audit_log) -> None:
    with LogFileQuery([str(audit_log(LOGINS))]) as query:
        result = correlate(query, username="mallory")
    assert result == Correlation(auids=(), sessions=())
    assert result.empty


def test_correlate_requires_a_target(audit_log) -> None:
    with LogFileQuery([str(audit_log(LOGINS))]) as query:
        with pytest.raises(ValueError):
            correlate(query)
