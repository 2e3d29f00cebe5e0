from __future__ import annotations

"""
Synthetic audit record builders used by unit and integration tests.

The helpers generate raw `ausearch --format raw` style lines: login/auth
records carry the account and terminal data inside the `msg='...'` payload,
syscall records carry process identity in the record body, and enriched
records append interpreted values (`UID="root"`, `AUID="alice"`) after the
0x1d separator the way auditd writes them.
"""

SEP = "\x1d"
UNSET = 4294967295


def make_user_login(
    *,
    ts: str,
    seq: int,
    auid: int,
    ses: int,
    acct: str,
    pid: int = 2200,
    res: str = "success",
    auid_name: str | None = None,
    record_type: str = "USER_LOGIN",
) -> str:
    line = (
        f"type={record_type} msg=audit({ts}:{seq}): pid={pid} uid=0 auid={auid} ses={ses} "
        f"msg='op=login acct=\"{acct}\" exe=\"/usr/sbin/sshd\" hostname=10.0.0.5 addr=10.0.0.5 "
        f"terminal=ssh res={res}'"
    )
    if auid_name:
        line += f'{SEP}UID="root" AUID="{auid_name}"'
    return line


def make_login(*, ts: str, seq: int, pid: int, auid: int, ses: int) -> str:
    return (
        f"type=LOGIN msg=audit({ts}:{seq}): pid={pid} uid=0 subj=unconfined old-auid={UNSET} "
        f"auid={auid} tty=(none) old-ses={UNSET} ses={ses} res=1"
    )


def make_syscall(
    *,
    ts: str,
    seq: int,
    auid: int,
    ses: int,
    pid: int,
    ppid: int,
    comm: str,
    exe: str,
    uid: int = 1001,
    key: str = "exec",
) -> str:
    return (
        f"type=SYSCALL msg=audit({ts}:{seq}): arch=c000003e syscall=59 success=yes exit=0 "
        f"items=2 ppid={ppid} pid={pid} auid={auid} uid={uid} euid={uid} tty=pts0 ses={ses} "
        f'comm="{comm}" exe="{exe}" key="{key}"'
    )


def make_execve(*, ts: str, seq: int, argv: list[str]) -> str:
    args = " ".join(f'a{i}="{arg}"' for i, arg in enumerate(argv))
    return f"type=EXECVE msg=audit({ts}:{seq}): argc={len(argv)} {args}"


def encode_proctitle(argv: list[str]) -> str:
    return "\x00".join(argv).encode("utf-8").hex().upper()


def make_proctitle(*, ts: str, seq: int, argv: list[str]) -> str:
    return f"type=PROCTITLE msg=audit({ts}:{seq}): proctitle={encode_proctitle(argv)}"


def build_session(
    *,
    auid: int,
    ses: int,
    acct: str,
    seq_start: int,
    epoch: int = 1700000000,
) -> list[str]:
    """Login, one command (syscall + execve + proctitle) and nothing else."""
    ts_login = f"{epoch}.100"
    ts_cmd = f"{epoch + 5}.250"
    argv = ["cat", "/etc/hostname"]
    return [
        make_user_login(ts=ts_login, seq=seq_start, auid=auid, ses=ses, acct=acct, auid_name=acct),
        make_syscall(
            ts=ts_cmd,
            seq=seq_start + 1,
            auid=auid,
            ses=ses,
            pid=3000 + ses,
            ppid=2200,
            comm="cat",
            exe="/usr/bin/cat",
        ),
        make_execve(ts=ts_cmd, seq=seq_start + 1, argv=argv),
        make_proctitle(ts=ts_cmd, seq=seq_start + 1, argv=argv),
    ]
