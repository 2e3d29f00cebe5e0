import argparse
import os
import sys
from concurrent.futures import ThreadPoolExecutor
from contextlib import closing
from typing import Iterable, Iterator

from audit2csv.config import ConfigError, RunConfig, build_run_config, load_config
from audit2csv.discovery import discover_fields
from audit2csv.query import BACKENDS, QueryError, collect_inputs, open_query
from audit2csv.records import looks_like_record, tokenize
from audit2csv.rows import RowAssembler, row_writer
from audit2csv.sessions import correlate
from audit2csv.timestamps import TimestampFormatter


PROG = "audit2csv"

EPILOG = """\
Session export by AUID (recommended DFIR mode):
  -a finds sessions where auid=<auid> in login/auth records and exports ALL
  records for those sessions. -u resolves the auid(s) for acct="<username>" first.

Time columns (fast default):
  ts_epoch is epoch seconds, ts_ms is milliseconds and ts_utc is "EPOCH.MMM".
  --human-time renders ts_utc as "YYYY-mm-dd HH:MM:SS.mmm" (slower, cached);
  --local-time adds ts_local and only applies together with --human-time.
"""


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog=PROG,
        description="Convert audit records to CSV, optionally scoped to one user's sessions.",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-A", dest="export_all", action="store_true", help="Convert ALL records (no session filtering)")
    parser.add_argument("-a", dest="auid", help="Numeric AUID whose sessions are exported")
    parser.add_argument("-u", dest="username", help="Account name; resolves auid(s) from login/auth records")
    parser.add_argument("-i", dest="input_file", help="Audit log file (e.g. combinedaudit.log)")
    parser.add_argument("-d", dest="input_dir", help="Directory containing audit.log* files")
    parser.add_argument("-o", dest="output", help="Output CSV path")
    parser.add_argument("-F", dest="fields", help='Extra columns: "field1,field2,..."')
    parser.add_argument("-D", dest="discover", action="store_true", help="Auto-discover extra fields (two-pass)")
    parser.add_argument(
        "--discover-max",
        type=int,
        default=None,
        help="Lines sampled by field discovery (default 100000)",
    )
    parser.add_argument("--human-time", action="store_true", help="Human-readable UTC timestamps in ts_utc")
    parser.add_argument("--local-time", action="store_true", help="With --human-time, also output ts_local")
    parser.add_argument("--backend", choices=BACKENDS, default=None, help="Audit query backend")
    parser.add_argument("--jobs", type=int, default=None, help="Parallel session exports")
    parser.add_argument(
        "--config",
        default=os.getenv("AUDIT2CSV_CONFIG"),
        help="Path to audit2csv.yaml",
    )
    return parser.parse_args(argv)


def warn(message: str) -> None:
    print(f"{PROG}: WARN: {message}", file=sys.stderr)


def error(message: str) -> None:
    print(f"{PROG}: ERROR: {message}", file=sys.stderr)


def convert_lines(
    lines: Iterable[str],
    assembler: RowAssembler,
    formatter: TimestampFormatter,
    session: str | None = None,
) -> Iterator[list[str]]:
    for line in lines:
        if not line.strip() or not looks_like_record(line):
            continue
        record = tokenize(line)
        yield assembler.values(record, formatter.normalize(record.raw), session)


def export_session(query, session: int, assembler: RowAssembler, run: RunConfig) -> list[list[str]]:
    # One formatter per pass keeps the human-time memo private to its worker.
    formatter = TimestampFormatter(human=run.human_time, local=run.local_time)
    return list(convert_lines(query.records(session=session), assembler, formatter, str(session)))


def session_records(query, sessions: Iterable[int]) -> Iterator[str]:
    for session in sessions:
        yield from query.records(session=session)


def discover(query, run: RunConfig, sessions: tuple[int, ...] | None) -> list[str]:
    if sessions is None:
        print(f"Discovering fields from full log (first {run.discover_max} lines)...", file=sys.stderr)
        stream = query.records()
    else:
        print(f"Discovering fields from sessions (sampling up to {run.discover_max} lines)...", file=sys.stderr)
        stream = session_records(query, sessions)
    with closing(stream):
        fields = discover_fields(stream, run.discover_max)
    print(f"Discovered fields: {','.join(fields) or '<none>'}", file=sys.stderr)
    return fields


def write_header_only(run: RunConfig) -> None:
    assembler = RowAssembler(run.fields, run.local_time, run.decoded_fields)
    with open(run.output, "w", encoding="utf-8") as writer:
        writer.write(assembler.header() + "\n")
    print(f"Wrote header-only CSV: {run.output}", file=sys.stderr)


def run_export(run: RunConfig) -> int:
    paths = collect_inputs(run.input_file, run.input_dir)
    with open_query(paths, backend=run.backend, binary=run.ausearch, sudo=run.sudo) as query:
        sessions = None
        if not run.export_all:
            correlation = correlate(query, auid=run.auid, username=run.username, login_types=run.login_types)
            if run.username is not None and not correlation.auids:
                warn(f'No auid values found for username acct="{run.username}" in login/auth records.')
                write_header_only(run)
                return 0
            if correlation.empty:
                warn(f"No sessions found for auid(s): {' '.join(str(item) for item in correlation.auids)}")
                write_header_only(run)
                return 0
            sessions = correlation.sessions

        fields = list(run.fields)
        if run.discover and not fields:
            fields = discover(query, run, sessions)

        assembler = RowAssembler(fields, run.local_time, run.decoded_fields)
        with open(run.output, "w", encoding="utf-8") as writer:
            writer.write(assembler.header() + "\n")
            rows_out = row_writer(writer)
            if sessions is None:
                formatter = TimestampFormatter(human=run.human_time, local=run.local_time)
                rows_out.writerows(convert_lines(query.records(), assembler, formatter))
            elif run.jobs == 1:
                for session in sessions:
                    formatter = TimestampFormatter(human=run.human_time, local=run.local_time)
                    rows = convert_lines(query.records(session=session), assembler, formatter, str(session))
                    rows_out.writerows(rows)
            else:
                with ThreadPoolExecutor(max_workers=run.jobs) as pool:
                    results = pool.map(lambda session: export_session(query, session, assembler, run), sessions)
                    for rows in results:
                        rows_out.writerows(rows)
    print(f"Wrote: {run.output}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        cfg = load_config(args.config)
        run, warnings = build_run_config(args, cfg)
    except ConfigError as exc:
        error(str(exc))
        return 2
    for message in warnings:
        warn(message)
    try:
        return run_export(run)
    except (QueryError, OSError) as exc:
        error(str(exc))
        return 2


if __name__ == "__main__":
    sys.exit(main())
