import glob
import os
import shutil
import subprocess
import tempfile
from typing import Iterable, Iterator

from audit2csv.records import extract_field, looks_like_record, tokenize
from audit2csv.timestamps import STAMP_RE


BACKENDS = ("ausearch", "file")


class QueryError(RuntimeError):
    pass


def collect_inputs(path: str | None = None, directory: str | None = None) -> list[str]:
    if path:
        if not os.path.isfile(path):
            raise QueryError(f"Input file does not exist: {path}")
        return [path]
    if not directory or not os.path.isdir(directory):
        raise QueryError(f"Input directory does not exist: {directory}")
    # audit.log, audit.log.1, ... in shell glob order
    paths = sorted(glob.glob(os.path.join(glob.escape(directory), "audit.log*")))
    paths = [item for item in paths if os.path.isfile(item)]
    if not paths:
        raise QueryError(f"No audit.log* files found in {directory}")
    return paths


def iter_file(path: str) -> Iterator[str]:
    try:
        handle = open(path, "r", encoding="utf-8", errors="replace")
    except OSError as exc:
        raise QueryError(f"Unable to read input {path}: {exc}") from exc
    with handle:
        try:
            yield from handle
        except OSError as exc:
            raise QueryError(f"Unable to read input {path}: {exc}") from exc


def event_key(line: str) -> str | None:
    match = STAMP_RE.search(line)
    return match.group(1) if match else None


def iter_events(lines: Iterable[str]) -> Iterator[list[str]]:
    current_key = None
    current: list[str] = []
    for line in lines:
        if not line.strip():
            continue
        key = event_key(line)
        if current and (key is None or key != current_key):
            yield current
            current = []
        current.append(line)
        current_key = key
    if current:
        yield current


class LogFileQuery:
    """Read raw audit logs directly, filtering whole events like ausearch does."""

    backend = "file"

    def __init__(self, paths: list[str]):
        self.paths = list(paths)

    def __enter__(self) -> "LogFileQuery":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        pass

    def lines(self) -> Iterator[str]:
        for path in self.paths:
            yield from iter_file(path)

    def records(self, types: Iterable[str] | None = None, session: int | str | None = None) -> Iterator[str]:
        wanted_types = set(types) if types else None
        wanted_session = str(session) if session is not None else None
        for event in iter_events(self.lines()):
            if wanted_types is None and wanted_session is None:
                yield from event
                continue
            parsed = [tokenize(line) for line in event if looks_like_record(line)]
            if wanted_types is not None and not any(item.record_type in wanted_types for item in parsed):
                continue
            if wanted_session is not None and not any(
                extract_field(item, "ses") == wanted_session for item in parsed
            ):
                continue
            yield from event


class AusearchQuery:
    """Stream `ausearch --format raw` output for one input file."""

    backend = "ausearch"

    def __init__(self, paths: list[str], binary: str = "ausearch", sudo: bool = True):
        self.binary = binary
        self.sudo = sudo
        self._tmp_path: str | None = None
        if len(paths) == 1:
            self.input_path = paths[0]
        else:
            handle, self._tmp_path = tempfile.mkstemp(prefix="audit2csv-", suffix=".log")
            try:
                with os.fdopen(handle, "wb") as writer:
                    for path in paths:
                        with open(path, "rb") as reader:
                            shutil.copyfileobj(reader, writer)
            except OSError as exc:
                self.close()
                raise QueryError(f"Unable to combine inputs for ausearch: {exc}") from exc
            self.input_path = self._tmp_path

    def __enter__(self) -> "AusearchQuery":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        if self._tmp_path and os.path.exists(self._tmp_path):
            os.remove(self._tmp_path)
        self._tmp_path = None

    def command(self, types: Iterable[str] | None = None, session: int | str | None = None) -> list[str]:
        cmd = ["sudo"] if self.sudo else []
        cmd.extend([self.binary, "-if", self.input_path])
        if types:
            cmd.extend(["-m", ",".join(types)])
        if session is not None:
            cmd.extend(["--session", str(session)])
        cmd.extend(["--format", "raw"])
        return cmd

    def records(self, types: Iterable[str] | None = None, session: int | str | None = None) -> Iterator[str]:
        cmd = self.command(types, session)
        try:
            proc = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as exc:
            raise QueryError(f"unable to run {cmd[0]}: {exc}") from exc
        try:
            yield from proc.stdout
        finally:
            if proc.poll() is None:
                proc.terminate()
            proc.stdout.close()
            # ausearch exits 1 when nothing matched; an empty stream covers that case.
            proc.wait()


def open_query(
    paths: list[str],
    backend: str = "ausearch",
    binary: str = "ausearch",
    sudo: bool = True,
) -> LogFileQuery | AusearchQuery:
    if backend == "file":
        return LogFileQuery(paths)
    if backend != "ausearch":
        raise QueryError(f"unknown query backend '{backend}'")
    if shutil.which(binary) is None:
        raise QueryError(f"ausearch binary not found: {binary}")
    use_sudo = sudo and os.geteuid() != 0
    if use_sudo and shutil.which("sudo") is None:
        raise QueryError("sudo requested for ausearch but not found")
    return AusearchQuery(paths, binary=binary, sudo=use_sudo)
