import argparse
import os
import re
from dataclasses import dataclass

import yaml

from audit2csv.discovery import DEFAULT_DISCOVER_MAX
from audit2csv.query import BACKENDS
from audit2csv.records import DEFAULT_DECODED_FIELDS
from audit2csv.rows import parse_field_list
from audit2csv.sessions import LOGIN_RECORD_TYPES


AUID_RE = re.compile(r"^[0-9]+$")


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class RunConfig:
    input_file: str | None
    input_dir: str | None
    output: str
    export_all: bool
    auid: int | None
    username: str | None
    fields: tuple[str, ...]
    discover: bool
    discover_max: int
    human_time: bool
    local_time: bool
    backend: str
    ausearch: str
    sudo: bool
    jobs: int
    login_types: tuple[str, ...]
    decoded_fields: frozenset[str]


def load_config(path: str | None) -> dict:
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as handle:
            content = handle.read()
    except OSError as exc:
        raise ConfigError(f"Unable to read config {path}: {exc}") from exc
    try:
        cfg = yaml.safe_load(content) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config {path} is not valid YAML: {exc}") from exc
    if not isinstance(cfg, dict):
        raise ConfigError(f"Config {path} must be a mapping")
    return cfg


def env_flag(name: str) -> bool | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return raw.strip().lower() not in ("0", "false", "no", "off")


def section(cfg: dict, name: str) -> dict:
    value = cfg.get(name)
    return value if isinstance(value, dict) else {}


def as_positive_int(value, label: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{label} must be an integer, got {value!r}") from exc
    if number < 1:
        raise ConfigError(f"{label} must be at least 1, got {number}")
    return number


def as_name_list(value, label: str) -> list | None:
    if value is None:
        return None
    if not isinstance(value, list):
        raise ConfigError(f"{label} must be a list, got {value!r}")
    return value


def default_output(export_all: bool, auid: str | None, username: str | None) -> str:
    if export_all:
        return "./audit_all.csv"
    if auid:
        return f"./auid_{auid}_sessions.csv"
    return f"./{username}_sessions.csv"


def check_output_path(path: str) -> None:
    out_dir = os.path.dirname(path) or "."
    if not os.path.isdir(out_dir):
        raise ConfigError(f"Output directory does not exist: {out_dir}")
    if not os.access(out_dir, os.W_OK):
        raise ConfigError(f"Output directory not writable: {out_dir}")
    if os.path.exists(path) and not os.access(path, os.W_OK):
        raise ConfigError(f"Output file exists but is not writable: {path}")


def build_run_config(args: argparse.Namespace, cfg: dict) -> tuple[RunConfig, list[str]]:
    """Merge CLI flags, environment and config file into a validated RunConfig.

    Returns the config plus warnings that do not stop the run.
    """
    warnings: list[str] = []
    if args.input_file and args.input_dir:
        raise ConfigError("Use either -i OR -d, not both")
    if not args.input_file and not args.input_dir:
        raise ConfigError("Provide -i <audit.log> OR -d <audit_dir>")

    if args.export_all:
        if args.auid or args.username:
            raise ConfigError("-A cannot be combined with -a or -u")
    else:
        if args.auid and args.username:
            raise ConfigError("Use either -a OR -u, not both")
        if not args.auid and not args.username:
            raise ConfigError("Provide -a <auid> OR -u <username> (or use -A)")
        if args.auid and not AUID_RE.match(args.auid):
            raise ConfigError(
                "-a must be a numeric auid (example: -a 99074). Use -u for username lookup."
            )

    local_time = args.local_time
    if local_time and not args.human_time:
        warnings.append("--local-time only applies when --human-time is enabled. Ignoring --local-time.")
        local_time = False

    query_cfg = section(cfg, "query")
    backend = args.backend or os.getenv("AUDIT2CSV_BACKEND") or query_cfg.get("backend", "ausearch")
    if backend not in BACKENDS:
        raise ConfigError(f"Unsupported query backend '{backend}' (expected one of {', '.join(BACKENDS)})")
    ausearch = os.getenv("AUDIT2CSV_AUSEARCH") or query_cfg.get("ausearch", "ausearch")
    sudo = env_flag("AUDIT2CSV_SUDO")
    if sudo is None:
        sudo = bool(query_cfg.get("sudo", True))

    discover_max = args.discover_max
    if discover_max is None:
        discover_max = section(cfg, "discovery").get("max_lines", DEFAULT_DISCOVER_MAX)
    discover_max = as_positive_int(discover_max, "discover max lines")

    jobs = args.jobs
    if jobs is None:
        jobs = section(cfg, "output").get("jobs", 1)
    jobs = as_positive_int(jobs, "jobs")

    login_types = as_name_list(section(cfg, "sessions").get("login_types"), "sessions.login_types")
    if not login_types:
        login_types = LOGIN_RECORD_TYPES
    decoded = as_name_list(section(cfg, "fields").get("decode"), "fields.decode")
    decoded_fields = (
        frozenset(str(item).lower() for item in decoded) if decoded is not None else DEFAULT_DECODED_FIELDS
    )

    output = args.output or default_output(args.export_all, args.auid, args.username)
    check_output_path(output)

    run = RunConfig(
        input_file=args.input_file,
        input_dir=args.input_dir,
        output=output,
        export_all=args.export_all,
        auid=int(args.auid) if args.auid else None,
        username=args.username,
        fields=tuple(parse_field_list(args.fields)),
        discover=args.discover,
        discover_max=discover_max,
        human_time=args.human_time,
        local_time=local_time,
        backend=backend,
        ausearch=str(ausearch),
        sudo=sudo,
        jobs=jobs,
        login_types=tuple(str(item) for item in login_types),
        decoded_fields=decoded_fields,
    )
    return run, warnings
