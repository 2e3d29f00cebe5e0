import csv
from typing import Iterable, TextIO

from audit2csv.records import (
    DEFAULT_DECODED_FIELDS,
    RECORD_SEPARATOR,
    AuditRecord,
    extract_field,
    extract_interpreted,
    resolve_field,
)
from audit2csv.timestamps import EventStamp


# Core columns read straight from record fields. Field discovery excludes these
# names too, so this tuple is the only list to edit when the core set changes.
IDENTITY_COLUMNS = ("uid", "euid", "pid", "ppid", "comm", "exe")
RECORD_FIELD_COLUMNS = ("ses", "type", "auid", "acct", *IDENTITY_COLUMNS)
STAMP_COLUMNS = ("ts_utc", "ts_epoch", "ts_ms", "serial")

CORE_COLUMNS = (
    "ses",
    "type",
    *STAMP_COLUMNS,
    "auid",
    "acct",
    "auid_name",
    *IDENTITY_COLUMNS,
)
LOCAL_COLUMN = "ts_local"
RAW_COLUMN = "raw"


def parse_field_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def row_writer(handle: TextIO):
    return csv.writer(handle, quoting=csv.QUOTE_ALL, lineterminator="\n")


def clean_raw(line: str) -> str:
    return line.rstrip("\n").replace("\r", "").replace(RECORD_SEPARATOR, " ")


class RowAssembler:
    def __init__(
        self,
        extra_fields: Iterable[str] = (),
        local_time: bool = False,
        decoded_fields: Iterable[str] = DEFAULT_DECODED_FIELDS,
    ):
        self.extra_fields = [field for field in extra_fields if field]
        self.local_time = local_time
        self.decoded_fields = frozenset(decoded_fields)

    @property
    def columns(self) -> list[str]:
        columns = list(CORE_COLUMNS)
        if self.local_time:
            columns.append(LOCAL_COLUMN)
        columns.extend(self.extra_fields)
        columns.append(RAW_COLUMN)
        return columns

    def header(self) -> str:
        return ",".join(self.columns)

    def values(self, record: AuditRecord, stamp: EventStamp, session: str | None = None) -> list[str]:
        values = [
            session if session else extract_field(record, "ses"),
            extract_field(record, "type"),
            stamp.utc,
            stamp.epoch,
            stamp.ms,
            stamp.serial,
            extract_field(record, "auid"),
            extract_field(record, "acct"),
            extract_interpreted(record, "auid"),
        ]
        values.extend(extract_field(record, key) for key in IDENTITY_COLUMNS)
        if self.local_time:
            values.append(stamp.local)
        values.extend(resolve_field(record, key, self.decoded_fields) for key in self.extra_fields)
        values.append(clean_raw(record.raw))
        return values

