import datetime as dt
import re
from dataclasses import dataclass


STAMP_RE = re.compile(r"audit\(([^)]*)\)")
NUMERIC_TIME_RE = re.compile(r"^(\d+)(?:\.(\d+))?$")
DISPLAY_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class EventStamp:
    epoch: str = ""
    ms: str = ""
    serial: str = ""
    utc: str = ""
    local: str = ""


def split_stamp(inner: str) -> tuple[str, str]:
    time_part, sep, serial = inner.rpartition(":")
    if not sep:
        return inner, ""
    return time_part, serial


def parse_event_stamp(line: str) -> EventStamp:
    """Split the `audit(<epoch>.<frac>:<serial>)` descriptor of a record.

    Only the numeric fields are filled here; `utc` carries the verbatim time
    portion when it is not numeric (already-rendered timestamps). Display
    columns for numeric stamps come from `TimestampFormatter`.
    """
    match = STAMP_RE.search(line)
    if not match:
        return EventStamp()
    time_part, serial = split_stamp(match.group(1))
    numeric = NUMERIC_TIME_RE.match(time_part)
    if not numeric:
        return EventStamp(serial=serial, utc=time_part)
    epoch, frac = numeric.groups()
    ms = ((frac or "") + "000")[:3]
    return EventStamp(epoch=epoch, ms=ms, serial=serial)


class TimestampFormatter:
    def __init__(self, human: bool = False, local: bool = False, local_tz: dt.tzinfo | None = None):
        self.human = human
        self.local = local and human
        self.local_tz = local_tz
        self.memo: dict[tuple[str, str], tuple[str, str]] = {}

    def _render(self, epoch: str, ms: str) -> tuple[str, str]:
        key = (epoch, ms)
        cached = self.memo.get(key)
        if cached is not None:
            return cached
        seconds = int(epoch)
        try:
            utc = dt.datetime.fromtimestamp(seconds, tz=dt.timezone.utc).strftime(DISPLAY_FORMAT)
            local = ""
            if self.local:
                if self.local_tz is None:
                    local = dt.datetime.fromtimestamp(seconds).strftime(DISPLAY_FORMAT)
                else:
                    local = dt.datetime.fromtimestamp(seconds, tz=self.local_tz).strftime(DISPLAY_FORMAT)
        except (OverflowError, OSError, ValueError):
            # Out of range for the platform clock; keep the raw epoch form.
            utc, local = epoch, ""
        rendered_utc = f"{utc}.{ms}"
        rendered_local = f"{local}.{ms}" if local else ""
        self.memo[key] = (rendered_utc, rendered_local)
        return rendered_utc, rendered_local

    def format(self, stamp: EventStamp) -> EventStamp:
        if not stamp.epoch:
            return stamp
        if not self.human:
            return EventStamp(stamp.epoch, stamp.ms, stamp.serial, f"{stamp.epoch}.{stamp.ms}", "")
        utc, local = self._render(stamp.epoch, stamp.ms)
        return EventStamp(stamp.epoch, stamp.ms, stamp.serial, utc, local)

    def normalize(self, line: str) -> EventStamp:
        return self.format(parse_event_stamp(line))
