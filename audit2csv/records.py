import re
from dataclasses import dataclass
from typing import Callable, Iterable


RECORD_SEPARATOR = "\x1d"
PAYLOAD_RE = re.compile(r" msg='([^']*)'")
TOKEN_RE = re.compile(r'(?:^|(?<= ))([A-Za-z_][A-Za-z0-9_-]*)=(?:"([^"]*)"|([^ ]+))')
HEX_RE = re.compile(r"[0-9a-fA-F]+")

DEFAULT_DECODED_FIELDS = frozenset({"proctitle", "cmd", "user_cmd"})


@dataclass(frozen=True)
class Token:
    key: str
    value: str
    quoted: bool


@dataclass(frozen=True)
class AuditRecord:
    raw: str
    tokens: tuple[Token, ...]
    payload: tuple[Token, ...] | None = None

    def keys(self) -> set[str]:
        keys = {token.key for token in self.tokens}
        if self.payload:
            keys.update(token.key for token in self.payload)
        return keys

    @property
    def record_type(self) -> str:
        return extract_field(self, "type")


def looks_like_record(line: str) -> bool:
    return "type=" in line


def normalize_line(line: str) -> str:
    return line.rstrip("\n").replace("\r", "").replace(RECORD_SEPARATOR, " ")


def scan_tokens(text: str) -> tuple[Token, ...]:
    tokens = []
    for match in TOKEN_RE.finditer(text):
        key, quoted_value, bare_value = match.groups()
        if quoted_value is not None:
            tokens.append(Token(key, quoted_value, True))
        else:
            tokens.append(Token(key, bare_value, False))
    return tuple(tokens)


def tokenize(line: str) -> AuditRecord:
    raw = line.rstrip("\n")
    text = normalize_line(line)
    payload = None
    match = PAYLOAD_RE.search(text)
    if match:
        payload = scan_tokens(match.group(1))
        # Blank the message body so its tokens only surface through the payload.
        text = text[: match.start()] + " " + text[match.end() :]
    return AuditRecord(raw=raw, tokens=scan_tokens(text), payload=payload)


def _find(tokens: tuple[Token, ...] | None, key: str, quoted: bool) -> str | None:
    if not tokens:
        return None
    for token in tokens:
        if token.key == key and token.quoted == quoted:
            return token.value
    return None


Lookup = Callable[[AuditRecord, str], str | None]

# Upper-cased keys carry the interpreted value logged next to the raw one
# (auid=1001 AUID="alice"); they are consulted only after every exact-case miss.
LOOKUP_ORDER: tuple[Lookup, ...] = (
    lambda record, key: _find(record.tokens, key, True),
    lambda record, key: _find(record.tokens, key, False),
    lambda record, key: _find(record.payload, key, True),
    lambda record, key: _find(record.payload, key, False),
    lambda record, key: _find(record.tokens, key.upper(), True),
    lambda record, key: _find(record.payload, key.upper(), True),
)


def extract_field(record: AuditRecord, key: str) -> str:
    for lookup in LOOKUP_ORDER:
        value = lookup(record, key)
        if value is not None:
            return value
    return ""


def extract_interpreted(record: AuditRecord, key: str) -> str:
    for lookup in LOOKUP_ORDER[4:]:
        value = lookup(record, key)
        if value is not None:
            return value
    return ""


def decode_proctitle(value: str) -> str:
    if not HEX_RE.fullmatch(value) or len(value) % 2 != 0:
        return value
    text = bytes.fromhex(value).replace(b"\x00", b" ").decode("utf-8", errors="replace")
    return " ".join(text.split())


def resolve_field(
    record: AuditRecord,
    key: str,
    decoded_fields: Iterable[str] = DEFAULT_DECODED_FIELDS,
) -> str:
    value = extract_field(record, key)
    if value and key.lower() in decoded_fields:
        return decode_proctitle(value)
    return value
