"""
RFC 5545 line protocol: folding, unfolding, property lines and TEXT escaping.
"""

from dataclasses import dataclass
from dataclasses import field

# Octet limit for a physical content line, excluding the CRLF.
MAX_LINE_OCTETS = 75


@dataclass
class Property:
    """One logical content line: ``NAME;KEY=VALUE:value``."""

    name: str
    value: str
    params: dict[str, str] = field(default_factory=dict)

    def param(self, key: str) -> str:
        return self.params.get(key.upper(), "").strip()


def unfold(text: str) -> list[str]:
    """Join folded physical lines into logical lines."""
    logical: list[str] = []
    current = ""
    for raw in text.replace("\r\n", "\n").split("\n"):
        if raw == "" and not current:
            continue
        if raw.startswith((" ", "\t")):
            # Only the single folding whitespace is dropped.
            current += raw[1:]
            continue
        if current:
            logical.append(current)
        current = raw.rstrip("\r")
    if current:
        logical.append(current)
    return logical


def fold(line: str, limit: int = MAX_LINE_OCTETS) -> list[str]:
    """Split a logical line into physical lines of at most ``limit`` octets.

    Continuation lines carry a leading space which counts toward the limit.
    Multi-byte UTF-8 characters are never split.
    """
    if len(line.encode("utf-8")) <= limit:
        return [line]

    segments: list[str] = []
    current: list[str] = []
    used = 0
    room = limit
    for char in line:
        size = len(char.encode("utf-8"))
        if used + size > room:
            segments.append("".join(current))
            current = []
            used = 0
            room = limit - 1
        current.append(char)
        used += size
    if current:
        segments.append("".join(current))

    return [segments[0]] + [" " + seg for seg in segments[1:]]


def parse_property(line: str) -> Property | None:
    """Parse a logical line; returns None when it is not a property."""
    head, sep, value = line.partition(":")
    if not sep:
        return None

    segments = head.split(";")
    name = segments[0].strip().upper()
    if not name:
        return None

    params: dict[str, str] = {}
    for seg in segments[1:]:
        key, eq, val = seg.partition("=")
        if not eq:
            continue
        params[key.strip().upper()] = val.strip()

    return Property(name=name, value=value.strip(), params=params)


def format_property(name: str, value: str, params: dict[str, str] | None = None) -> str:
    """Build the logical line for a property (unfolded)."""
    head = name
    for key, val in (params or {}).items():
        head += f";{key}={val}"
    return f"{head}:{value}"


def escape_text(text: str) -> str:
    """Escape a TEXT value (backslash, semicolon, comma, newline)."""
    if not text:
        return ""
    text = text.replace("\r\n", "\n").replace("\r", "")
    text = text.replace("\\", "\\\\")
    text = text.replace(";", "\\;")
    text = text.replace(",", "\\,")
    return text.replace("\n", "\\n")


def unescape_text(text: str) -> str:
    """Inverse of :func:`escape_text`."""
    out: list[str] = []
    i = 0
    while i < len(text):
        char = text[i]
        if char == "\\" and i + 1 < len(text):
            nxt = text[i + 1]
            if nxt in ("n", "N"):
                out.append("\n")
                i += 2
                continue
            if nxt in ("\\", ";", ","):
                out.append(nxt)
                i += 2
                continue
        out.append(char)
        i += 1
    return "".join(out)
