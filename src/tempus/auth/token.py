"""
On-disk persistence for OAuth tokens.
"""

import json
import logging
import os
import re
from datetime import datetime
from datetime import timezone
from pathlib import Path

from tempus.models import Token
from tempus.models import TokenStoreError

logger = logging.getLogger(__name__)

_RFC3339_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<frac>\d{1,9}))?"
    r"(?P<tz>Z|[+-]\d{2}:\d{2})$",
    re.IGNORECASE,
)


def format_expiry(value: datetime) -> str:
    """RFC 3339 in UTC with trailing fractional zeros dropped."""
    value = value.astimezone(timezone.utc)
    text = value.strftime("%Y-%m-%dT%H:%M:%S")
    if value.microsecond:
        text += "." + f"{value.microsecond:06d}".rstrip("0")
    return text + "Z"


def parse_expiry(text: str) -> datetime:
    """Parse RFC 3339 timestamps with up to nanosecond precision."""
    m = _RFC3339_RE.match(text.strip())
    if m is None:
        raise ValueError(f"invalid RFC 3339 timestamp {text!r}")
    frac = (m.group("frac") or "")[:6].ljust(6, "0")
    tz = m.group("tz").upper()
    if tz == "Z":
        tz = "+00:00"
    return datetime.fromisoformat(f"{m.group('base')}.{frac}{tz}").astimezone(timezone.utc)


class TokenStore:
    """Reads and writes a single token file with owner-only permissions."""

    def __init__(self, path: Path):
        self.path = Path(path).expanduser()

    def load(self) -> Token | None:
        """Return the stored token, or None when no file exists."""
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise TokenStoreError(f"Cannot read token file {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise TokenStoreError(f"Token file {self.path} does not contain an object")

        expiry = None
        raw_expiry = data.get("expiry")
        if raw_expiry:
            try:
                expiry = parse_expiry(str(raw_expiry))
            except ValueError as e:
                raise TokenStoreError(f"Token file {self.path}: {e}") from e

        return Token(
            access_token=str(data.get("access_token") or ""),
            refresh_token=str(data.get("refresh_token") or ""),
            token_type=str(data.get("token_type") or "Bearer"),
            expiry=expiry,
        )

    def save(self, token: Token) -> None:
        """Write the token as indented JSON and restrict it to mode 0600."""
        payload = {
            "access_token": token.access_token,
            "refresh_token": token.refresh_token,
            "token_type": token.token_type,
            "expiry": format_expiry(token.expiry) if token.expiry else None,
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2)
                fh.write("\n")
            os.chmod(self.path, 0o600)
        except OSError as e:
            raise TokenStoreError(f"Cannot write token file {self.path}: {e}") from e
        logger.debug("Token saved to %s", self.path)
