"""
iCalendar (RFC 5545) codec.
"""

from tempus.ics.decoder import DecodeResult
from tempus.ics.decoder import SoftError
from tempus.ics.decoder import decode
from tempus.ics.decoder import parse_duration_minutes
from tempus.ics.encoder import encode
from tempus.models import minutes_between

__all__ = [
    "DecodeResult",
    "SoftError",
    "decode",
    "encode",
    "minutes_between",
    "parse_duration_minutes",
]
