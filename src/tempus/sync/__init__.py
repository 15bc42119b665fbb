"""
CalendarSyncClient: decode an ICS payload and push its events to the remote API.
"""

import logging
import threading
from urllib.parse import quote

import requests

from tempus.auth.device_flow import TokenManager
from tempus.ics.decoder import decode
from tempus.models import DEFAULT_CALENDAR_BASE_URL
from tempus.models import EventInsertError
from tempus.models import Event
from tempus.models import ImportResult
from tempus.models import OperationCancelled
from tempus.models import ValidationError
from tempus.sync.payload import event_to_payload


class CalendarSyncClient:
    """Inserts decoded events one at a time, stopping at the first failure."""

    def __init__(
        self,
        token_manager: TokenManager,
        base_url: str = DEFAULT_CALENDAR_BASE_URL,
        session: requests.Session | None = None,
        timeout: float = 30.0,
    ):
        self.token_manager = token_manager
        self.base_url = base_url.rstrip("/")
        self.session = session or token_manager.session
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

    def events_url(self, calendar_id: str) -> str:
        return f"{self.base_url}/calendars/{quote(calendar_id, safe='')}/events"

    def import_ics(
        self, calendar_id: str, ics_text: str, cancel: threading.Event | None = None
    ) -> ImportResult:
        """Decode ``ics_text`` and insert every event into ``calendar_id``."""
        if not calendar_id.strip():
            raise ValidationError("Calendar ID is required")
        if not ics_text.strip():
            raise ValidationError("ICS payload is empty")

        self.token_manager.ensure_token(cancel)

        decoded = decode(ics_text)
        for warning in decoded.warnings:
            self.logger.warning("Skipped ICS field: %s", warning)
        if not decoded.events:
            raise ValidationError("No events found in ICS payload")

        result = ImportResult(warnings=list(decoded.warnings))
        for event in decoded.events:
            if cancel is not None and cancel.is_set():
                raise OperationCancelled(
                    f"Import cancelled after {result.inserted} event(s)"
                )
            try:
                event_id = self.insert_event(calendar_id, event)
            except EventInsertError as e:
                e.inserted = result.inserted
                raise
            result.inserted += 1
            result.event_ids.append(event_id)

        self.logger.info(
            "Imported %d event(s) into %s", result.inserted, calendar_id
        )
        return result

    def insert_event(self, calendar_id: str, event: Event) -> str:
        """POST one event; returns the remote event id (may be empty)."""
        token = self.token_manager.ensure_token()
        url = self.events_url(calendar_id)
        try:
            resp = self.session.post(
                url,
                json=event_to_payload(event),
                headers={"Authorization": token.authorization},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise EventInsertError(f"Insert of {event.summary!r} failed: {e}") from e

        if not resp.ok:
            raise EventInsertError(
                f"Insert of {event.summary!r} failed ({resp.status_code}): {resp.text.strip()}",
                status_code=resp.status_code,
                body=resp.text,
            )

        try:
            event_id = str(resp.json().get("id") or "")
        except (ValueError, AttributeError):
            event_id = ""
        self.logger.debug("Inserted event %s as %s", event.uid, event_id or "<no id>")
        return event_id
