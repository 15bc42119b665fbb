"""
OAuth 2.0 device authorization grant (RFC 8628) and token lifecycle.

TokenManager is the only object that holds the in-memory token.  Every
request for a usable token goes through ensure_token(), which serializes
callers with a single lock held for the whole call, network I/O included.

Fallback chain, first success wins:

  1. in-memory token still valid
  2. refresh the in-memory refresh token
  3. reload the token file (another process may have refreshed it), use it
     if valid or refresh its refresh token
  4. interactive device flow
"""

import logging
import threading
from collections.abc import Callable
from datetime import datetime
from datetime import timedelta
from datetime import timezone

import requests

from tempus.auth.token import TokenStore
from tempus.models import DeviceCodeExpiredError
from tempus.models import DeviceFlowError
from tempus.models import GoogleConfig
from tempus.models import OperationCancelled
from tempus.models import Token
from tempus.models import TokenRefreshError
from tempus.models import TokenStoreError

logger = logging.getLogger(__name__)

DEVICE_CODE_GRANT = "urn:ietf:params:oauth:grant-type:device_code"
DEFAULT_POLL_INTERVAL = 5
SLOW_DOWN_INCREMENT = 5


class _AuthorizationPending(Exception):
    """The user has not approved the device yet; poll again later."""

    def __init__(self, slow_down: bool = False):
        super().__init__("authorization_pending")
        self.slow_down = slow_down


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _wait(cancel: threading.Event | None, seconds: float) -> bool:
    """Sleep for ``seconds``; return True as soon as ``cancel`` is set."""
    if cancel is None:
        cancel = threading.Event()
    return cancel.wait(seconds)


def _log_prompt(verification_url: str, user_code: str) -> None:
    logger.warning("Authorize Tempus at %s with code %s", verification_url, user_code)


def _body(resp: requests.Response) -> str:
    return resp.text.strip()


class TokenManager:
    """Owns the OAuth token and hands out valid copies of it."""

    def __init__(
        self,
        config: GoogleConfig,
        store: TokenStore | None = None,
        session: requests.Session | None = None,
        clock: Callable[[], datetime] | None = None,
        wait: Callable[[threading.Event | None, float], bool] | None = None,
        on_prompt: Callable[[str, str], None] | None = None,
    ):
        self.config = config
        self.store = store or TokenStore(config.token_file)
        self.session = session or requests.Session()
        self._clock = clock or _utcnow
        self._wait = wait or _wait
        self._on_prompt = on_prompt or _log_prompt
        self._lock = threading.Lock()
        self._token: Token | None = None

    @property
    def token(self) -> Token | None:
        return self._token

    def ensure_token(self, cancel: threading.Event | None = None) -> Token:
        """Return a valid token, refreshing or re-authorizing as needed."""
        with self._lock:
            now = self._clock()
            if self._token is not None and self._token.valid(now):
                return self._token

            if self._token is not None and self._token.refresh_token:
                logger.debug("Access token expired, refreshing")
                try:
                    return self._adopt(self._refresh(self._token))
                except TokenRefreshError as e:
                    logger.warning("Token refresh failed: %s", e)

            stored = self._reload()
            if stored is not None:
                if stored.valid(now):
                    logger.debug("Using token reloaded from %s", self.store.path)
                    self._token = stored
                    return stored
                if stored.refresh_token:
                    logger.debug("Refreshing token reloaded from %s", self.store.path)
                    try:
                        return self._adopt(self._refresh(stored))
                    except TokenRefreshError as e:
                        logger.warning("Token refresh failed: %s", e)

            logger.info("Starting device authorization")
            return self._adopt(self._device_flow(cancel))

    # ------------------------------------------------------------------
    # Internals (lock held)
    # ------------------------------------------------------------------

    def _adopt(self, token: Token) -> Token:
        self._token = token
        self.store.save(token)
        return token

    def _reload(self) -> Token | None:
        try:
            return self.store.load()
        except TokenStoreError as e:
            logger.debug("Ignoring unreadable token file: %s", e)
            return None

    def _post(self, url: str, form: dict, error: type[Exception]) -> requests.Response:
        try:
            return self.session.post(url, data=form, timeout=self.config.timeout)
        except requests.RequestException as e:
            raise error(f"Request to {url} failed: {e}") from e

    def _json(self, resp: requests.Response, error: type[Exception]) -> dict:
        try:
            data = resp.json()
        except ValueError as e:
            raise error(f"Invalid JSON from {resp.url}: {_body(resp)}") from e
        if not isinstance(data, dict):
            raise error(f"Unexpected response from {resp.url}: {_body(resp)}")
        return data

    def _client_form(self) -> dict:
        form = {"client_id": self.config.client_id}
        if self.config.client_secret:
            form["client_secret"] = self.config.client_secret
        return form

    def _token_from(self, data: dict, previous: Token | None, error: type[Exception]) -> Token:
        access_token = str(data.get("access_token") or "")
        if not access_token:
            raise error("Token response did not include an access_token")

        now = self._clock()
        try:
            expires_in = int(data.get("expires_in") or 0)
        except (TypeError, ValueError):
            expires_in = 0
        if expires_in <= 0 and previous is not None and previous.expiry is not None:
            expiry = previous.expiry
        else:
            expiry = now + timedelta(seconds=expires_in)

        return Token(
            access_token=access_token,
            refresh_token=str(data.get("refresh_token") or "")
            or (previous.refresh_token if previous else ""),
            token_type=str(data.get("token_type") or "")
            or (previous.token_type if previous else "")
            or "Bearer",
            expiry=expiry,
        )

    def _refresh(self, current: Token) -> Token:
        form = self._client_form()
        form["grant_type"] = "refresh_token"
        form["refresh_token"] = current.refresh_token

        resp = self._post(self.config.token_endpoint, form, TokenRefreshError)
        if not resp.ok:
            raise TokenRefreshError(
                f"Token refresh failed ({resp.status_code}): {_body(resp)}"
            )
        token = self._token_from(self._json(resp, TokenRefreshError), current, TokenRefreshError)
        logger.info("Access token refreshed")
        return token

    def _device_flow(self, cancel: threading.Event | None) -> Token:
        form = {"client_id": self.config.client_id, "scope": self.config.scope}
        resp = self._post(self.config.device_endpoint, form, DeviceFlowError)
        if not resp.ok:
            raise DeviceFlowError(
                f"Device authorization failed ({resp.status_code}): {_body(resp)}"
            )
        device = self._json(resp, DeviceFlowError)

        device_code = str(device.get("device_code") or "")
        if not device_code:
            raise DeviceFlowError("Device response missing device_code")
        verification_url = str(
            device.get("verification_url") or device.get("verification_uri") or ""
        )
        user_code = str(device.get("user_code") or "")

        try:
            interval = int(device.get("interval") or 0)
            expires_in = int(device.get("expires_in") or 0)
        except (TypeError, ValueError) as e:
            raise DeviceFlowError(f"Malformed device response: {device}") from e
        if interval <= 0:
            interval = DEFAULT_POLL_INTERVAL
        deadline = self._clock() + timedelta(seconds=expires_in) if expires_in > 0 else None

        self._on_prompt(verification_url, user_code)

        attempt = 0
        while True:
            if cancel is not None and cancel.is_set():
                raise OperationCancelled("Device authorization cancelled")
            if deadline is not None and self._clock() >= deadline:
                raise DeviceCodeExpiredError(
                    "Device code expired before authorization completed"
                )

            attempt += 1
            try:
                token = self._poll(device_code)
            except _AuthorizationPending as pending:
                if pending.slow_down:
                    interval += SLOW_DOWN_INCREMENT
                logger.debug("Poll %d: authorization pending, next in %ds", attempt, interval)
                if self._wait(cancel, interval):
                    raise OperationCancelled("Device authorization cancelled") from None
                continue

            logger.info("Device authorized after %d poll(s)", attempt)
            return token

    def _poll(self, device_code: str) -> Token:
        form = self._client_form()
        form["device_code"] = device_code
        form["grant_type"] = DEVICE_CODE_GRANT

        resp = self._post(self.config.token_endpoint, form, DeviceFlowError)
        if resp.status_code == 400:
            try:
                error = str(resp.json().get("error") or "")
            except (ValueError, AttributeError):
                error = ""
            if error == "authorization_pending":
                raise _AuthorizationPending()
            if error == "slow_down":
                raise _AuthorizationPending(slow_down=True)
            raise DeviceFlowError(f"Device token request rejected: {_body(resp)}")
        if not resp.ok:
            raise DeviceFlowError(
                f"Device token request failed ({resp.status_code}): {_body(resp)}"
            )
        return self._token_from(self._json(resp, DeviceFlowError), None, DeviceFlowError)
