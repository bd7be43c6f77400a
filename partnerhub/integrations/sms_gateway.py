"""
SMS Gateway — Twilio-compatible REST API.

All outbound SMS goes through this class. Direct `requests` calls in
services are forbidden.

  - Basic auth with the organization's account SID + auth token
  - Form-encoded POST to /Accounts/{sid}/Messages.json
  - Timeout: SMS_TIMEOUT_SECONDS (default 10 s), no retries; a retried
    SMS that actually went through reaches the partner twice
  - Provider and network errors come back as SmsSendResult(success=False),
    never as exceptions

Testability: pass a mock `session` to SmsGateway() in tests instead of
letting it create a real requests.Session internally.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass

import requests
from flask import current_app, has_app_context

logger = logging.getLogger(__name__)

_DEFAULT_BASE_URL = "https://api.twilio.com/2010-04-01"
_DEFAULT_TIMEOUT = 10
_DEFAULT_COUNTRY_CODE = "+81"

_PHONE_STRIP_RE = re.compile(r"[\s\-()]")
_VALID_PHONE_RE = re.compile(r"^\+?[1-9]\d{9,14}$")


@dataclass(frozen=True)
class SmsCredentials:
    """Decrypted per-organization provider credentials."""

    account_sid: str
    auth_token: str
    phone_number: str

    @property
    def is_complete(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.phone_number)


@dataclass
class SmsSendResult:
    """Structured return value from SmsGateway.send_sms.

    Attributes:
        success:     True if the provider accepted the message (HTTP 2xx).
        message_id:  Provider message SID, when accepted.
        error:       Human-readable error message or None.
        status_code: HTTP status code (None on network-level failure).
        duration_ms: Round-trip latency in milliseconds.
    """

    success: bool
    message_id: str | None = None
    error: str | None = None
    status_code: int | None = None
    duration_ms: int = 0


def format_phone_number(number: str, default_country_code: str = _DEFAULT_COUNTRY_CODE) -> str:
    """Normalize a phone number to E.164-ish form.

    Numbers already starting with "+" are kept (separators removed); a
    leading trunk "0" is replaced by the default country code.
    """
    cleaned = _PHONE_STRIP_RE.sub("", number or "")
    if cleaned.startswith("+"):
        return cleaned
    if cleaned.startswith("0"):
        return f"{default_country_code}{cleaned[1:]}"
    return f"+{cleaned}" if cleaned else cleaned


def is_valid_phone_number(number: str) -> bool:
    """10-15 digits with an optional leading '+'."""
    return bool(_VALID_PHONE_RE.match(_PHONE_STRIP_RE.sub("", number or "")))


class SmsGateway:
    """Twilio-compatible SMS gateway.

    Instantiate once at module level (module-level singleton pattern).

    Usage:
        from partnerhub.integrations.sms_gateway import sms_gateway
        result = sms_gateway.send_sms(credentials, "+819012345678", "hello")
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self._session: requests.Session | None = session
        self._base_url = base_url
        self._timeout = timeout

    # ── HTTP session / settings ──────────────────────────────────────────────

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def _setting(self, explicit, key, default):
        if explicit is not None:
            return explicit
        if has_app_context():
            return current_app.config.get(key, default)
        return default

    @property
    def base_url(self) -> str:
        return self._setting(self._base_url, "SMS_API_BASE_URL", _DEFAULT_BASE_URL).rstrip("/")

    @property
    def timeout(self) -> float:
        return float(self._setting(self._timeout, "SMS_TIMEOUT_SECONDS", _DEFAULT_TIMEOUT))

    @property
    def default_country_code(self) -> str:
        return self._setting(None, "SMS_DEFAULT_COUNTRY_CODE", _DEFAULT_COUNTRY_CODE)

    # ── Send ────────────────────────────────────────────────────────────────

    def send_sms(self, credentials: SmsCredentials, to_number: str, message: str) -> SmsSendResult:
        """Send one SMS.

        Returns:
            SmsSendResult — always returns (never raises). Callers check .success.
        """
        if credentials is None or not credentials.is_complete:
            return SmsSendResult(success=False, error="SMS credentials are incomplete")

        to_formatted = format_phone_number(to_number, self.default_country_code)
        if not is_valid_phone_number(to_formatted):
            return SmsSendResult(success=False, error=f"Invalid phone number: {to_number}")

        url = f"{self.base_url}/Accounts/{credentials.account_sid}/Messages.json"
        payload = {
            "To": to_formatted,
            "From": format_phone_number(credentials.phone_number, self.default_country_code),
            "Body": message,
        }

        t0 = time.perf_counter()
        try:
            resp = self.session.post(
                url,
                data=payload,
                auth=(credentials.account_sid, credentials.auth_token),
                timeout=self.timeout,
            )
        except requests.Timeout:
            logger.warning("SMS send timed out to=%s", to_formatted)
            return SmsSendResult(
                success=False,
                error=f"Request timed out after {self.timeout}s",
                duration_ms=int(self.timeout * 1000),
            )
        except requests.RequestException as exc:
            logger.warning("SMS network error to=%s error=%s", to_formatted, exc)
            return SmsSendResult(success=False, error=str(exc)[:500])

        duration_ms = int((time.perf_counter() - t0) * 1000)
        body = _json_or_empty(resp)

        if resp.ok:
            logger.info("SMS sent to=%s sid=%s", to_formatted, body.get("sid"))
            return SmsSendResult(
                success=True,
                message_id=body.get("sid"),
                status_code=resp.status_code,
                duration_ms=duration_ms,
            )

        error = body.get("message") or f"HTTP {resp.status_code}: {resp.text[:500]}"
        logger.warning("SMS rejected to=%s status=%d error=%s", to_formatted, resp.status_code, error)
        return SmsSendResult(
            success=False,
            error=error,
            status_code=resp.status_code,
            duration_ms=duration_ms,
        )

    def send_escalation(
        self,
        credentials: SmsCredentials,
        to_number: str,
        task_title: str,
        days_overdue: int,
    ) -> SmsSendResult:
        """Send the one-line urgent overdue notice for a partner task."""
        return self.send_sms(credentials, to_number, escalation_message(task_title, days_overdue))


def escalation_message(task_title: str, days_overdue: int) -> str:
    return (
        f'[URGENT] Partner Hub: task "{task_title}" is {days_overdue} day(s) overdue. '
        "Please respond immediately."
    )


def _json_or_empty(resp: requests.Response) -> dict:
    try:
        data = resp.json() if resp.content else {}
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


# Module-level singleton
sms_gateway = SmsGateway()
