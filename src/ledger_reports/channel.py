"""Outbound WhatsApp channel over the Twilio Messages API."""

import re
from dataclasses import dataclass
from typing import Protocol

import httpx

from .locales import DEFAULT_LOCALE
from .logging_setup import get_logger


TWILIO_API_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"

DEFAULT_COUNTRY_CODE = "55"

logger = get_logger(__name__)


@dataclass(frozen=True)
class SendResult:
    success: bool
    error: str | None = None


class MessageChannel(Protocol):
    """Anything that can deliver a text body to a destination."""

    @property
    def configured(self) -> bool: ...

    async def send(self, destination: str, body: str) -> SendResult: ...


def normalize_destination(raw: str, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """Convert a stored phone number to a WhatsApp address.

    Non-digits are stripped and the country code is prefixed when missing:
    "(11) 98765-4321" -> "whatsapp:+5511987654321".

    Raises:
        ValueError: If the number has no digits.
    """
    digits = re.sub(r"\D", "", raw or "")
    if not digits:
        raise ValueError(f"Invalid destination: {raw!r}")
    if not digits.startswith(country_code):
        digits = f"{country_code}{digits}"
    return f"whatsapp:+{digits}"


class WhatsAppChannel:
    """Send WhatsApp messages through Twilio."""

    def __init__(
        self,
        account_sid: str | None,
        auth_token: str | None,
        from_number: str | None,
        *,
        country_code: str = DEFAULT_COUNTRY_CODE,
        timeout: float = 30.0,
        not_configured_message: str = DEFAULT_LOCALE.not_configured,
    ):
        """Initialize channel.

        Args:
            account_sid: Twilio account SID.
            auth_token: Twilio auth token.
            from_number: Sender number, with or without the "whatsapp:" prefix.
            country_code: Country code prefixed to destinations lacking one.
            timeout: HTTP timeout in seconds.
            not_configured_message: Error text returned when credentials are missing.
        """
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.country_code = country_code
        self.timeout = timeout
        self.not_configured_message = not_configured_message

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    def _sender(self) -> str:
        sender = self.from_number or ""
        return sender if sender.startswith("whatsapp:") else f"whatsapp:{sender}"

    async def send(self, destination: str, body: str) -> SendResult:
        """Send one message. Delivery problems are returned, never raised."""
        if not self.configured:
            return SendResult(False, self.not_configured_message)

        try:
            to = normalize_destination(destination, self.country_code)
        except ValueError as e:
            return SendResult(False, str(e))

        url = TWILIO_API_URL.format(sid=self.account_sid)
        async with httpx.AsyncClient() as client:
            try:
                response = await client.post(
                    url,
                    data={"From": self._sender(), "To": to, "Body": body},
                    auth=(self.account_sid, self.auth_token),
                    timeout=self.timeout,
                )
            except httpx.HTTPError as e:
                logger.error("WhatsApp send to %s failed: %s", to, e)
                return SendResult(False, f"HTTP error: {e}")

        if response.status_code not in (200, 201):
            detail = _error_detail(response)
            logger.error("Twilio returned %s for %s: %s", response.status_code, to, detail)
            return SendResult(False, f"API returned status {response.status_code}: {detail}")

        try:
            payload = response.json()
        except ValueError:
            return SendResult(False, "Invalid JSON response")

        logger.debug("Queued message %s to %s", payload.get("sid"), to)
        return SendResult(True)


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return response.text
