"""
Email delivery over the SendGrid v3 REST API.

send() never raises: delivery problems are logged and reported as False so
callers can leave their records untouched and retry on the next cycle.
Without SENDGRID_API_KEY the message is logged and not sent.
"""

import asyncio

import httpx

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"

REQUEST_TIMEOUT = 15  # seconds
MAX_RETRIES = 3
BACKOFF_FACTOR = 1
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


class EmailDeliveryError(Exception):
    """SendGrid rejected the message or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SendGridEmailSender:
    def __init__(
        self,
        api_key: str | None = None,
        from_email: str | None = None,
        from_name: str | None = None,
        client: httpx.AsyncClient | None = None,
        sleep=asyncio.sleep,
    ):
        self.api_key = api_key if api_key is not None else settings.SENDGRID_API_KEY
        self.from_email = from_email or settings.EMAIL_FROM
        self.from_name = from_name or settings.EMAIL_FROM_NAME
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(REQUEST_TIMEOUT))
        self._sleep = sleep

        if not self.configured:
            logger.warning("SendGrid not configured - emails will be logged but not sent")

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def close(self) -> None:
        await self._client.aclose()

    def _payload(self, to: str, subject: str, html: str) -> dict:
        return {
            "personalizations": [{"to": [{"email": to}], "subject": subject}],
            "from": {"email": self.from_email, "name": self.from_name},
            "content": [{"type": "text/html", "value": html}],
        }

    async def _post(self, payload: dict) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                response = await self._client.post(SENDGRID_SEND_URL, headers=headers, json=payload)
            except httpx.RequestError as e:
                if attempt >= MAX_RETRIES:
                    raise EmailDeliveryError(f"SendGrid unreachable: {e}") from e
                await self._sleep(BACKOFF_FACTOR * (2 ** (attempt - 1)))
                continue

            if response.status_code in RETRY_STATUS_CODES and attempt < MAX_RETRIES:
                backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                logger.debug(
                    "SendGrid retrying request",
                    attempt=attempt,
                    status_code=response.status_code,
                    backoff_seconds=backoff,
                )
                await self._sleep(backoff)
                continue

            if response.status_code not in (200, 202):
                raise EmailDeliveryError(
                    f"SendGrid returned {response.status_code}: {response.text[:200]}",
                    status_code=response.status_code,
                )
            return response

        raise EmailDeliveryError("SendGrid retry loop exhausted")

    async def send(self, to: str, subject: str, html: str) -> bool:
        if not self.configured:
            logger.info(
                "Email not sent - no SendGrid API key",
                to=to,
                subject=subject,
                preview=html[:200],
            )
            return False

        try:
            response = await self._post(self._payload(to, subject, html))
        except EmailDeliveryError as e:
            logger.error("Email send failed", to=to, status_code=e.status_code, error=str(e))
            return False

        logger.info("Email sent", to=to, status_code=response.status_code)
        return True
