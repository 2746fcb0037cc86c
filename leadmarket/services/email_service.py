"""
Transactional email via the SMTP2GO JSON API.

send_email() retries transient failures (5xx, network) with 1s/2s/4s backoff
and gives up immediately on permanent ones (4xx).
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Union

import httpx

from leadmarket.core.config import Settings
from leadmarket.core.errors import PermanentProviderError, ProviderError, TransientProviderError

logger = logging.getLogger(__name__)

BACKOFF_SECONDS = (1, 2, 4)


@dataclass(frozen=True)
class EmailResult:
    success: bool
    error: Optional[str] = None
    attempts: int = 0
    permanent: bool = False


class EmailClient:
    def __init__(
        self,
        settings: Settings,
        http_client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings
        self._http = http_client or httpx.Client(timeout=settings.email_timeout_seconds)
        self._sleep = sleep

    def close(self):
        self._http.close()

    def _post(self, recipients: List[str], subject: str, html_body: str) -> dict:
        """Single delivery attempt. Raises a ProviderError subclass on failure."""
        if not self.settings.smtp2go_api_key:
            raise PermanentProviderError("SMTP2GO_API_KEY not configured")

        payload = {
            "sender": self.settings.email_sender,
            "to": recipients,
            "subject": subject,
            "html_body": html_body,
        }
        try:
            response = self._http.post(
                self.settings.smtp2go_api_url,
                json=payload,
                headers={"X-Smtp2go-Api-Key": self.settings.smtp2go_api_key},
            )
        except httpx.HTTPError as e:
            raise TransientProviderError(f"Network error: {e}") from e

        if response.status_code >= 500:
            raise TransientProviderError(f"Email provider returned {response.status_code}")
        if response.status_code >= 400:
            raise PermanentProviderError(f"Email provider rejected request: {response.status_code} {response.text[:200]}")
        try:
            return response.json()
        except ValueError:
            return {}

    def send_email(self, to: Union[str, List[str]], subject: str, html_body: str) -> EmailResult:
        """
        Send one email with bounded retry.

        Args:
            to: Recipient address or list of addresses
            subject: Subject line
            html_body: Rendered HTML body

        Returns:
            EmailResult(success, error); never raises for provider failures
        """
        recipients = [to] if isinstance(to, str) else list(to)
        attempts = 0
        last_error: Optional[ProviderError] = None

        for attempt in range(self.settings.email_max_retries + 1):
            attempts += 1
            try:
                self._post(recipients, subject, html_body)
                logger.info(f"Email sent: to={', '.join(recipients)}, subject={subject!r}, attempts={attempts}")
                return EmailResult(success=True, attempts=attempts)
            except PermanentProviderError as e:
                logger.error(f"Email permanently failed: to={', '.join(recipients)}, error={e.message}")
                return EmailResult(success=False, error=e.message, attempts=attempts, permanent=True)
            except TransientProviderError as e:
                last_error = e
                if attempt < self.settings.email_max_retries:
                    delay = BACKOFF_SECONDS[min(attempt, len(BACKOFF_SECONDS) - 1)]
                    logger.warning(f"Email attempt {attempts} failed ({e.message}), retrying in {delay}s")
                    self._sleep(delay)

        logger.error(f"Email failed after {attempts} attempts: to={', '.join(recipients)}, error={last_error.message}")
        return EmailResult(success=False, error=last_error.message, attempts=attempts)
