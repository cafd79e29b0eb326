"""
Transactional e-mail through the Resend HTTP API.

Configured with ``RESEND_API_KEY`` and ``MAIL_FROM``. When either is
missing the sender reports itself as unconfigured and callers decide what
to do (queue, mark, skip).
"""

import logging
import os
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"

# One pooled HTTP session for every EmailService
_http = requests.Session()


class EmailSendError(RuntimeError):
    pass


class EmailService:
    def __init__(
        self,
        api_key: Optional[str] = None,
        mail_from: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = (api_key if api_key is not None else os.getenv("RESEND_API_KEY") or "").strip()
        self.mail_from = (mail_from if mail_from is not None else os.getenv("MAIL_FROM") or "").strip()
        self.http = session or _http

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.mail_from)

    def _timeout_seconds(self) -> float:
        try:
            return float(os.getenv("MAIL_SEND_TIMEOUT_SECONDS", "10") or 10)
        except ValueError:
            return 10.0

    def send(self, to: str, subject: str, text: str, html: Optional[str] = None) -> Dict[str, Any]:
        """Send one message. Raises ``EmailSendError`` on provider failure."""
        if not self.configured:
            raise EmailSendError("EMAIL_NOT_CONFIGURED")
        payload: Dict[str, Any] = {
            "from": self.mail_from,
            "to": [to],
            "subject": subject,
            "text": text,
        }
        if html:
            payload["html"] = html
        try:
            resp = self.http.post(
                RESEND_API_URL,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json=payload,
                timeout=self._timeout_seconds(),
            )
        except requests.RequestException as e:
            logger.error(f"Resend request failed for {to}: {e}")
            raise EmailSendError(str(e)) from e
        try:
            data = resp.json() if resp.content else {}
        except ValueError:
            data = {}
        if resp.status_code >= 400:
            message = data.get("message") if isinstance(data, dict) else None
            raise EmailSendError(str(message or f"HTTP {resp.status_code}"))
        return data if isinstance(data, dict) else {}
