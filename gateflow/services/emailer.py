# gateflow/services/emailer.py
from __future__ import annotations

import json
import re
from typing import Dict, Optional

import requests

from gateflow.services.structured_logging import get_logger, mask_email

logger = get_logger("gateflow.emailer")

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"


class Emailer:
    """Minimal SendGrid v3 client. A missing API key disables sending."""

    def __init__(self, api_key: Optional[str], from_email: str, from_name: str,
                 sandbox: bool = False, timeout: int = 10):
        self.api_key = api_key
        self.from_email = from_email
        self.from_name = from_name
        self.sandbox = sandbox
        self.timeout = timeout

    def send_email(
        self,
        to_email: str,
        subject: str,
        html: str,
        text: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> bool:
        """Returns True on 2xx."""
        if not self.api_key:
            logger.warning("SENDGRID_API_KEY not set; skipping email", to=mask_email(to_email))
            return False

        if not text:
            # simple text fallback from html
            text = (html or "").replace("<br>", "\n").replace("<br/>", "\n")
            text = text.replace("<br />", "\n").replace("</p>", "\n")
            text = re.sub(r"<[^>]+>", "", text)

        payload = {
            "personalizations": [{"to": [{"email": to_email}]}],
            "from": {"email": self.from_email, "name": self.from_name},
            "subject": subject,
            "content": [
                {"type": "text/plain", "value": text},
                {"type": "text/html", "value": html},
            ],
        }

        if self.sandbox:
            payload["mail_settings"] = {"sandbox_mode": {"enable": True}}

        req_headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if headers:
            req_headers.update(headers)

        try:
            resp = requests.post(
                SENDGRID_URL,
                headers=req_headers,
                data=json.dumps(payload),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("SendGrid request failed", error=str(e), to=mask_email(to_email))
            return False

        ok = 200 <= resp.status_code < 300
        if not ok:
            logger.error("SendGrid error", http_status=resp.status_code, body=resp.text[:500])
        return ok
