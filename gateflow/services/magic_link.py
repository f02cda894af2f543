"""
Magic links for guest purchases.

After a guest checkout the buyer receives a signed, short-lived link; opening
it signs them in and claims every purchase made with that email.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import urlencode

import jwt

from gateflow.services.structured_logging import get_logger, mask_email

logger = get_logger('gateflow.access')

ISSUER = 'gateflow'
AUDIENCE = 'gateflow-claim'


class MagicLinkService:

    def __init__(self, secret: str, ttl_minutes: int, base_url: str, emailer=None):
        self.secret = secret
        self.ttl_minutes = ttl_minutes
        self.base_url = base_url.rstrip('/')
        self.emailer = emailer

    def create_token(self, email: str) -> dict:
        now = datetime.now(timezone.utc)
        exp = now + timedelta(minutes=self.ttl_minutes)
        payload = {
            'sub': email.strip().lower(),
            'scope': 'claim_purchases',
            'iss': ISSUER,
            'aud': [AUDIENCE],
            'iat': now,
            'exp': exp,
        }
        return {
            'token': jwt.encode(payload, self.secret, algorithm='HS256'),
            'expires_at': exp.isoformat(),
        }

    def verify_token(self, token: str) -> Optional[str]:
        """Email the token was issued for, or None when invalid or expired."""
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=['HS256'],
                issuer=ISSUER,
                audience=[AUDIENCE],
            )
        except jwt.ExpiredSignatureError:
            logger.warning('Magic token expired')
            return None
        except jwt.InvalidTokenError as e:
            logger.warning(f'Invalid magic token: {e}')
            return None

        if payload.get('scope') != 'claim_purchases':
            return None
        return payload.get('sub')

    def build_url(self, token: str) -> str:
        return f"{self.base_url}/auth/magic?{urlencode({'token': token})}"

    def send(self, email: str) -> bool:
        url = self.build_url(self.create_token(email)['token'])
        if self.emailer is None:
            logger.warning('No emailer configured, magic link not sent', email=mask_email(email))
            return False

        html = (
            "<p>Thanks for your purchase!</p>"
            f"<p><a href=\"{url}\">Access your products</a></p>"
            f"<p>This link expires in {self.ttl_minutes} minutes.</p>"
        )
        sent = self.emailer.send_email(email, 'Access your purchase', html)
        if sent:
            logger.info('Magic link sent', email=mask_email(email))
        return sent
