"""ZeptoMail implementation of EmailProvider.

Each action-link email has an HTML and a plain-text Jinja2 template under
templates/emails/. The rendered message is posted to the ZeptoMail send API.
Delivery problems (no API token, a non-2xx answer, transport errors) are
logged and reported as ``False``.
"""

import os
from typing import Optional

import httpx
from jinja2 import Environment, FileSystemLoader, select_autoescape

from config import EmailSettings
from infrastructure.http_client import HttpClient
from shared.logging import get_logger
from shared.validators import mask_email

log = get_logger(__name__)

_TEMPLATE_DIR = os.path.join(
    os.path.dirname(os.path.dirname(os.path.dirname(__file__))),
    "templates",
    "emails",
)

_AUTH_SCHEME = "Zoho-enczapikey"

# template stem -> subject prefix
_ACTION_MAILS = {
    "verification": "Verify your account",
    "password_reset": "Reset your password",
}


class ZeptoMailProvider:
    def __init__(
        self,
        settings: EmailSettings,
        http_client: HttpClient,
        app_name: str = "Accounts",
        link_ttl_minutes: int = 10,
        template_dir: str = _TEMPLATE_DIR,
    ) -> None:
        self._settings = settings
        self._http = http_client
        self._app_name = app_name
        self._link_ttl_minutes = link_ttl_minutes
        self._jinja = Environment(
            loader=FileSystemLoader(template_dir),
            autoescape=select_autoescape(["html"]),
        )

    async def send_verification_email(
        self, email: str, user_name: Optional[str], link: str
    ) -> bool:
        return await self._send_action_mail("verification", email, user_name, link)

    async def send_password_reset_email(
        self, email: str, user_name: Optional[str], link: str
    ) -> bool:
        return await self._send_action_mail("password_reset", email, user_name, link)

    async def _send_action_mail(
        self, stem: str, email: str, user_name: Optional[str], link: str
    ) -> bool:
        context = {
            "user_name": user_name,
            "link": link,
            "app_name": self._app_name,
            "ttl_minutes": self._link_ttl_minutes,
        }
        subject = f"{_ACTION_MAILS[stem]} - {self._app_name}"
        payload = {
            "from": {
                "address": self._settings.zepto_from_email,
                "name": self._settings.zepto_from_name,
            },
            "to": [{"email_address": {"address": email, "name": user_name or email}}],
            "subject": subject,
            "htmlbody": self._jinja.get_template(f"{stem}.html").render(context),
            "textbody": self._jinja.get_template(f"{stem}.txt").render(context),
        }
        return await self._post(payload, email, subject)

    def _auth_header(self) -> str:
        token = self._settings.zepto_api_token
        if token.startswith(f"{_AUTH_SCHEME} "):
            return token
        return f"{_AUTH_SCHEME} {token}"

    async def _post(self, payload: dict, email: str, subject: str) -> bool:
        masked = mask_email(email)
        if not self._settings.zepto_api_token:
            log.error("email_not_sent", reason="token_not_configured", to_email=masked)
            return False

        try:
            response = await self._http.post_json(
                self._settings.zepto_api_url,
                payload,
                headers={"Authorization": self._auth_header()},
            )
        except httpx.HTTPError as e:
            log.error(
                "email_send_error",
                to_email=masked,
                subject=subject,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        if response.is_success:
            log.info("email_sent", to_email=masked, subject=subject)
            return True
        log.error(
            "email_rejected",
            to_email=masked,
            subject=subject,
            status_code=response.status_code,
            response=response.text[:200],
        )
        return False
