import logging
from html import escape
from typing import Any, Dict, Optional

import requests

from gatsishub import config
from gatsishub.exceptions import UpstreamError
from gatsishub.models.common import utcnow

logger = logging.getLogger(__name__)


class ResendClient:
    """Thin wrapper over the Resend ``/emails`` endpoint.

    The API key is looked up on every send so a missing key fails the
    request that needed it instead of the application startup.
    """

    def __init__(self, api_url: str = None, api_key: Optional[str] = None, timeout: int = None):
        self.api_url = api_url or config.RESEND_API_URL
        self._api_key = api_key
        self.timeout = timeout or config.EMAIL_TIMEOUT
        logger.debug("ResendClient initialized with api_url=%s", self.api_url)

    @property
    def api_key(self) -> Optional[str]:
        return self._api_key or config.resend_api_key()

    def send(self, payload: Dict[str, Any]) -> str:
        """Send one email and return the provider's message id."""
        key = self.api_key
        if not key:
            logger.error("RESEND_API_KEY not configured")
            raise UpstreamError("Email service not configured")

        headers = {
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        }
        try:
            resp = requests.post(self.api_url, json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("Email request to %s failed: %s", self.api_url, e)
            raise UpstreamError(
                "An error occurred while sending your message. Please try again later.",
                details=str(e),
            )

        if not resp.ok:
            try:
                body = resp.json()
            except ValueError:
                body = resp.text
            logger.warning("Resend API error status=%s body=%s", resp.status_code, body)
            raise UpstreamError("Failed to send email", details=body)

        email_id = resp.json().get("id")
        logger.info("Email sent id=%s to=%s", email_id, payload.get("to"))
        return email_id


def render_contact_email(name: str, email: str, message: str, received=None) -> str:
    received = received or utcnow()
    name_html = escape(name)
    email_html = escape(email, quote=True)
    body_html = escape(message).replace("\n", "<br>")
    return f"""<!DOCTYPE html>
<html>
  <head>
    <style>
      body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px; }}
      .header {{ background-color: #e6af2e; color: white; padding: 20px; text-align: center; border-radius: 8px 8px 0 0; }}
      .content {{ background-color: #f9f9f9; padding: 30px; border: 1px solid #e0e0e0; border-radius: 0 0 8px 8px; }}
      .info-row {{ margin: 15px 0; padding: 10px; background-color: white; border-left: 4px solid #e6af2e; }}
      .label {{ font-weight: bold; color: #555; display: inline-block; width: 100px; }}
      .message-box {{ background-color: white; padding: 20px; margin-top: 20px; border-radius: 4px; border: 1px solid #e0e0e0; }}
      .footer {{ text-align: center; margin-top: 20px; padding-top: 20px; border-top: 1px solid #e0e0e0; color: #666; font-size: 12px; }}
    </style>
  </head>
  <body>
    <div class="header"><h2>New Contact Form Submission</h2></div>
    <div class="content">
      <div class="info-row"><span class="label">From:</span><span>{name_html}</span></div>
      <div class="info-row"><span class="label">Email:</span><span><a href="mailto:{email_html}">{email_html}</a></span></div>
      <div class="info-row"><span class="label">Received:</span><span>{received:%A, %B %d, %Y %H:%M} UTC</span></div>
      <div class="message-box"><strong>Message:</strong><br><br>{body_html}</div>
    </div>
    <div class="footer">
      <p>This message was sent from the GatsisHub contact form</p>
      <p>You can reply directly to this email to respond to {name_html}</p>
    </div>
  </body>
</html>
"""


def send_contact_message(name: str, email: str, message: str, client: Optional[ResendClient] = None) -> str:
    client = client or ResendClient()
    return client.send({
        "from": config.CONTACT_SENDER,
        "to": config.CONTACT_INBOX,
        "reply_to": email,
        "subject": f"New Contact Form Message from {name}",
        "html": render_contact_email(name, email, message),
    })
