import logging
from typing import Optional

import requests
import resend
from resend.exceptions import ResendError

from errors import MailDeliveryError

logger = logging.getLogger(__name__)

TEMPLATES = {
    "email_verification": (
        "Verify your e-mail address",
        "<p>Hi {name},</p><p>Confirm your account by opening "
        "<a href=\"{url}\">this link</a>. It expires in 24 hours.</p>",
    ),
    "password_reset": (
        "Reset your password",
        "<p>Hi {name},</p><p>Choose a new password <a href=\"{url}\">here</a>. "
        "The link expires in 10 minutes. Ignore this e-mail if you did not ask for it.</p>",
    ),
}


class ResendMailer:
    """Sends transactional e-mail through Resend.

    Without an API key the message is only logged, which keeps local
    development usable.
    """

    def __init__(self, api_key: Optional[str], sender: str):
        self.sender = sender
        self.enabled = bool(api_key)
        if api_key:
            resend.api_key = api_key

    def send(self, template: str, to: str, name: str, url: str) -> None:
        subject, html = TEMPLATES[template]
        if not self.enabled:
            logger.info("E-mail '%s' to %s not sent (RESEND_API_KEY unset): %s", subject, to, url)
            return
        try:
            resend.Emails.send({
                "from": self.sender,
                "to": [to],
                "subject": subject,
                "html": html.format(name=name, url=url),
            })
        except (ResendError, requests.RequestException) as e:
            logger.error("Resend delivery to %s failed: %s", to, e)
            raise MailDeliveryError(to, str(e))
