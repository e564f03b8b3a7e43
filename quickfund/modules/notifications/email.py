import asyncio
import logging
from typing import Optional

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from quickfund.core.config import settings

logger = logging.getLogger(__name__)


class EmailService:
    """Transactional email via SendGrid"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        from_email: Optional[str] = None,
        simulated_delay: Optional[float] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.SENDGRID_API_KEY
        self.from_email = from_email or settings.SENDGRID_FROM_EMAIL
        self.simulated_delay = (
            simulated_delay if simulated_delay is not None else settings.EMAIL_SIMULATED_DELAY_SECONDS
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def send(self, to_email: str, subject: str, body: str) -> Optional[str]:
        """
        Send a plain email and return the provider message id.

        Without an API key the send is skipped after the simulated latency and
        None is returned.
        """
        if not self.configured:
            logger.warning(f"SendGrid not configured, skipping email to {to_email}")
            if self.simulated_delay:
                await asyncio.sleep(self.simulated_delay)
            return None

        message = Mail(
            from_email=(self.from_email, settings.SENDGRID_FROM_NAME),
            to_emails=to_email,
            subject=subject,
            html_content=f"<p>{body}</p>",
        )

        client = SendGridAPIClient(self.api_key)
        response = await asyncio.to_thread(client.send, message)

        message_id = response.headers.get("X-Message-Id", "")
        logger.info(f"Email sent successfully to {to_email}")
        return message_id
