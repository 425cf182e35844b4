"""Outbound mail transport built on FastAPI-Mail."""

from fastapi_mail import FastMail, MessageSchema, MessageType

from .core import get_mail_config


def split_recipients(to: str) -> list[str]:
    """Split a ``;``-joined recipient string into addresses."""
    return [address.strip() for address in to.split(";") if address.strip()]


class EmailSender:
    """Sends HTML email through the configured SMTP server."""

    def __init__(self, mail: FastMail | None = None):
        self.mail = mail or FastMail(get_mail_config())

    async def send_email(self, to: str, subject: str, html_body: str) -> None:
        """
        Send one HTML message.

        Args:
            to (str): Recipient address, or several joined by ``;``.
            subject (str): Message subject.
            html_body (str): HTML body.

        Raises:
            ValueError: If ``to`` holds no address.
            Exception: Whatever the SMTP client raises on failure.
        """
        recipients = split_recipients(to)
        if not recipients:
            raise ValueError("No recipients")

        message = MessageSchema(
            subject=subject,
            recipients=recipients,
            body=html_body,
            subtype=MessageType.html,
        )
        await self.mail.send_message(message)


def get_email_sender() -> EmailSender:
    """FastAPI dependency returning the mail transport."""
    return EmailSender()
