"""Building and dispatching contact and group emails."""

import logging
from dataclasses import dataclass
from typing import Iterable

from .models import Category, Contact

logger = logging.getLogger(__name__)

EMAIL_SENT = "Success: Email Sent!"
EMAIL_FAILED = "Error: Email Failed to Send."


@dataclass
class EmailMessage:
    """An email about to be sent; never persisted."""

    recipients: str
    subject: str = ""
    body: str = ""


@dataclass
class SendResult:
    """Whether a message left through the transport."""

    sent: bool
    error: str | None = None

    @property
    def message(self) -> str:
        """Status text shown to the user after the redirect."""
        return EMAIL_SENT if self.sent else EMAIL_FAILED


def build_group_message(
    category: Category, contacts: Iterable[Contact]
) -> EmailMessage:
    """
    Prepare a message to every member of a category.

    Args:
        category (Category): Target category.
        contacts (Iterable[Contact]): Members of the category.

    Returns:
        EmailMessage: Recipients joined by ``;`` and a default subject.
    """
    return EmailMessage(
        recipients=";".join(contact.email for contact in contacts),
        subject=f"Group Message: {category.name}",
    )


def build_contact_message(contact: Contact) -> EmailMessage:
    """Prepare a message to a single contact."""
    return EmailMessage(recipients=contact.email)


async def dispatch(sender, message: EmailMessage) -> SendResult:
    """
    Hand a message to the mail transport.

    Transport errors are logged and reported as a failed ``SendResult``;
    they never propagate to the request handler.

    Args:
        sender (EmailSender): Mail transport.
        message (EmailMessage): Message to send.

    Returns:
        SendResult: Outcome of the send.
    """
    try:
        await sender.send_email(message.recipients, message.subject, message.body)
    except Exception as exc:
        logger.exception("Email to %s failed", message.recipients)
        return SendResult(sent=False, error=str(exc))
    logger.info("Email sent to %s", message.recipients)
    return SendResult(sent=True)
