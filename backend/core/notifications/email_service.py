from __future__ import annotations

import logging
from email.utils import formataddr

from django.conf import settings
from django.core.mail import EmailMultiAlternatives

logger = logging.getLogger(__name__)


class EmailServiceError(Exception):
    """Raised when a notification email cannot be handed to the backend."""


class EmailService:
    """Sends ledger notifications on behalf of a city.

    The transport is whatever EMAIL_BACKEND is configured; replies go to the city's
    contact address when it has one.
    """

    def send_email(
        self,
        *,
        city,
        to_list: list[str],
        subject: str,
        text: str,
        html: str = "",
    ) -> int:
        if not to_list:
            raise EmailServiceError("Recipient list cannot be empty.")

        from_email = self.sender_address(city)
        contact_email = (getattr(city, "contact_email", "") or "").strip()
        message = EmailMultiAlternatives(
            subject=subject,
            body=text,
            from_email=from_email,
            to=to_list,
            reply_to=[contact_email] if contact_email else None,
        )
        if html:
            message.attach_alternative(html, "text/html")

        sent_count = message.send(fail_silently=False)
        logger.info(
            "notification.email.sent city_id=%s to_count=%s",
            getattr(city, "id", None),
            len(to_list),
        )
        return sent_count

    @staticmethod
    def sender_address(city) -> str:
        from_email = (getattr(settings, "DEFAULT_FROM_EMAIL", "") or "").strip()
        if not from_email:
            raise EmailServiceError("DEFAULT_FROM_EMAIL is empty.")
        from_name = (getattr(settings, "DEFAULT_FROM_NAME", "") or "").strip()
        city_name = (getattr(city, "name", "") or "").strip()
        if city_name:
            from_name = f"{from_name} {city_name}".strip() if from_name else city_name
        return formataddr((from_name, from_email)) if from_name else from_email
