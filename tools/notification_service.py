"""
Notification Service Tool
Delivers missed-dose and help-request alerts to caretakers (Email, SMS)
"""

import logging
import smtplib
from typing import Dict, List, Optional
from dataclasses import dataclass
from datetime import datetime, timezone
from email.message import EmailMessage
from enum import Enum

import httpx

from config import settings


logger = logging.getLogger(__name__)


class NotificationChannel(str, Enum):
    """Available notification channels"""
    EMAIL = "email"
    SMS = "sms"


class NotificationType(str, Enum):
    """Types of notifications"""
    MISSED_DOSE_ALERT = "missed_dose_alert"
    HELP_REQUEST = "help_request"


@dataclass
class NotificationResult:
    """Result of sending a notification"""
    success: bool
    channel: NotificationChannel
    recipient: str
    message_id: Optional[str] = None
    delivered_at: Optional[datetime] = None
    error: Optional[str] = None


# Grouped items: {"2026-10-17 08:00": ["Aspirin - 1 tablet", ...]}
GroupedItems = Dict[str, List[str]]


# Notification templates
NOTIFICATION_TEMPLATES: Dict[NotificationType, Dict[str, str]] = {
    NotificationType.MISSED_DOSE_ALERT: {
        "title": "Missed Dose Alert",
        "email_subject": "Missed medicine alert for {elder}",
        "email_body": """
Hello,

{elder} has missed the following scheduled dose(s):

{groups}

Please check in with them.

- CareWatch
        """,
        "sms": "CareWatch: {elder} missed dose(s): {inline_groups}",
    },
    NotificationType.HELP_REQUEST: {
        "title": "Emergency Help Request",
        "email_subject": "Emergency help request from {elder}",
        "email_body": """
Hello,

Elder {elder} has requested emergency help!

Please contact them right away.

- CareWatch
        """,
        "sms": "CareWatch: Elder {elder} has requested emergency help!",
    }
}


def format_groups(grouped: GroupedItems) -> str:
    """Multi-line block, one scheduled time per paragraph"""
    blocks = []
    for when, entries in grouped.items():
        lines = [f"Scheduled at {when}:"]
        lines.extend(f"  - {entry}" for entry in entries)
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def format_inline_groups(grouped: GroupedItems) -> str:
    """Single-line form used for SMS and in-app messages"""
    return "; ".join(
        f"{when}: {', '.join(entries)}" for when, entries in grouped.items()
    )


class NotificationService:
    """
    Outbound messaging for caretaker alerts.

    Email goes through SMTP when SMTP_HOST is configured and is logged
    (simulated delivery) otherwise. SMS uses the Twilio REST API and
    reports a failure when Twilio is not configured.
    """

    TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"

    def __init__(self, http_client: Optional[httpx.Client] = None):
        self.templates = NOTIFICATION_TEMPLATES
        self._sms_enabled = bool(settings.TWILIO_ACCOUNT_SID and settings.TWILIO_AUTH_TOKEN)
        self._smtp_enabled = bool(settings.SMTP_HOST)
        self._http_client = http_client

    def send_grouped_alert(
        self,
        recipients: List[str],
        elder_label: str,
        grouped: GroupedItems,
        channel: NotificationChannel = NotificationChannel.EMAIL
    ) -> List[NotificationResult]:
        """
        Send one grouped missed-dose alert to each recipient address.

        Args:
            recipients: Email addresses or phone numbers, matching the channel
            elder_label: Display name of the elder
            grouped: Scheduled time label -> medicine descriptions

        Returns:
            One result per recipient
        """
        context = {
            "elder": elder_label,
            "groups": format_groups(grouped),
            "inline_groups": format_inline_groups(grouped)
        }
        return self._deliver(recipients, channel, NotificationType.MISSED_DOSE_ALERT, context)

    def send_help_request(
        self,
        recipients: List[str],
        elder_label: str,
        channel: NotificationChannel = NotificationChannel.EMAIL
    ) -> List[NotificationResult]:
        """Send the elder's emergency help request to each recipient address"""
        return self._deliver(recipients, channel, NotificationType.HELP_REQUEST, {"elder": elder_label})

    def _deliver(
        self,
        recipients: List[str],
        channel: NotificationChannel,
        notification_type: NotificationType,
        context: Dict[str, str]
    ) -> List[NotificationResult]:
        results = []
        for recipient in recipients:
            try:
                if channel == NotificationChannel.EMAIL:
                    result = self._send_email(recipient, notification_type, context)
                elif channel == NotificationChannel.SMS:
                    result = self._send_sms(recipient, notification_type, context)
                else:
                    result = NotificationResult(
                        success=False,
                        channel=channel,
                        recipient=recipient,
                        error=f"Unsupported channel: {channel}"
                    )
            except Exception as e:
                logger.error(f"Error sending {channel.value} alert to {recipient}: {e}")
                result = NotificationResult(
                    success=False,
                    channel=channel,
                    recipient=recipient,
                    error=str(e)
                )
            results.append(result)
        return results

    def _format(self, notification_type: NotificationType, key: str, context: Dict[str, str]) -> str:
        return self.templates[notification_type][key].format(**context).strip()

    def _send_email(
        self,
        recipient: str,
        notification_type: NotificationType,
        context: Dict[str, str]
    ) -> NotificationResult:
        """Send email notification"""
        subject = self._format(notification_type, "email_subject", context)
        body = self._format(notification_type, "email_body", context)
        now = datetime.now(timezone.utc)

        if not self._smtp_enabled:
            logger.info(f"[EMAIL] (simulated) To {recipient}: {subject}")
            return NotificationResult(
                success=True,
                channel=NotificationChannel.EMAIL,
                recipient=recipient,
                message_id=f"email_{now.timestamp()}",
                delivered_at=now
            )

        message = EmailMessage()
        message["From"] = settings.ALERT_SENDER_EMAIL
        message["To"] = recipient
        message["Subject"] = subject
        message.set_content(body)

        try:
            with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=10) as smtp:
                if settings.SMTP_USE_TLS:
                    smtp.starttls()
                if settings.SMTP_USERNAME:
                    smtp.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD or "")
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Email send error to {recipient}: {e}")
            return NotificationResult(
                success=False,
                channel=NotificationChannel.EMAIL,
                recipient=recipient,
                error=str(e)
            )

        logger.info(f"[EMAIL] To {recipient}: {subject}")
        return NotificationResult(
            success=True,
            channel=NotificationChannel.EMAIL,
            recipient=recipient,
            message_id=message.get("Message-ID"),
            delivered_at=datetime.now(timezone.utc)
        )

    def _send_sms(
        self,
        recipient: str,
        notification_type: NotificationType,
        context: Dict[str, str]
    ) -> NotificationResult:
        """Send SMS notification"""
        if not self._sms_enabled:
            return NotificationResult(
                success=False,
                channel=NotificationChannel.SMS,
                recipient=recipient,
                error="SMS not configured"
            )

        body = self._format(notification_type, "sms", context)
        url = self.TWILIO_MESSAGES_URL.format(sid=settings.TWILIO_ACCOUNT_SID)
        client = self._http_client or httpx.Client(timeout=10.0)
        try:
            response = client.post(
                url,
                data={"To": recipient, "From": settings.TWILIO_PHONE_NUMBER, "Body": body},
                auth=(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN)
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"SMS send error to {recipient}: {e}")
            return NotificationResult(
                success=False,
                channel=NotificationChannel.SMS,
                recipient=recipient,
                error=str(e)
            )
        finally:
            if self._http_client is None:
                client.close()

        logger.info(f"[SMS] To {recipient}: {body[:50]}...")
        return NotificationResult(
            success=True,
            channel=NotificationChannel.SMS,
            recipient=recipient,
            message_id=response.json().get("sid"),
            delivered_at=datetime.now(timezone.utc)
        )


# Singleton instance
notification_service = NotificationService()
