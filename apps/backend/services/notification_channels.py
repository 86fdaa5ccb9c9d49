"""Channel adapters bound to settings: Slack chat and SMTP email."""
from __future__ import annotations

from apps.backend.clients.slack import slack_post_message
from apps.backend.config import Settings, get_settings
from apps.backend.services import email as email_sender
from apps.backend.services.notification_errors import ChannelNotConfigured


class NotificationChannels:
    """Send operations for both channels; each raises on delivery failure."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "NotificationChannels":
        return cls(settings or get_settings())

    @property
    def slack_enabled(self) -> bool:
        return bool(self.settings.slack_bot_token)

    @property
    def email_enabled(self) -> bool:
        return bool(self.settings.smtp_host and self.settings.email_from)

    @property
    def message_domain(self) -> str:
        return (self.settings.email_from or "").rpartition("@")[2] or "helpdesk.local"

    def post_chat(
        self,
        *,
        channel: str | None,
        text: str,
        blocks: list[dict] | None = None,
        thread_ts: str | None = None,
    ) -> tuple[str, str]:
        """Post to Slack; returns ``(channel_id, ts)``."""
        if not self.slack_enabled:
            raise ChannelNotConfigured("slack")
        target = channel or self.settings.slack_default_channel
        data = slack_post_message(
            self.settings.slack_bot_token,
            target,
            text,
            blocks=blocks,
            thread_ts=thread_ts,
            timeout=self.settings.notify_timeout_seconds,
        )
        return str(data.get("channel") or target), str(data.get("ts") or "")

    def send_email(
        self,
        *,
        to: list[str],
        subject: str,
        text: str,
        html: str = "",
        message_id: str | None = None,
        in_reply_to: str | None = None,
    ) -> str:
        """Send via SMTP; returns the Message-ID used."""
        if not self.email_enabled:
            raise ChannelNotConfigured("email")
        s = self.settings
        return email_sender.send_email(
            host=s.smtp_host,
            port=s.smtp_port,
            username=s.smtp_user,
            password=s.smtp_password,
            secure=s.smtp_secure,
            from_email=s.email_from,
            from_name=s.email_from_name,
            to_emails=to,
            subject=subject,
            html=html,
            text=text,
            message_id=message_id,
            in_reply_to=in_reply_to,
            timeout=s.notify_timeout_seconds,
        )
