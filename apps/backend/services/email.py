"""SMTP email sender."""
from __future__ import annotations

import smtplib
from email.message import EmailMessage
from email.utils import formataddr, make_msgid

from apps.backend.services.notification_errors import EmailDeliveryError


def send_email(
    *,
    host: str,
    port: int,
    username: str,
    password: str,
    secure: str,
    from_email: str,
    from_name: str,
    to_emails: list[str],
    subject: str,
    html: str,
    text: str,
    message_id: str | None = None,
    in_reply_to: str | None = None,
    references: str | None = None,
    timeout: float = 10,
) -> str:
    """Send one message and return its Message-ID; raises EmailDeliveryError."""
    if not host or not port:
        raise EmailDeliveryError("missing_smtp")
    if not from_email:
        raise EmailDeliveryError("missing_from")
    if not to_emails:
        raise EmailDeliveryError("missing_recipient")
    msg = EmailMessage()
    msg["Subject"] = subject or "Helpdesk notification"
    msg["From"] = formataddr((from_name, from_email)) if from_name else from_email
    msg["To"] = ", ".join(to_emails)
    msg["Message-ID"] = message_id or make_msgid(domain=from_email.rpartition("@")[2] or None)
    if in_reply_to:
        msg["In-Reply-To"] = in_reply_to
        msg["References"] = references or in_reply_to
    if text:
        msg.set_content(text)
    if html:
        msg.add_alternative(html, subtype="html")
    try:
        if secure == "ssl":
            server = smtplib.SMTP_SSL(host, port, timeout=timeout)
        else:
            server = smtplib.SMTP(host, port, timeout=timeout)
        try:
            if secure == "tls":
                server.starttls()
            if username:
                server.login(username, password or "")
            server.send_message(msg)
        finally:
            server.quit()
    except (smtplib.SMTPException, OSError) as e:
        raise EmailDeliveryError("smtp_error", str(e)[:200]) from e
    return str(msg["Message-ID"])
