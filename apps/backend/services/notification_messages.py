"""Plain text, HTML and Slack block rendering for ticket notifications.

Every render is a pure function of its inputs, so redelivering an event
produces the same content.
"""
from __future__ import annotations

from html import escape

from apps.backend.services.notification_context import TicketContext, UserContact


def ticket_link(base_url: str, ticket_id: int, *, internal: bool) -> str:
    area = "admin" if internal else "student"
    return f"{(base_url or '').rstrip('/')}/{area}/dashboard/ticket/{ticket_id}"


def format_status(value: str | None) -> str:
    if not value:
        return "Unknown"
    return value.replace("_", " ").title()


def mention(contact: UserContact | None) -> str:
    if contact is None:
        return "Unassigned"
    if contact.slack_user_id:
        return f"<@{contact.slack_user_id}>"
    return contact.name


def _html(paragraphs: list[str], link: str, link_label: str) -> str:
    body = "".join(f"<p>{escape(p).replace(chr(10), '<br>')}</p>" for p in paragraphs if p)
    return f'{body}<p><a href="{escape(link)}">{escape(link_label)}</a></p>'


def render_new_ticket_chat(
    ticket: TicketContext,
    creator: UserContact | None,
    assignee: UserContact | None,
    link: str,
    cc_user_ids: tuple[str, ...] = (),
) -> tuple[str, list[dict]]:
    category = ticket.category if not ticket.subcategory else f"{ticket.category} / {ticket.subcategory}"
    text = f"New ticket {ticket.number}: {ticket.title}"
    fields = [
        {"type": "mrkdwn", "text": f"*Category:*\n{category}"},
        {"type": "mrkdwn", "text": f"*Priority:*\n{ticket.priority}"},
        {"type": "mrkdwn", "text": f"*Status:*\n{ticket.status_label}"},
        {"type": "mrkdwn", "text": f"*Created by:*\n{creator.name if creator else 'Unknown'}"},
        {"type": "mrkdwn", "text": f"*Assigned to:*\n{mention(assignee)}"},
    ]
    if ticket.location:
        fields.append({"type": "mrkdwn", "text": f"*Location:*\n{ticket.location}"})
    blocks: list[dict] = [
        {"type": "header", "text": {"type": "plain_text", "text": f"{ticket.number}: {ticket.title}"[:150]}},
        {"type": "section", "fields": fields},
    ]
    if ticket.description:
        blocks.append({"type": "section", "text": {"type": "mrkdwn", "text": ticket.description[:2900]}})
    if cc_user_ids:
        cc = " ".join(f"<@{uid}>" for uid in cc_user_ids)
        blocks.append({"type": "context", "elements": [{"type": "mrkdwn", "text": f"cc {cc}"}]})
    blocks.append(
        {
            "type": "actions",
            "elements": [
                {"type": "button", "text": {"type": "plain_text", "text": "View ticket"}, "url": link},
            ],
        }
    )
    return text, blocks


def render_new_ticket_email(ticket: TicketContext, creator: UserContact | None, link: str) -> tuple[str, str, str]:
    subject = f"[{ticket.number}] {ticket.title}"
    lines = [
        f"Hello {creator.name if creator else 'there'},",
        f"Ticket {ticket.number} has been created.",
        f"Category: {ticket.category}" + (f" / {ticket.subcategory}" if ticket.subcategory else ""),
        f"Priority: {ticket.priority}",
        f"Status: {ticket.status_label}",
        ticket.description,
    ]
    text = "\n\n".join(p for p in lines if p) + f"\n\nView ticket: {link}\n"
    return subject, text, _html(lines, link, "View ticket")


def render_status_email(
    ticket: TicketContext,
    creator: UserContact,
    old_status: str | None,
    new_status: str | None,
    actor_name: str,
    comment: str | None,
    link: str,
) -> tuple[str, str, str]:
    subject = f"[{ticket.number}] Status updated: {format_status(new_status)}"
    lines = [
        f"Hello {creator.name},",
        f"The status of ticket {ticket.number} ({ticket.title}) changed "
        f"from {format_status(old_status)} to {format_status(new_status)}.",
        f"Updated by: {actor_name}",
        f"Comment: {comment}" if comment else "",
    ]
    text = "\n\n".join(p for p in lines if p) + f"\n\nView ticket: {link}\n"
    return subject, text, _html(lines, link, "View ticket")


def render_assigned_chat(ticket: TicketContext, assignee: UserContact, assignor_name: str, *, forward: bool) -> str:
    verb = "forwarded" if forward else "assigned"
    return f"Ticket {ticket.number} has been {verb} to {mention(assignee)} by {assignor_name}."


def render_assigned_email(
    ticket: TicketContext, assignee: UserContact, assignor_name: str, link: str, *, forward: bool
) -> tuple[str, str, str]:
    verb = "forwarded" if forward else "assigned"
    subject = f"[{ticket.number}] Ticket {verb} to you"
    lines = [
        f"Hello {assignee.name},",
        f"Ticket {ticket.number} ({ticket.title}) has been {verb} to you by {assignor_name}.",
        f"Priority: {ticket.priority}",
        f"Status: {ticket.status_label}",
    ]
    text = "\n\n".join(lines) + f"\n\nView ticket: {link}\n"
    return subject, text, _html(lines, link, "View ticket")


def render_forwarded_email(
    ticket: TicketContext, creator: UserContact, assignee: UserContact, link: str
) -> tuple[str, str, str]:
    subject = f"[{ticket.number}] Your ticket has been forwarded"
    lines = [
        f"Hello {creator.name},",
        f"Your ticket {ticket.number} ({ticket.title}) has been forwarded to {assignee.name}.",
    ]
    text = "\n\n".join(lines) + f"\n\nView ticket: {link}\n"
    return subject, text, _html(lines, link, "View ticket")


def render_comment_email(
    ticket: TicketContext, creator: UserContact, commenter_name: str, comment: str, link: str
) -> tuple[str, str, str]:
    subject = f"[{ticket.number}] New comment from {commenter_name}"
    lines = [
        f"Hello {creator.name},",
        f"{commenter_name} commented on ticket {ticket.number} ({ticket.title}):",
        comment,
    ]
    text = "\n\n".join(p for p in lines if p) + f"\n\nView ticket: {link}\n"
    return subject, text, _html(lines, link, "View ticket")
