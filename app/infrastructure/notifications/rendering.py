"""Message rendering for email and SMS channels."""

import html
import re
from dataclasses import dataclass
from typing import Optional

from infrastructure.notifications.models import NotificationPayload, NotificationPriority

SMS_MAX_LENGTH = 1600
SMS_TRUNCATE_AT = 140
SMS_LINK_LIMIT = 160
SMS_SIGNATURE_LIMIT = 145

_NON_DIGITS = re.compile(r"\D")


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html_body: str
    text_body: str


def build_action_link(client_url: str, action_url: Optional[str]) -> Optional[str]:
    """Absolute link for a payload action path, or None without one."""
    if not action_url:
        return None
    return f"{client_url.rstrip('/')}{action_url}" if client_url else action_url


def format_phone_number(phone: Optional[str]) -> Optional[str]:
    """Normalize a stored phone number to E.164.

    10 digits are treated as a North American number without country code,
    11 digits starting with 1 as one with it. Anything else is accepted only
    when already '+'-prefixed.

    Returns:
        The E.164 number, or None when the input cannot be normalized
    """
    if not phone:
        return None
    digits = _NON_DIGITS.sub("", phone)
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    if phone.startswith("+") and digits:
        return phone
    return None


def render_sms(
    payload: NotificationPayload,
    client_url: str = "",
    signature: Optional[str] = None,
) -> str:
    """Render the condensed SMS body for a payload.

    High priority messages get an [URGENT] prefix. The body is truncated to
    140 characters, the action link is added only while the text stays under
    160 characters and the signature only while it is under 145.
    """
    content = "[URGENT] " if payload.priority == NotificationPriority.HIGH else ""
    content += payload.short_message or payload.message

    if len(content) > SMS_TRUNCATE_AT:
        content = content[: SMS_TRUNCATE_AT - 3] + "..."

    link = build_action_link(client_url, payload.action_url)
    if link and len(content) + len(link) + 10 < SMS_LINK_LIMIT:
        content += f"\n{link}"

    if signature and len(content) < SMS_SIGNATURE_LIMIT:
        content += f"\n- {signature}"

    return content[:SMS_MAX_LENGTH]


_EMAIL_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{title}</title>
</head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333333;">
  <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
    <h2 style="margin-top: 0;">{title}</h2>
    <p><strong>Hi {name},</strong></p>
    <p>{message}</p>
{action}
    <p style="font-size: 12px; color: #777777;">{sender}</p>
  </div>
</body>
</html>
"""

_EMAIL_ACTION = (
    '    <p><a href="{href}" style="display: inline-block; padding: 10px 20px; '
    'background-color: #1a73e8; color: #ffffff; text-decoration: none; '
    'border-radius: 4px;">View Details</a></p>'
)


def render_email(
    payload: NotificationPayload,
    recipient_name: Optional[str] = None,
    client_url: str = "",
    sender_name: str = "",
) -> RenderedEmail:
    """Render subject, HTML and plain-text bodies for an email notification."""
    name = recipient_name or "there"
    link = build_action_link(client_url, payload.action_url)
    subject = payload.title or payload.category

    html_body = _EMAIL_TEMPLATE.format(
        title=html.escape(subject),
        name=html.escape(name),
        message=html.escape(payload.message).replace("\n", "<br>"),
        action=_EMAIL_ACTION.format(href=html.escape(link, quote=True)) if link else "",
        sender=html.escape(sender_name),
    )

    text_lines = [f"Hi {name},", "", payload.message]
    if link:
        text_lines += ["", f"View Details: {link}"]
    if sender_name:
        text_lines += ["", f"- {sender_name}"]

    return RenderedEmail(
        subject=subject,
        html_body=html_body,
        text_body="\n".join(text_lines),
    )
