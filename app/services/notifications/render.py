"""
Message templates per notification type and channel.
Placeholders use {{name}} and are filled from the event metadata; unknown ones are left as-is.
"""
import json
import re
from dataclasses import dataclass
from typing import Any

from app.services.notifications.types import Channel, NotificationType

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


@dataclass(frozen=True)
class MessageTemplate:
    subject: str | None
    body: str


TEMPLATES: dict[tuple[str, str], MessageTemplate] = {
    (NotificationType.POSTER_GENERATED, Channel.EMAIL): MessageTemplate(
        subject="Poster generated: {{template_name}}",
        body="A poster was generated from {{template_name}}.\nSession: {{session_id}}\nImage: {{image_url}}",
    ),
    (NotificationType.POSTER_GENERATED, Channel.SMS): MessageTemplate(
        subject=None,
        body="Poster generated ({{template_name}}), session {{session_id}}",
    ),
    (NotificationType.POSTER_GENERATION_FAILED, Channel.EMAIL): MessageTemplate(
        subject="Poster generation failed",
        body="Rendering failed for session {{session_id}} (template {{template_uuid}}).\nError: {{error}}",
    ),
    (NotificationType.POSTER_GENERATION_FAILED, Channel.SMS): MessageTemplate(
        subject=None,
        body="Poster generation failed for session {{session_id}}",
    ),
    (NotificationType.PAYMENT_SUCCESS, Channel.EMAIL): MessageTemplate(
        subject="Payment received: KES {{amount}}",
        body="Payment of KES {{amount}} received from {{phone}}.\nReceipt: {{receipt}}\nSession: {{session_id}}",
    ),
    (NotificationType.PAYMENT_SUCCESS, Channel.SMS): MessageTemplate(
        subject=None,
        body="Payment KES {{amount}} received from {{phone}}, receipt {{receipt}}",
    ),
    (NotificationType.PAYMENT_FAILED, Channel.EMAIL): MessageTemplate(
        subject="Payment failed",
        body="A payment from {{phone}} failed.\nReason: {{reason}}\nSession: {{session_id}}",
    ),
    (NotificationType.PAYMENT_FAILED, Channel.SMS): MessageTemplate(
        subject=None,
        body="Payment from {{phone}} failed: {{reason}}",
    ),
    (NotificationType.SYSTEM_SETTING_CHANGED, Channel.EMAIL): MessageTemplate(
        subject="System setting changed: {{setting_key}}",
        body="{{setting_key}} was updated by {{updated_by}}.",
    ),
}


def fill_placeholders(text: str, metadata: dict[str, Any]) -> str:
    def replace(match: re.Match) -> str:
        key = match.group(1)
        value = metadata.get(key)
        return match.group(0) if value is None else str(value)

    return _PLACEHOLDER.sub(replace, text)


def render_message(notification_type: str, channel: str, metadata: dict[str, Any]) -> MessageTemplate:
    template = TEMPLATES.get((notification_type, channel))
    if template is None:
        return MessageTemplate(
            subject=f"Notification: {notification_type}" if channel == Channel.EMAIL else None,
            body=f"Event: {notification_type}\n{json.dumps(metadata, indent=2, default=str)}",
        )
    return MessageTemplate(
        subject=fill_placeholders(template.subject, metadata) if template.subject else None,
        body=fill_placeholders(template.body, metadata),
    )
