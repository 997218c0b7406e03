from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from html import escape
from typing import Any, Callable, Mapping

from compliance_store.core.errors import RemoteGatewayError, ValidationError
from compliance_store.core.observability import OperationContext, log_event
from compliance_store.core.operational_logging import log_operational_error
from compliance_store.core.secret_redaction import redact_text
from compliance_store.domain.ports import RemoteGateway

logger = logging.getLogger(__name__)

NOTIFICATION_FUNCTION = "send-notification"
FOOTER_TEXT = "© 2025 Assured Response Training Center. All rights reserved."
DETAILS_BOX_STYLE = "background-color: #f5f5f5; padding: 15px; border-radius: 5px; margin: 20px 0;"


class NotificationType(str, Enum):
    WELCOME = "WELCOME"
    INVITATION = "INVITATION"
    CERTIFICATE_REQUEST = "CERTIFICATE_REQUEST"
    CERTIFICATE_APPROVED = "CERTIFICATE_APPROVED"
    CERTIFICATE_REJECTED = "CERTIFICATE_REJECTED"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"
    ACTION = "ACTION"


DEFAULT_TITLES: dict[NotificationType, str] = {
    NotificationType.WELCOME: "Welcome to Assured Response",
    NotificationType.INVITATION: "You've Been Invited",
    NotificationType.CERTIFICATE_REQUEST: "Certificate Request Submitted",
    NotificationType.CERTIFICATE_APPROVED: "Certificate Approved",
    NotificationType.CERTIFICATE_REJECTED: "Certificate Request Rejected",
    NotificationType.SUCCESS: "Success",
    NotificationType.ERROR: "Error",
    NotificationType.WARNING: "Warning",
    NotificationType.INFO: "Information",
    NotificationType.ACTION: "Action Required",
}


@dataclass(frozen=True)
class NotificationRequest:
    notification_type: NotificationType
    message: str
    recipient_email: str | None = None
    recipient_name: str | None = None
    title: str | None = None
    action_url: str | None = None
    user_id: str | None = None
    category: str = "GENERAL"
    priority: str = "NORMAL"
    send_email: bool = True
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str


def default_title(notification_type: NotificationType | str, category: str | None = None) -> str:
    try:
        return DEFAULT_TITLES[NotificationType(notification_type)]
    except ValueError:
        return f"{category} Notification" if category else "Notification"


def render_layout(title: str, content: str, action_url: str | None = None, action_text: str | None = None) -> str:
    """Wraps already-escaped ``content`` in the shared e-mail layout."""
    button = ""
    if action_url and action_text:
        button = (
            '<div style="text-align: center;">'
            f'<a href="{escape(action_url)}" class="button" target="_blank">{escape(action_text)}</a>'
            "</div>"
        )
    return (
        "<!DOCTYPE html>\n"
        '<html lang="en">\n'
        '<head><meta charset="UTF-8">'
        '<meta name="viewport" content="width=device-width, initial-scale=1.0">'
        f"<title>{escape(title)}</title></head>\n"
        '<body style="background-color: #f8fafc; color: #4a5568; margin: 0; padding: 0;">\n'
        '<div class="container" style="margin: 0 auto; padding: 40px 0; max-width: 600px;">\n'
        '<div class="inner-body" style="background-color: #ffffff; border-radius: 8px; padding: 40px;">\n'
        f"<h1>{escape(title)}</h1>\n"
        f"{content}\n"
        f"{button}\n"
        "</div>\n"
        f'<div class="footer" style="color: #718096; font-size: 14px; text-align: center;"><p>{escape(FOOTER_TEXT)}</p></div>\n'
        "</div>\n"
        "</body>\n"
        "</html>\n"
    )


def _course_box(course_name: str, reason: str | None = None) -> str:
    reason_line = ""
    if reason:
        reason_line = f'<p style="margin: 10px 0 0 0;"><strong>Reason:</strong> {escape(reason)}</p>'
    return (
        f'<div style="{DETAILS_BOX_STYLE}">'
        f'<p style="margin: 0;"><strong>Course:</strong> {escape(course_name)}</p>'
        f"{reason_line}</div>"
    )


def _name(request: NotificationRequest, fallback: str = "User") -> str:
    return escape(request.recipient_name or fallback)


def _render_welcome(request: NotificationRequest) -> RenderedEmail:
    title = "Welcome to Assured Response Training Center"
    content = (
        f"<p>Hello {_name(request)},</p>"
        "<p>Welcome to Assured Response Training Center! Your account has been created successfully.</p>"
        "<p>Our platform offers a comprehensive certification management system where you can:</p>"
        "<ul>"
        "<li>Access your training certificates</li>"
        "<li>Submit certification requests</li>"
        "<li>Track your training progress</li>"
        "<li>Manage your profile and notification preferences</li>"
        "</ul>"
        "<p>We're excited to have you on board!</p>"
    )
    action_text = "Access Your Account" if request.action_url else None
    return RenderedEmail(_subject(request), render_layout(title, content, request.action_url, action_text))


def _render_invitation(request: NotificationRequest) -> RenderedEmail:
    title = "You've Been Invited to Assured Response"
    greeting = f"Hello {_name(request)}," if request.recipient_name else "Hello,"
    role = escape(str(request.metadata.get("role") or "User"))
    content = (
        f"<p>{greeting}</p>"
        f"<p>You have been invited to join the Assured Response Training Center as a <strong>{role}</strong>.</p>"
        "<p>Click the button below to accept the invitation and set up your account:</p>"
    )
    return RenderedEmail(_subject(request), render_layout(title, content, request.action_url, "Accept Invitation"))


def _render_certificate_request(request: NotificationRequest) -> RenderedEmail:
    content = (
        f"<p>Hello {_name(request)},</p>"
        f"<p>{escape(request.message)}</p>"
        f"{_course_box(str(request.metadata.get('courseName') or ''))}"
        "<p>Your certificate request has been submitted and is pending approval. "
        "You will receive another notification once your request has been processed.</p>"
    )
    return RenderedEmail(_subject(request), render_layout("Certificate Request Submitted", content))


def _render_certificate_approved(request: NotificationRequest) -> RenderedEmail:
    content = (
        f"<p>Hello {_name(request)},</p>"
        f"<p>{escape(request.message)}</p>"
        f"{_course_box(str(request.metadata.get('courseName') or ''))}"
        "<p>Your certificate is now available. You can download it from your dashboard.</p>"
    )
    action_text = "View Certificate" if request.action_url else None
    return RenderedEmail(
        _subject(request),
        render_layout("Certificate Approved", content, request.action_url, action_text),
    )


def _render_certificate_rejected(request: NotificationRequest) -> RenderedEmail:
    reason = request.metadata.get("rejectionReason")
    content = (
        f"<p>Hello {_name(request)},</p>"
        f"<p>{escape(request.message)}</p>"
        f"{_course_box(str(request.metadata.get('courseName') or ''), str(reason) if reason else None)}"
        "<p>If you have any questions, please contact your administrator.</p>"
    )
    return RenderedEmail(_subject(request), render_layout("Certificate Request Rejected", content))


def _render_generic(request: NotificationRequest) -> RenderedEmail:
    subject = _subject(request)
    action_text = "View Details" if request.action_url else None
    content = f"<p>{escape(request.message)}</p>"
    return RenderedEmail(subject, render_layout(subject, content, request.action_url, action_text))


def _subject(request: NotificationRequest) -> str:
    return request.title or default_title(request.notification_type, request.category)


Renderer = Callable[[NotificationRequest], RenderedEmail]

RENDERERS: dict[NotificationType, Renderer] = {
    NotificationType.WELCOME: _render_welcome,
    NotificationType.INVITATION: _render_invitation,
    NotificationType.CERTIFICATE_REQUEST: _render_certificate_request,
    NotificationType.CERTIFICATE_APPROVED: _render_certificate_approved,
    NotificationType.CERTIFICATE_REJECTED: _render_certificate_rejected,
    NotificationType.SUCCESS: _render_generic,
    NotificationType.ERROR: _render_generic,
    NotificationType.WARNING: _render_generic,
    NotificationType.INFO: _render_generic,
    NotificationType.ACTION: _render_generic,
}


def _check_exhaustive(table: Mapping[NotificationType, object], name: str) -> None:
    missing = [member.value for member in NotificationType if member not in table]
    if missing:
        raise RuntimeError(f"{name} has no entry for: {', '.join(missing)}")


_check_exhaustive(RENDERERS, "RENDERERS")
_check_exhaustive(DEFAULT_TITLES, "DEFAULT_TITLES")


def render_notification(request: NotificationRequest) -> RenderedEmail:
    return RENDERERS[request.notification_type](request)


def build_notification_payload(request: NotificationRequest, rendered: RenderedEmail) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "type": request.notification_type.value,
        "title": rendered.subject,
        "message": request.message,
        "html": rendered.html,
        "sendEmail": request.send_email,
        "priority": request.priority,
        "category": request.category,
        "metadata": dict(request.metadata),
    }
    optional = {
        "userId": request.user_id,
        "recipientEmail": request.recipient_email,
        "recipientName": request.recipient_name,
        "actionUrl": request.action_url,
    }
    payload.update({key: value for key, value in optional.items() if value})
    return payload


class NotificationDispatcher:
    def __init__(self, gateway: RemoteGateway) -> None:
        self._gateway = gateway

    def send(self, request: NotificationRequest) -> dict[str, Any]:
        if not request.message.strip():
            raise ValidationError("Notification message must not be empty")
        if request.send_email and not (request.recipient_email or request.user_id):
            raise ValidationError("Notification needs a recipient e-mail or a user id")
        rendered = render_notification(request)
        payload = build_notification_payload(request, rendered)
        with OperationContext("send_notification"):
            try:
                response = self._gateway.invoke(NOTIFICATION_FUNCTION, payload)
            except Exception as exc:
                log_operational_error(
                    "Notification dispatch failed",
                    exc=exc,
                    operation="send_notification",
                    user_id=request.user_id,
                    extra={"type": request.notification_type.value},
                )
                raise
            if response.get("success") is False:
                message = str(response.get("error") or "send-notification reported failure")
                raise RemoteGatewayError(message)
            log_event(
                logger,
                "notification_sent",
                {
                    "type": request.notification_type.value,
                    "recipient": redact_text(request.recipient_email or ""),
                    "notification_id": response.get("notification_id"),
                    "queued": bool(response.get("queued")),
                },
            )
            return response
