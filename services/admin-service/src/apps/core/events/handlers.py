"""
Event Handlers

In-process subscribers registered with the singleton publisher when the
app is ready:
- audit trail entries for authentication events
- welcome email on registration
"""

import logging

from apps.core.models import AuditLog

from .publisher import subscriber
from .types import (
    EventType,
    UserEvent,
    UserRegisteredEvent,
)

logger = logging.getLogger(__name__)

AUTH_MODULE = 'auth'

# event type -> audit action
AUDITED_AUTH_EVENTS = {
    EventType.USER_REGISTERED: 'register',
    EventType.USER_LOGIN: 'login',
    EventType.USER_LOGOUT: 'logout',
    EventType.PASSWORD_CHANGED: 'password_change',
    EventType.PASSWORD_RESET_REQUESTED: 'password_reset_request',
    EventType.PASSWORD_RESET_COMPLETED: 'password_reset',
}


# ==================== AUDIT HANDLERS ====================

def audit_auth_event(event: UserEvent) -> None:
    """Record an authentication event in the audit trail."""
    from apps.core.services import AuditService

    action = AUDITED_AUTH_EVENTS[EventType(event.event_type)]
    metadata = {
        key: value
        for key, value in {
            'event_id': event.event_id,
            'sessions_revoked': getattr(event, 'sessions_revoked', None),
        }.items()
        if value is not None
    }

    AuditService().log(
        action=action,
        module=AUTH_MODULE,
        area=AuditLog.Area.PUBLIC,
        user_id=event.user_id or None,
        entity_type='User',
        entity_id=event.user_id or None,
        ip_address=event.ip_address,
        user_agent=event.user_agent,
        request_id=event.correlation_id,
        metadata=metadata,
    )


for _event_type in AUDITED_AUTH_EVENTS:
    subscriber(_event_type)(audit_auth_event)


# ==================== NOTIFICATION HANDLERS ====================

@subscriber(EventType.USER_REGISTERED)
def send_welcome_email(event: UserRegisteredEvent) -> None:
    from apps.core.services import EmailService

    EmailService().send_welcome(event.email, event.name)
