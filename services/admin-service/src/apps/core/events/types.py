"""
Event Type Definitions

Typed events emitted by the service layer after a state change commits.
Subscribers (audit trail, notification email) react to them in-process.
"""

import uuid
from dataclasses import dataclass, field, asdict, fields
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Type
from enum import Enum


class EventType(str, Enum):
    """Event type enumeration."""
    # Authentication events
    USER_REGISTERED = 'user.registered'
    USER_LOGIN = 'user.login'
    USER_LOGOUT = 'user.logout'
    PASSWORD_CHANGED = 'user.password_changed'
    PASSWORD_RESET_REQUESTED = 'user.password_reset_requested'
    PASSWORD_RESET_COMPLETED = 'user.password_reset_completed'

    # RBAC events
    USER_ROLE_ASSIGNED = 'user.role_assigned'
    USER_ROLE_REVOKED = 'user.role_revoked'


@dataclass
class BaseEvent:
    """Base class for all events."""

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    event_type: str = ''
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    correlation_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BaseEvent':
        """Rebuild an event from ``to_dict`` output, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


# ==================== USER EVENTS ====================

@dataclass
class UserEvent(BaseEvent):
    """Base class for user-related events."""

    user_id: str = ''
    email: str = ''
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass
class UserRegisteredEvent(UserEvent):
    """Published when a user registers."""

    event_type: str = EventType.USER_REGISTERED.value
    name: Optional[str] = None


@dataclass
class UserLoginEvent(UserEvent):
    """Published on successful login."""

    event_type: str = EventType.USER_LOGIN.value
    session_expires: Optional[str] = None


@dataclass
class UserLogoutEvent(UserEvent):
    event_type: str = EventType.USER_LOGOUT.value


@dataclass
class PasswordChangedEvent(UserEvent):
    """Published after a password change; all sessions were revoked."""

    event_type: str = EventType.PASSWORD_CHANGED.value
    sessions_revoked: int = 0


@dataclass
class PasswordResetRequestedEvent(UserEvent):
    event_type: str = EventType.PASSWORD_RESET_REQUESTED.value


@dataclass
class PasswordResetCompletedEvent(UserEvent):
    event_type: str = EventType.PASSWORD_RESET_COMPLETED.value
    sessions_revoked: int = 0


# ==================== RBAC EVENTS ====================

@dataclass
class RoleEvent(BaseEvent):
    """Base class for role assignment events."""

    user_id: str = ''
    role_id: str = ''
    role_name: str = ''
    actor_id: Optional[str] = None


@dataclass
class RoleAssignedEvent(RoleEvent):
    event_type: str = EventType.USER_ROLE_ASSIGNED.value


@dataclass
class RoleRevokedEvent(RoleEvent):
    event_type: str = EventType.USER_ROLE_REVOKED.value


EVENT_CLASSES: Dict[str, Type[BaseEvent]] = {
    EventType.USER_REGISTERED.value: UserRegisteredEvent,
    EventType.USER_LOGIN.value: UserLoginEvent,
    EventType.USER_LOGOUT.value: UserLogoutEvent,
    EventType.PASSWORD_CHANGED.value: PasswordChangedEvent,
    EventType.PASSWORD_RESET_REQUESTED.value: PasswordResetRequestedEvent,
    EventType.PASSWORD_RESET_COMPLETED.value: PasswordResetCompletedEvent,
    EventType.USER_ROLE_ASSIGNED.value: RoleAssignedEvent,
    EventType.USER_ROLE_REVOKED.value: RoleRevokedEvent,
}


def event_from_dict(data: Dict[str, Any]) -> BaseEvent:
    """Rebuild a typed event from its serialized form."""
    event_class = EVENT_CLASSES.get(data.get('event_type'), BaseEvent)
    return event_class.from_dict(data)
