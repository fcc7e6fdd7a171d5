"""
Admin Service Events

Typed events and the in-process publisher. Subscribers live in
``handlers`` and are registered when the app is ready.
"""

from .publisher import EventPublisher, get_publisher, publish_event, subscriber
from .types import (
    EventType,
    BaseEvent,
    UserEvent,
    UserRegisteredEvent,
    UserLoginEvent,
    UserLogoutEvent,
    PasswordChangedEvent,
    PasswordResetRequestedEvent,
    PasswordResetCompletedEvent,
    RoleEvent,
    RoleAssignedEvent,
    RoleRevokedEvent,
    event_from_dict,
)

__all__ = [
    # Publisher
    'EventPublisher',
    'get_publisher',
    'publish_event',
    'subscriber',

    # Base
    'EventType',
    'BaseEvent',
    'event_from_dict',

    # User events
    'UserEvent',
    'UserRegisteredEvent',
    'UserLoginEvent',
    'UserLogoutEvent',
    'PasswordChangedEvent',
    'PasswordResetRequestedEvent',
    'PasswordResetCompletedEvent',

    # RBAC events
    'RoleEvent',
    'RoleAssignedEvent',
    'RoleRevokedEvent',
]
