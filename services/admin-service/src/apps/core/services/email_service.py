"""
Email Service

The only outbound mail capability of the admin service. Flows hand it a
destination, subject and body; the transport is whatever EMAIL_BACKEND
configures.
"""

import logging
from typing import Tuple

from django.conf import settings
from django.core.mail import send_mail

logger = logging.getLogger(__name__)


def password_reset_email(token: str) -> Tuple[str, str]:
    """Subject and body of the password reset email carrying ``token``."""
    url_template = getattr(settings, 'AUTH_SETTINGS', {}).get(
        'PASSWORD_RESET_URL',
        'http://localhost:3000/reset-password?token={token}'
    )
    body = (
        "Recibimos una solicitud para restablecer tu contraseña.\n\n"
        f"Usa este enlace en los próximos 30 minutos:\n{url_template.format(token=token)}\n\n"
        "Si no solicitaste este cambio, ignora este mensaje."
    )
    return 'Restablece tu contraseña', body


def welcome_email(email: str, name: str = None) -> Tuple[str, str]:
    return (
        'Bienvenido a Aurora Nova',
        f"Hola {name or email},\n\nTu cuenta ha sido creada correctamente."
    )


class EmailService:
    """Sends plain text email through Django's mail backend."""

    def send(self, to: str, subject: str, body: str) -> None:
        send_mail(
            subject=subject,
            message=body,
            from_email=getattr(settings, 'DEFAULT_FROM_EMAIL', 'no-reply@aurora-nova.local'),
            recipient_list=[to],
            fail_silently=False,
        )
        logger.info(f"Email sent: {subject}", extra={'recipient': to})

    def send_welcome(self, to: str, name: str = None) -> None:
        self.send(to, *welcome_email(to, name))
