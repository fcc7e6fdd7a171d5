"""
Celery application for the admin service.

Periodic tasks are declared in settings.CELERY_BEAT_SCHEDULE.
"""

import os

from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings.development')

app = Celery('admin_service')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()
