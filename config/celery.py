"""
Celery configuration for the condo residency project.
"""
import os
from celery import Celery
from celery.schedules import crontab

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

app = Celery('config')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()

# Celery Beat Schedule
app.conf.beat_schedule = {
    'expire-invites': {
        'task': 'apps.identity.tasks.expire_invites',
        'schedule': crontab(minute='0'),  # Hourly
    },
}
