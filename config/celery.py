"""
Celery application for FormaFlow.
Reads CELERY_* settings from Django and discovers tasks.py in installed apps.
"""
import os

from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

app = Celery('formaflow')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()
