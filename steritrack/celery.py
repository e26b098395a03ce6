# steritrack/celery.py
import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "steritrack.settings")

app = Celery("steritrack")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
