"""Celery application instance for ScoreForge."""

from __future__ import annotations

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "scoreforge.config.settings")

app = Celery("scoreforge")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks(lambda: ["scoreforge.sessions"])
