"""Celery configuration for item workers."""

from __future__ import annotations

import os

from celery import Celery

broker_url = os.environ.get("REDIS_URL", "redis://redis:6379/0")
backend_url = os.environ.get("CELERY_RESULT_BACKEND", broker_url)

celery_app = Celery("shelfsync", broker=broker_url, backend=backend_url, include=["shelfsync.jobs.items"])
# Redelivered item events are harmless; losing one is not.
celery_app.conf.task_acks_late = True
celery_app.conf.worker_prefetch_multiplier = 1
