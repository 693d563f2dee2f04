from __future__ import annotations

from celery import Celery

from invoice_intake.core.config import settings


def make_celery() -> Celery:
    app = Celery("invoice_intake", broker=settings.redis_url, backend=settings.redis_url)
    app.conf.update(
        task_always_eager=settings.task_always_eager,
        task_eager_propagates=True,
        task_track_started=True,
        beat_schedule={
            "reclaim-orphans": {
                "task": "reclaim_orphans",
                "schedule": float(settings.reclaim_interval_seconds),
            },
        },
    )
    app.autodiscover_tasks(["invoice_intake.worker.tasks"])
    return app


celery_app = make_celery()
