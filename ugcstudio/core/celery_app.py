"""
Celery application: broker and result backend from settings.
Tasks are in ugcstudio.workers.tasks (automation dispatch).
"""
from celery import Celery
from celery.signals import setup_logging

from ugcstudio.core.config import settings
from ugcstudio.core.logging import configure_logging

celery_app = Celery(
    "ugcstudio",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "ugcstudio.workers.tasks.dispatch_batch",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_track_started=True,
    task_time_limit=300,
    result_expires=86400,
)

celery_app.conf.task_routes = {
    "ugcstudio.workers.tasks.dispatch_batch.dispatch_batch": {"queue": "dispatch"},
}


@setup_logging.connect
def _configure_worker_logging(**_kwargs) -> None:
    configure_logging()
