from celery import Celery
from celery.schedules import crontab
from app.core.config import settings

# Initialize Celery app
celery_app = Celery(
    "billing_reconciler",
    broker=settings.REDIS_URL or "redis://localhost:6379/0",
    backend=settings.REDIS_URL or "redis://localhost:6379/0"
)

# Celery configurations
celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='America/Sao_Paulo',
    enable_utc=True,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=300,
    task_soft_time_limit=240,
    task_always_eager=settings.CELERY_TASK_ALWAYS_EAGER,
    task_eager_propagates=False,
)

celery_app.conf.beat_schedule = {
    "expire-stale-pix-payments": {
        "task": "app.tasks.billing_tasks.expire_stale_pix_payments",
        "schedule": crontab(minute="*/5"),
    },
    "expire-lapsed-pix-subscriptions": {
        "task": "app.tasks.billing_tasks.expire_lapsed_pix_subscriptions",
        "schedule": crontab(minute=15),
    },
}

# Explicitly include task modules so the worker always registers them (avoids "unregistered task" in production).
celery_app.conf.include = [
    "app.tasks.billing_tasks",
]
celery_app.autodiscover_tasks(["app.tasks"], force=True)
