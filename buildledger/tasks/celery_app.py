from celery import Celery

from buildledger.config import settings

FINANCIALS_QUEUE = "financials"

app = Celery(
    "buildledger",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["buildledger.tasks.financial_tasks"],
)

app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_default_queue=FINANCIALS_QUEUE,
    task_routes={
        "buildledger.tasks.financial_tasks.*": {"queue": FINANCIALS_QUEUE},
    },
    # A single project recompute is bounded by RECOMPUTE_TIMEOUT_SECONDS; the
    # hard limit only catches a worker wedged outside that bound.
    task_time_limit=int(settings.RECOMPUTE_TIMEOUT_SECONDS * 6) + 60,
    result_expires=24 * 3600,
)
