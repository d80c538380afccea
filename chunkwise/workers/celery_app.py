# =============================================================================
# Celery Application Configuration
# =============================================================================
#
# Celery runs document processing in the background for
# POST /files/process-async:
#   load upload → evaluate strategies → embed with the best one → store
#
# ARCHITECTURE:
# ┌──────────┐     ┌───────┐     ┌──────────────┐     ┌───────┐
# │ FastAPI  │────▶│ Redis │────▶│ Celery Worker│────▶│ Redis │
# │(producer)│     │(broker)│    │ (consumer)   │     │(result)│
# └──────────┘     └───────┘     └──────────────┘     └───────┘
#    db 0 ──────────┘                                    └── db 1
#
# The broker (Redis db 0) queues tasks. Results land in Redis db 1 for
# GET /files/tasks/{task_id} to poll.
# =============================================================================

from celery import Celery

from chunkwise.config import settings

celery_app = Celery(
    "chunkwise.workers",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    # JSON only: pickle can execute arbitrary code on deserialisation
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Acknowledge after completion so a crashed worker's task is re-queued
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    # One task at a time per worker process; documents are long-running
    worker_prefetch_multiplier=1,

    task_soft_time_limit=300,
    task_time_limit=600,

    result_expires=3600,

    include=["chunkwise.workers.tasks"],
)
