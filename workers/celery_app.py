from celery import Celery
from kombu import Queue

from core.settings import SETTINGS

app = Celery(
    "chat_relay",
    broker=SETTINGS.REDIS.CELERY_BROKER_URL,
    backend=SETTINGS.REDIS.CELERY_RESULT_BACKEND,
    include=["workers.tasks"],
)

app.conf.update(
    task_default_queue="default",
    task_queues=(
        Queue("default"),
        Queue("conversation"),
        Queue("analysis"),
    ),
    task_routes={
        "workers.tasks.run_conversation_workflow": {"queue": "conversation"},
        "workers.tasks.run_analysis_workflow": {"queue": "analysis"},
    },
    # Reliability defaults
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # Model calls dominate; leave room for the OpenAI timeout
    task_soft_time_limit=SETTINGS.OPENAI.OPENAI_TIMEOUT_SECONDS + 30,
    task_time_limit=SETTINGS.OPENAI.OPENAI_TIMEOUT_SECONDS + 60,
    worker_hijack_root_logger=False,
)
