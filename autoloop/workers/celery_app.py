"""
Celery Application Configuration for AutoLoop

This module configures Celery for the three background job queues.

Architecture:
- Message Broker: Redis
- Result Backend: Redis
- Queues:
    workflows  one (workflow, business) run per job     concurrency 10
    scraping   one scraping job per job                 concurrency 5
    email      one outreach email per job               concurrency 2
- Beat: trigger polling every TRIGGER_POLL_INTERVAL seconds

Starting workers (one process per queue so concurrency is set per queue):
    celery -A autoloop.workers.celery_app worker -Q workflows -c ${WORKFLOW_CONCURRENCY:-10}
    celery -A autoloop.workers.celery_app worker -Q scraping -c ${SCRAPING_CONCURRENCY:-5}
    celery -A autoloop.workers.celery_app worker -Q email -c ${EMAIL_CONCURRENCY:-2}
    celery -A autoloop.workers.celery_app beat

Key Features:
- Retry with exponential backoff (3 attempts, 2s then 4s)
- Late acks (at-least-once delivery)
- Task timeout protection
- Result expiration (bounded history)
- JSON serialization
"""

import os
import logging
from celery import Celery
from kombu import Queue, Exchange
from ..core.logging_config import setup_logging

# Initialize structured logging for Celery workers
setup_logging(
    level=os.getenv("LOG_LEVEL", "INFO"),
    json_logs=os.getenv("JSON_LOGS", "true").lower() == "true",  # Default to JSON in workers
    log_file=os.getenv("LOG_FILE", None)
)

logger = logging.getLogger(__name__)

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
TRIGGER_POLL_INTERVAL = float(os.getenv("TRIGGER_POLL_INTERVAL", "60"))

WORKFLOW_CONCURRENCY = int(os.getenv("WORKFLOW_CONCURRENCY", "10"))
SCRAPING_CONCURRENCY = int(os.getenv("SCRAPING_CONCURRENCY", "5"))
EMAIL_CONCURRENCY = int(os.getenv("EMAIL_CONCURRENCY", "2"))

celery_app = Celery("autoloop")

celery_app.conf.update(
    # ============================================================================
    # BROKER & BACKEND
    # ============================================================================
    broker_url=REDIS_URL,
    result_backend=REDIS_URL,
    broker_connection_retry_on_startup=True,
    broker_connection_retry=True,
    broker_connection_max_retries=10,

    # ============================================================================
    # SERIALIZATION
    # ============================================================================
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],

    # ============================================================================
    # TIMEZONE
    # ============================================================================
    timezone="UTC",
    enable_utc=True,

    # ============================================================================
    # TASK EXECUTION
    # ============================================================================
    task_track_started=True,

    # Acknowledge after execution so a crashed worker's job is redelivered
    task_acks_late=True,
    worker_prefetch_multiplier=1,

    # Scraping jobs loop for a long time; workflow runs are short
    task_time_limit=3600,
    task_soft_time_limit=3540,

    # ============================================================================
    # RESULTS
    # ============================================================================
    result_expires=86400,  # 24 hours
    result_extended=True,

    # ============================================================================
    # TASK ROUTING
    # ============================================================================
    task_default_queue="workflows",
    task_default_exchange="workflows",
    task_default_routing_key="workflow.execute",

    task_queues=(
        Queue("workflows", Exchange("workflows"), routing_key="workflow.execute"),
        Queue("scraping", Exchange("scraping"), routing_key="scraping.run"),
        Queue("email", Exchange("email"), routing_key="email.send"),
    ),

    task_routes={
        "execute_workflow_task": {"queue": "workflows", "routing_key": "workflow.execute"},
        "poll_workflow_triggers": {"queue": "workflows", "routing_key": "workflow.execute"},
        "run_scraping_task": {"queue": "scraping", "routing_key": "scraping.run"},
        "send_email_task": {"queue": "email", "routing_key": "email.send"},
    },

    # ============================================================================
    # WORKER CONFIGURATION
    # ============================================================================
    worker_pool="prefork",
    worker_concurrency=WORKFLOW_CONCURRENCY,  # Overridden per queue with -c
    worker_max_tasks_per_child=1000,

    # ============================================================================
    # MONITORING & LOGGING
    # ============================================================================
    worker_send_task_events=True,
    task_send_sent_event=True,
    worker_log_format="[%(asctime)s: %(levelname)s/%(processName)s] %(message)s",
    worker_task_log_format="[%(asctime)s: %(levelname)s/%(processName)s][%(task_name)s(%(task_id)s)] %(message)s",
)

# ============================================================================
# BEAT SCHEDULE (Periodic Tasks)
# ============================================================================
celery_app.conf.beat_schedule = {
    "poll-workflow-triggers": {
        "task": "poll_workflow_triggers",
        "schedule": TRIGGER_POLL_INTERVAL,
    },
}

logger.info("Celery app configured successfully")
logger.info(f"Broker: {REDIS_URL.split('@')[1] if '@' in REDIS_URL else REDIS_URL}")
logger.info(f"Trigger poll interval: {TRIGGER_POLL_INTERVAL}s")

# ============================================================================
# IMPORT TASKS (so they get registered when worker starts)
# ============================================================================
# This import MUST come AFTER celery_app is configured
from . import tasks  # noqa: F401, E402

logger.info("Tasks imported and registered")
