"""
Celery Tasks for AutoLoop

Thin wrappers around the job bodies in jobs.py.

Main Tasks:
- execute_workflow_task: one (workflow, business) run
- send_email_task: one outreach email (daily cap enforced)
- run_scraping_task: one scraping job
- poll_workflow_triggers: beat task firing due triggers

Task Design Principles:
- Idempotent-ish: the template node skips already-sent templates, so a
  redelivered run does not email twice
- Observable: every run has an execution log from the moment it is enqueued
- Resilient: retryable errors (retry_allowed) are retried with exponential
  backoff, the owner is alerted when a job fails for good
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict

from celery import Task
from celery.utils.time import get_exponential_backoff_interval
from sqlalchemy.orm import Session

from .celery_app import celery_app
from .jobs import (
    WorkerRuntime,
    notify_job_exhausted,
    process_email_job,
    run_scraping_job,
    run_workflow_job,
)
from ..core.exceptions import AutoloopException
from ..core.triggers import TriggerScheduler
from ..database import get_db

logger = logging.getLogger(__name__)

# 3 attempts in total, waits of 2s then 4s
RETRY_OPTIONS = {
    "max_retries": 2,
    "retry_backoff": 2,
    "retry_backoff_max": 600,
    "retry_jitter": False,
}


class AutoloopTask(Task):
    """
    Base task: one WorkerRuntime per worker process, and the owner is
    notified when a job fails for good.
    """

    failure_category = "workflow"
    _runtime = None

    @property
    def runtime(self) -> WorkerRuntime:
        if self._runtime is None:
            self._runtime = WorkerRuntime.from_env()
        return self._runtime

    def run_job(self, job: Callable[[Session], Awaitable[Dict[str, Any]]]) -> Dict[str, Any]:
        """
        Run a job body against a fresh session.

        An AutoloopException with retry_allowed is retried with exponential
        backoff; anything else fails the task.
        """
        try:
            with get_db() as db:
                return asyncio.run(job(db))
        except AutoloopException as e:
            if not e.retry_allowed:
                logger.warning(f"Task {self.request.id}: {e.message} (not retryable)")
                raise
            countdown = get_exponential_backoff_interval(
                factor=self.retry_backoff,
                retries=self.request.retries,
                maximum=self.retry_backoff_max,
                full_jitter=self.retry_jitter,
            )
            logger.warning(f"Task {self.request.id}: {e.message}, retrying in {countdown}s")
            raise self.retry(exc=e, countdown=countdown)

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        payload = args[0] if args else kwargs.get("payload", {})
        logger.error(f"Task {task_id} ({self.name}) failed permanently: {exc}")
        try:
            with get_db() as db:
                asyncio.run(notify_job_exhausted(
                    db,
                    self.failure_category,
                    payload or {},
                    str(exc),
                    whatsapp=self.runtime.integrations.whatsapp,
                ))
        except Exception as e:
            logger.error(f"Task {task_id}: failed to notify owner: {e}")


@celery_app.task(
    bind=True,
    base=AutoloopTask,
    name="execute_workflow_task",
    failure_category="workflow",
    **RETRY_OPTIONS,
)
def execute_workflow_task(self, payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Execute one workflow run.

    Args:
        payload: {workflowId, userId, businessId, executionId[, startNodeIds, variables]}

    Raises:
        GraphValidationError: workflow/business missing (not retried)
        GraphExecutionError: run failed (retried when retry_allowed)
    """
    task_id = self.request.id
    logger.info(
        f"Task {task_id}: workflow {payload.get('workflowId')} for business {payload.get('businessId')}, "
        f"retry {self.request.retries}/{self.max_retries}"
    )
    return self.run_job(lambda db: run_workflow_job(db, payload, self.runtime, attempt=self.request.retries))


@celery_app.task(
    bind=True,
    base=AutoloopTask,
    name="send_email_task",
    failure_category="email",
    **RETRY_OPTIONS,
)
def send_email_task(self, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Send one template email. Payload: {userId, businessId, templateId}"""
    logger.info(f"Task {self.request.id}: email to business {payload.get('businessId')}")
    return self.run_job(lambda db: process_email_job(db, payload, self.runtime))


@celery_app.task(
    bind=True,
    base=AutoloopTask,
    name="run_scraping_task",
    failure_category="scraping",
    **RETRY_OPTIONS,
)
def run_scraping_task(self, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Run one scraping job. Payload: {jobId, userId, keywords, location, sources}"""
    logger.info(f"Task {self.request.id}: scraping job {payload.get('jobId')}")
    return self.run_job(lambda db: run_scraping_job(db, payload, self.runtime))


@celery_app.task(bind=True, base=AutoloopTask, name="poll_workflow_triggers", failure_category="system")
def poll_workflow_triggers(self) -> Dict[str, Any]:
    """Beat task: enqueue runs for every due trigger."""
    with get_db() as db:
        queued = TriggerScheduler(db, self.runtime.queue.enqueue_workflow).process_due_triggers()
    if queued:
        logger.info(f"Trigger poll queued {queued} workflow run(s)")
    return {"queued": queued}
