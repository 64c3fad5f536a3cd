"""
Enqueue helpers for the three job queues.

Every workflow run gets a `pending` WorkflowExecutionLog before its job is
sent, so queued-but-not-started runs are visible in the dashboard. The
execution id travels in the job payload.

Payloads (JSON, camelCase like the dashboard):
- workflows: {workflowId, userId, businessId, executionId[, startNodeIds, variables]}
- email:     {userId, businessId, templateId}
- scraping:  {jobId, userId, keywords, location, sources}
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..models.execution import WorkflowExecutionLog
from ..models.scraping_job import ScrapingJob
from ..models.workflow import Workflow

logger = logging.getLogger(__name__)

WORKFLOW_QUEUE = "workflows"
EMAIL_QUEUE = "email"
SCRAPING_QUEUE = "scraping"

WORKFLOW_TASK = "execute_workflow_task"
EMAIL_TASK = "send_email_task"
SCRAPING_TASK = "run_scraping_task"

DEFAULT_SOURCES = ["google-maps"]


class JobQueue:
    """
    Sends jobs by task name so callers never import the task modules.

    Built once per process (API app, worker runtime) and passed to whatever
    needs to enqueue.
    """

    def __init__(self, celery_app=None):
        self._celery_app = celery_app

    @property
    def celery_app(self):
        if self._celery_app is None:
            from .celery_app import celery_app
            self._celery_app = celery_app
        return self._celery_app

    def send(
        self,
        task_name: str,
        payload: Dict[str, Any],
        queue: str,
        countdown: Optional[float] = None,
        eta: Optional[datetime] = None,
    ) -> str:
        options: Dict[str, Any] = {"queue": queue}
        if countdown:
            options["countdown"] = countdown
        if eta is not None:
            # Stored datetimes are naive UTC
            options["eta"] = eta.replace(tzinfo=timezone.utc) if eta.tzinfo is None else eta
        result = self.celery_app.send_task(task_name, args=[payload], **options)
        logger.info(f"Enqueued {task_name} on '{queue}' (task {result.id})")
        return result.id

    # ------------------------------------------------------------------
    # Workflow runs
    # ------------------------------------------------------------------

    def enqueue_workflow(
        self,
        db: Session,
        workflow: Workflow,
        business_id: Optional[str],
        countdown: Optional[float] = None,
        start_node_ids: Optional[List[str]] = None,
        variables: Optional[Dict[str, Any]] = None,
        resumed_from_id: Optional[str] = None,
    ) -> str:
        """
        Pre-create the pending execution log and send the run.

        Returns:
            Execution log id
        """
        log = WorkflowExecutionLog(
            workflow_id=workflow.id,
            business_id=business_id,
            user_id=workflow.user_id,
            status="pending",
            logs=[],
            resumed_from_id=resumed_from_id,
        )
        db.add(log)
        db.commit()

        payload: Dict[str, Any] = {
            "workflowId": workflow.id,
            "userId": workflow.user_id,
            "businessId": business_id,
            "executionId": log.id,
        }
        if start_node_ids:
            payload["startNodeIds"] = list(start_node_ids)
        if variables:
            payload["variables"] = variables

        try:
            self.send(WORKFLOW_TASK, payload, WORKFLOW_QUEUE, countdown=countdown)
        except Exception as e:
            log.status = "failed"
            log.error = f"Failed to enqueue: {e}"
            log.completed_at = datetime.utcnow()
            db.commit()
            raise

        return log.id

    # ------------------------------------------------------------------
    # Email
    # ------------------------------------------------------------------

    def enqueue_email(self, payload: Dict[str, Any], eta: Optional[datetime] = None) -> str:
        return self.send(EMAIL_TASK, payload, EMAIL_QUEUE, eta=eta)

    # ------------------------------------------------------------------
    # Scraping
    # ------------------------------------------------------------------

    def enqueue_scraping(
        self,
        db: Session,
        user_id: str,
        keywords: List[str],
        location: str,
        sources: Optional[List[str]] = None,
    ) -> ScrapingJob:
        job = ScrapingJob(
            user_id=user_id,
            keywords=list(keywords),
            location=location,
            sources=list(sources or DEFAULT_SOURCES),
            status="pending",
        )
        db.add(job)
        db.commit()

        self.send(
            SCRAPING_TASK,
            {
                "jobId": job.id,
                "userId": user_id,
                "keywords": job.keywords,
                "location": location,
                "sources": job.sources,
            },
            SCRAPING_QUEUE,
        )
        return job
