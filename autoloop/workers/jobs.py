"""
Job bodies for the workflow, email and scraping queues.

Plain functions over an explicit db session and WorkerRuntime so they can be
tested without a broker; tasks.py wraps them as Celery tasks.

Raising from a job body hands the failure to Celery:
- an AutoloopException with retry_allowed is retried
- everything else fails the task immediately
When a task fails for good, notify_job_exhausted() tells the user.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.context import ExecutionContext
from ..core.engine import GraphEngine, make_json_serializable
from ..core.exceptions import (
    CredentialsError,
    GraphExecutionError,
    GraphValidationError,
    IntegrationError,
    ScrapingError,
)
from ..core.integrations import Integrations, NotificationService, ScrapeOptions, send_with_retry
from ..core.integrations.gmail import SendResult
from ..core.integrations.whatsapp import WhatsAppClient
from ..core.logging_config import bind_run, clear_request_id
from ..core.outreach import (
    count_sent_today,
    get_daily_limit,
    has_sent_template,
    local_day_bounds,
    record_send,
    render_template,
)
from ..models.business import Business
from ..models.email import EmailTemplate
from ..models.execution import WorkflowExecutionLog
from ..models.scraping_job import ScrapingJob
from ..models.user import User
from ..models.workflow import Workflow
from .queue import JobQueue

logger = logging.getLogger(__name__)

MAX_SCRAPE_LOOPS = 50
SCRAPE_BATCH_LIMIT = 20
PAUSE_POLL_SECONDS = 5

BUSINESS_FIELDS = (
    "name", "email", "phone", "website", "address", "category",
    "rating", "review_count", "latitude", "longitude",
)

SleepFn = Callable[[float], Awaitable[None]]


@dataclass
class WorkerRuntime:
    """Collaborators a worker process builds once at startup."""

    integrations: Integrations = field(default_factory=Integrations)
    queue: JobQueue = field(default_factory=JobQueue)

    @classmethod
    def from_env(cls) -> "WorkerRuntime":
        return cls(integrations=Integrations.from_env(), queue=JobQueue())


# ============================================================================
# WORKFLOW QUEUE
# ============================================================================

def _claim_execution_log(db: Session, payload: Dict[str, Any]) -> WorkflowExecutionLog:
    """
    The pending log created at enqueue time, or a fresh row when that one
    already completed (a retry of a failed run gets its own record).
    """
    log = db.get(WorkflowExecutionLog, payload.get("executionId")) if payload.get("executionId") else None
    if log is None or log.completed_at is not None:
        log = WorkflowExecutionLog(
            workflow_id=payload["workflowId"],
            business_id=payload.get("businessId"),
            user_id=payload["userId"],
            logs=[],
            resumed_from_id=log.resumed_from_id if log is not None else None,
        )
        db.add(log)

    log.status = "running"
    log.started_at = datetime.utcnow()
    db.commit()
    return log


def _fail_log(db: Session, log: WorkflowExecutionLog, message: str) -> None:
    log.status = "failed"
    log.error = message
    log.logs = list(log.logs or []) + [f"❌ Error: {message}"]
    log.completed_at = datetime.utcnow()
    db.commit()


async def run_workflow_job(
    db: Session,
    payload: Dict[str, Any],
    runtime: WorkerRuntime,
    attempt: int = 0,
) -> Dict[str, Any]:
    """
    Execute one (workflow, business) run.

    1. Claim the execution log (pending → running)
    2. Load workflow + business fresh from the database
    3. Walk the graph
    4. Persist {status, logs, state, error}; bump workflow counters on success
    5. Enqueue delayed resumes for branches parked by delay nodes

    Raises:
        GraphValidationError: workflow or business missing (not retried)
        GraphExecutionError: the run finished with success=False (retried when
            the failure is retryable)
    """
    workflow_id = payload["workflowId"]
    business_id = payload.get("businessId")

    log = _claim_execution_log(db, payload)
    bind_run(log.id, workflow_id, business_id)
    try:
        logger.info(f"Workflow {workflow_id}: run {log.id} for business {business_id} (attempt {attempt + 1})")

        workflow = db.get(Workflow, workflow_id)
        if workflow is None:
            _fail_log(db, log, f"Workflow {workflow_id} not found")
            raise GraphValidationError(f"Workflow {workflow_id} not found")

        business = db.get(Business, business_id) if business_id else None
        if business is None:
            _fail_log(db, log, f"Business {business_id} not found")
            raise GraphValidationError(f"Business {business_id} not found")

        context = ExecutionContext.from_business(
            business,
            user_id=payload["userId"],
            workflow_id=workflow.id,
            variables=payload.get("variables"),
        )
        engine = GraphEngine(db_session=db, integrations=runtime.integrations)
        result = await engine.execute(
            workflow.graph_definition,
            context,
            start_node_ids=payload.get("startNodeIds"),
            workflow_name=workflow.name,
        )

        now = datetime.utcnow()
        log.status = "success" if result.success else "failed"
        log.logs = result.logs
        log.state = make_json_serializable(context.variables)
        log.error = result.error
        log.completed_at = now
        if result.success:
            workflow.last_run_at = now
            workflow.execution_count = (workflow.execution_count or 0) + 1
        db.commit()

        logger.info(f"Workflow {workflow_id}: run {log.id} finished with status {log.status}")

        if not result.success:
            raise GraphExecutionError(
                result.error or "Workflow execution failed",
                execution_id=log.id,
                retry_allowed=result.retryable,
            )

        resumed = []
        for suspension in result.suspensions:
            resumed.append(runtime.queue.enqueue_workflow(
                db,
                workflow,
                business.id,
                countdown=suspension.delay_seconds,
                start_node_ids=suspension.resume_node_ids,
                variables=log.state,
                resumed_from_id=log.id,
            ))
            logger.info(
                f"Workflow {workflow_id}: branch after node {suspension.node_id} resumes in "
                f"{suspension.delay_seconds}s as run {resumed[-1]}"
            )

        return {
            "execution_id": log.id,
            "status": log.status,
            "logs": result.logs,
            "resumed_execution_ids": resumed,
        }
    finally:
        clear_request_id()


# ============================================================================
# EMAIL QUEUE
# ============================================================================

async def process_email_job(
    db: Session,
    payload: Dict[str, Any],
    runtime: WorkerRuntime,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Send one template email outside a workflow (bulk outreach).

    Over the daily cap the job is re-sent with an ETA of the next local
    midnight instead of being dropped.

    Raises:
        ValueError: user, business or template missing
        CredentialsError: Gmail not connected
        IntegrationError: send failed (retried)
    """
    user_id = payload["userId"]
    business_id = payload["businessId"]
    template_id = payload["templateId"]
    now = now or datetime.utcnow()

    limit = get_daily_limit()
    sent_today = count_sent_today(db, user_id, now)
    if sent_today >= limit:
        _, next_midnight = local_day_bounds(now)
        runtime.queue.enqueue_email(payload, eta=next_midnight)
        logger.info(
            f"Daily email limit reached for user {user_id} ({sent_today}/{limit}), "
            f"rescheduled business {business_id} to {next_midnight.isoformat()}"
        )
        return {"status": "rescheduled", "eta": next_midnight.isoformat()}

    user = db.get(User, user_id)
    business = db.get(Business, business_id)
    template = db.get(EmailTemplate, template_id)
    if user is None or business is None or template is None:
        missing = "User" if user is None else "Business" if business is None else "Template"
        raise ValueError(f"{missing} not found for email job (business {business_id}, template {template_id})")

    if has_sent_template(db, business.id, template.id):
        logger.info(f"Template {template.id} already sent to business {business.id}, skipping")
        return {"status": "skipped"}

    if not user.access_token:
        raise CredentialsError("Gmail is not connected for this account", user_id=user_id)

    context = ExecutionContext(business.id, business.to_snapshot(), user_id, workflow_id=None)
    subject = render_template(template.subject, context, user)
    body = render_template(template.body, context, user)

    if not business.email:
        result = SendResult(success=False, error="Business has no email address")
    else:
        result = await send_with_retry(
            runtime.integrations.email_sender,
            to=business.email,
            subject=subject,
            body=body,
            access_token=user.access_token,
            sender_address=user.email,
            initial_delay=runtime.integrations.email_retry_delay,
        )
    record_send(db, user_id, business, business.id, template, subject, body, result)

    if not result.success:
        if not business.email:
            return {"status": "failed", "error": result.error}
        raise IntegrationError(f"Failed to send email to {business.email}: {result.error}")

    logger.info(f"Email sent to {business.email} (template {template.id})")
    return {"status": "sent", "message_id": result.message_id}


# ============================================================================
# SCRAPING QUEUE
# ============================================================================

def _save_business(db: Session, user_id: str, source: str, record: Dict[str, Any]) -> bool:
    """Insert one scraped record; False when it already exists."""
    name = record.get("name")
    if not name:
        return False
    address = record.get("address")

    existing = db.query(Business.id).filter(
        Business.user_id == user_id,
        Business.name == name,
        Business.address == address if address is not None else Business.address.is_(None),
    ).first()
    if existing is not None:
        return False

    values = {key: record.get(key) for key in BUSINESS_FIELDS}
    values["category"] = values["category"] or "Unknown"
    db.add(Business(user_id=user_id, source=source, **values))
    try:
        db.commit()
    except IntegrityError:
        # Inserted concurrently by another job
        db.rollback()
        return False
    return True


async def run_scraping_job(
    db: Session,
    payload: Dict[str, Any],
    runtime: WorkerRuntime,
    sleep: SleepFn = asyncio.sleep,
    max_loops: int = MAX_SCRAPE_LOOPS,
) -> Dict[str, Any]:
    """
    Scrape until nothing new turns up, the loop cap is hit or the user stops
    the job from the dashboard.

    Job status is re-read every iteration:
    - paused:                      wait PAUSE_POLL_SECONDS and check again
    - stopped/failed/completed:    finish
    """
    job_id = payload["jobId"]
    user_id = payload["userId"]
    sources = payload.get("sources") or ["google-maps"]
    options = ScrapeOptions(
        keywords=list(payload.get("keywords") or []),
        location=payload.get("location") or "",
        limit=SCRAPE_BATCH_LIMIT,
    )

    job = db.get(ScrapingJob, job_id)
    if job is None:
        raise ValueError(f"Scraping job {job_id} not found")
    if job.status == "stopped":
        logger.info(f"Scraping job {job_id} was stopped before it started")
        return {"status": "stopped", "businesses_found": job.businesses_found}

    if job.status != "paused":
        job.status = "running"
    job.started_at = job.started_at or datetime.utcnow()
    db.commit()

    registry = runtime.integrations.scrapers
    unknown = [name for name in sources if not registry.has(name)]
    if unknown:
        logger.warning(f"Scraping job {job_id}: no scraper registered for {', '.join(unknown)}")
        sources = [name for name in sources if registry.has(name)]
    logger.info(f"Scraping job {job_id}: started ({', '.join(sources) or 'no sources'})")

    total_found = job.businesses_found or 0
    loops = 0
    try:
        if not sources:
            raise ScrapingError(
                f"No scraper registered for {', '.join(unknown)}", source=unknown[0], retry_allowed=False
            )
        while loops < max_loops:
            db.refresh(job)
            if job.status == "paused":
                logger.info(f"Scraping job {job_id}: paused, waiting")
                await sleep(PAUSE_POLL_SECONDS)
                continue
            if job.status in ("stopped", "failed", "completed"):
                logger.info(f"Scraping job {job_id}: stopped by user (status: {job.status})")
                break

            loops += 1
            new_count = 0
            failures = 0
            for source in sources:
                try:
                    records = await registry.scrape(source, options, user_id)
                except ScrapingError as e:
                    failures += 1
                    logger.warning(f"Scraping job {job_id}: {e.message}")
                    continue
                for record in records:
                    if _save_business(db, user_id, source, record):
                        new_count += 1

            if failures == len(sources):
                raise ScrapingError(f"All scraper sources failed for job {job_id}")

            total_found += new_count
            job.businesses_found = total_found
            job.progress = min(100, int(loops / max_loops * 100))
            db.commit()
            logger.info(f"Scraping job {job_id}: loop {loops} saved {new_count} new businesses ({total_found} total)")

            if new_count == 0:
                break

    except Exception as e:
        db.rollback()
        job.status = "failed"
        job.error = str(e)
        job.completed_at = datetime.utcnow()
        db.commit()
        raise

    if job.status not in ("stopped", "failed"):
        job.status = "completed"
        job.progress = 100
    job.completed_at = datetime.utcnow()
    db.commit()

    NotificationService(db).create(
        user_id,
        "Scraping Completed",
        f"Scraping job finished with {total_found} businesses found",
        level="success",
        category="scraping",
    )
    logger.info(f"Scraping job {job_id}: finished with status {job.status}, {total_found} businesses")
    return {"status": job.status, "businesses_found": total_found, "loops": loops}


# ============================================================================
# EXHAUSTED RETRIES
# ============================================================================

FAILURE_TITLES = {
    "workflow": "Workflow Execution Failed",
    "email": "Email Delivery Failed",
    "scraping": "Scraping Job Failed",
}


async def notify_job_exhausted(
    db: Session,
    category: str,
    payload: Dict[str, Any],
    error: str,
    whatsapp: Optional[WhatsAppClient] = None,
) -> None:
    """
    Final failure of a job: dashboard notification, plus a WhatsApp alert
    when the owner has a phone number on file.
    """
    user_id = payload.get("userId")
    if not user_id:
        logger.error(f"Exhausted {category} job has no userId: {payload}")
        return

    if category == "workflow":
        workflow = db.get(Workflow, payload.get("workflowId"))
        subject = f'Workflow "{workflow.name if workflow else payload.get("workflowId")}"'
    elif category == "scraping":
        job = db.get(ScrapingJob, payload.get("jobId"))
        if job is not None and job.status not in ("stopped", "completed"):
            job.status = "failed"
            job.error = error
            job.completed_at = job.completed_at or datetime.utcnow()
            db.commit()
        subject = "Scraping job"
    else:
        subject = f"Email to business {payload.get('businessId')}"

    message = f"{subject} failed after all retries: {error}"
    NotificationService(db).create(
        user_id,
        FAILURE_TITLES.get(category, "Job Failed"),
        message,
        level="error",
        category=category if category in FAILURE_TITLES else "system",
    )

    user = db.get(User, user_id)
    if whatsapp is not None and user is not None and user.phone:
        result = await whatsapp.send_text(user.phone, f"AutoLoop alert: {message}")
        if not result.success:
            logger.error(f"WhatsApp failure alert to user {user_id} failed: {result.error}")
