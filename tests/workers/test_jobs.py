"""
Tests for the job bodies behind the workflow, email and scraping queues.

The broker is replaced by the fake Celery app from conftest; every test
calls the job coroutine directly with a WorkerRuntime built from fakes.
"""

from datetime import datetime, timedelta, timezone

import pytest

from autoloop.core.exceptions import (
    CredentialsError,
    GraphExecutionError,
    GraphValidationError,
    IntegrationError,
    ScrapingError,
)
from autoloop.core.integrations import SendResult
from autoloop.core.integrations.scrapers import ScraperSource
from autoloop.core.logging_config import get_request_id
from autoloop.models.business import Business
from autoloop.models.email import EmailLog
from autoloop.models.execution import WorkflowExecutionLog
from autoloop.models.notification import Notification
from autoloop.models.scraping_job import ScrapingJob
from autoloop.workers.jobs import (
    notify_job_exhausted,
    process_email_job,
    run_scraping_job,
    run_workflow_job,
)


# ============================================================================
# WORKFLOW JOBS
# ============================================================================

@pytest.fixture
def workflow_payload(db_session, job_queue, business):
    """Enqueue a run the way the API does and return its payload."""
    def _payload(workflow):
        execution_id = job_queue.enqueue_workflow(db_session, workflow, business.id)
        return {
            "workflowId": workflow.id,
            "userId": workflow.user_id,
            "businessId": business.id,
            "executionId": execution_id,
        }

    return _payload


@pytest.mark.unit
@pytest.mark.asyncio
async def test_workflow_job_success(db_session, runtime, make_workflow, linear_workflow, workflow_payload):
    workflow = make_workflow(linear_workflow["nodes"], linear_workflow["edges"])
    payload = workflow_payload(workflow)

    result = await run_workflow_job(db_session, payload, runtime)

    assert result["execution_id"] == payload["executionId"]
    assert result["status"] == "success"
    assert result["resumed_execution_ids"] == []

    log = db_session.get(WorkflowExecutionLog, payload["executionId"])
    assert log.status == "success"
    assert log.state == {"step": 2}
    assert log.error is None
    assert log.started_at is not None and log.completed_at is not None
    assert "Executing set node: Second" in log.logs

    db_session.refresh(workflow)
    assert workflow.execution_count == 1
    assert workflow.last_run_at == log.completed_at
    assert db_session.query(Notification).filter(Notification.title == "Workflow Completed").count() == 1
    assert get_request_id() is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_workflow_job_failure_raises_for_retry(db_session, runtime, whatsapp, make_workflow, make_node, make_edge, workflow_payload):
    whatsapp.send_template.return_value = SendResult(success=False, error="template not approved")
    workflow = make_workflow(
        [make_node("start", "start"), make_node("wa", "whatsappNode", templateName="intro")],
        [make_edge("start", "wa")],
    )
    payload = workflow_payload(workflow)

    with pytest.raises(GraphExecutionError) as exc_info:
        await run_workflow_job(db_session, payload, runtime)

    assert exc_info.value.execution_id == payload["executionId"]
    assert exc_info.value.retry_allowed is True
    log = db_session.get(WorkflowExecutionLog, payload["executionId"])
    assert log.status == "failed"
    assert log.error == "Error: WhatsApp send failed: template not approved"
    db_session.refresh(workflow)
    assert workflow.execution_count == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_custom_code_failure_is_not_retried(db_session, runtime, make_workflow, make_node, make_edge, workflow_payload):
    workflow = make_workflow(
        [make_node("start", "start"), make_node("code", "custom", customCode="return 1 / 0")],
        [make_edge("start", "code")],
    )
    payload = workflow_payload(workflow)

    with pytest.raises(GraphExecutionError) as exc_info:
        await run_workflow_job(db_session, payload, runtime)

    assert exc_info.value.retry_allowed is False
    log = db_session.get(WorkflowExecutionLog, payload["executionId"])
    assert log.error.startswith("Error: Custom code failed: ZeroDivisionError")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_retry_writes_new_execution_log(db_session, runtime, make_workflow, make_node, make_edge, workflow_payload):
    workflow = make_workflow(
        [make_node("start", "start"), make_node("code", "custom", customCode="return 1 / 0")],
        [make_edge("start", "code")],
    )
    payload = workflow_payload(workflow)

    for attempt in range(2):
        with pytest.raises(GraphExecutionError):
            await run_workflow_job(db_session, payload, runtime, attempt=attempt)

    logs = db_session.query(WorkflowExecutionLog).all()
    assert len(logs) == 2
    assert all(log.status == "failed" for log in logs)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_workflow_job_missing_workflow(db_session, runtime, user, business):
    payload = {"workflowId": "gone", "userId": user.id, "businessId": business.id}

    with pytest.raises(GraphValidationError, match="Workflow gone not found"):
        await run_workflow_job(db_session, payload, runtime)

    log = db_session.query(WorkflowExecutionLog).one()
    assert log.status == "failed"
    assert log.logs == ["❌ Error: Workflow gone not found"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_workflow_job_missing_business(db_session, runtime, make_workflow, linear_workflow, user):
    workflow = make_workflow(linear_workflow["nodes"], linear_workflow["edges"])
    payload = {"workflowId": workflow.id, "userId": user.id, "businessId": "gone"}

    with pytest.raises(GraphValidationError, match="Business gone not found"):
        await run_workflow_job(db_session, payload, runtime)


@pytest.fixture
def delayed_workflow(make_workflow, make_node, make_edge):
    return make_workflow(
        [
            make_node("start", "start"),
            make_node("tag", "set", values={"stage": "first-touch"}),
            make_node("wait", "delay", delayHours=48),
            make_node("after", "set", values={"stage": "follow-up"}),
        ],
        [make_edge("start", "tag"), make_edge("tag", "wait"), make_edge("wait", "after")],
    )


@pytest.mark.unit
@pytest.mark.asyncio
async def test_delay_enqueues_resume(db_session, runtime, celery_app, delayed_workflow, workflow_payload):
    payload = workflow_payload(delayed_workflow)

    result = await run_workflow_job(db_session, payload, runtime)

    assert result["status"] == "success"
    [resumed_id] = result["resumed_execution_ids"]
    resumed = db_session.get(WorkflowExecutionLog, resumed_id)
    assert resumed.status == "pending"
    assert resumed.resumed_from_id == payload["executionId"]

    call = celery_app.send_task.call_args
    assert call.kwargs["countdown"] == 48 * 3600
    assert call.kwargs["args"][0]["startNodeIds"] == ["after"]
    assert call.kwargs["args"][0]["variables"] == {"stage": "first-touch"}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_resumed_run_continues_after_delay(db_session, runtime, celery_app, delayed_workflow, workflow_payload):
    await run_workflow_job(db_session, workflow_payload(delayed_workflow), runtime)
    resume_payload = celery_app.send_task.call_args.kwargs["args"][0]

    result = await run_workflow_job(db_session, resume_payload, runtime)

    assert result["status"] == "success"
    assert result["logs"][0].startswith("Resuming workflow execution")
    log = db_session.get(WorkflowExecutionLog, resume_payload["executionId"])
    assert log.state == {"stage": "follow-up"}


# ============================================================================
# EMAIL JOBS
# ============================================================================

NOW = datetime(2026, 3, 10, 15, 0)


@pytest.fixture
def email_payload(user, business, template):
    return {"userId": user.id, "businessId": business.id, "templateId": template.id}


@pytest.fixture(autouse=True)
def outreach_env(monkeypatch):
    monkeypatch.setenv("APP_TIMEZONE", "UTC")
    monkeypatch.setenv("EMAIL_DAILY_LIMIT", "2")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_email_job_sends(db_session, runtime, email_payload, business, email_sender):
    result = await process_email_job(db_session, email_payload, runtime, now=NOW)

    assert result == {"status": "sent", "message_id": "gmail-1"}
    assert email_sender.send.await_args.kwargs["subject"] == "Quick question for Luigi's Pizza"
    assert db_session.query(EmailLog).one().status == "sent"
    db_session.refresh(business)
    assert business.email_sent is True


@pytest.mark.unit
@pytest.mark.asyncio
async def test_email_job_rescheduled_at_daily_cap(db_session, runtime, celery_app, email_payload, user, business, email_sender):
    for hours in (1, 2):
        db_session.add(EmailLog(user_id=user.id, business_id=business.id, status="sent", sent_at=NOW - timedelta(hours=hours)))
    db_session.commit()

    result = await process_email_job(db_session, email_payload, runtime, now=NOW)

    assert result == {"status": "rescheduled", "eta": "2026-03-11T00:00:00"}
    email_sender.send.assert_not_awaited()
    call = celery_app.send_task.call_args
    assert call.args[0] == "send_email_task"
    assert call.kwargs["args"] == [email_payload]
    assert call.kwargs["eta"] == datetime(2026, 3, 11, tzinfo=timezone.utc)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_email_cap_counts_only_today(db_session, runtime, email_payload, user, business):
    for days in (1, 2, 3):
        db_session.add(EmailLog(user_id=user.id, business_id=business.id, status="sent", sent_at=NOW - timedelta(days=days)))
    db_session.commit()

    result = await process_email_job(db_session, email_payload, runtime, now=NOW)

    assert result["status"] == "sent"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_email_job_skips_sent_template(db_session, runtime, email_payload, user, business, template, email_sender):
    db_session.add(EmailLog(
        user_id=user.id, business_id=business.id, template_id=template.id,
        status="sent", sent_at=NOW - timedelta(days=30),
    ))
    db_session.commit()

    result = await process_email_job(db_session, email_payload, runtime, now=NOW)

    assert result == {"status": "skipped"}
    email_sender.send.assert_not_awaited()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_email_job_without_gmail(db_session, runtime, email_payload, user):
    user.access_token = None
    db_session.commit()

    with pytest.raises(CredentialsError):
        await process_email_job(db_session, email_payload, runtime, now=NOW)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_email_job_business_without_email(db_session, runtime, email_payload, business):
    business.email = None
    db_session.commit()

    result = await process_email_job(db_session, email_payload, runtime, now=NOW)

    assert result == {"status": "failed", "error": "Business has no email address"}
    assert db_session.query(EmailLog).one().status == "failed"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_email_job_send_failure_retried(db_session, runtime, email_payload, email_sender):
    email_sender.send.return_value = SendResult(success=False, error="Invalid Credentials")

    with pytest.raises(IntegrationError, match="Invalid Credentials"):
        await process_email_job(db_session, email_payload, runtime, now=NOW)

    assert db_session.query(EmailLog).one().error_message == "Invalid Credentials"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_email_job_missing_template(db_session, runtime, email_payload):
    email_payload["templateId"] = "gone"

    with pytest.raises(ValueError, match="Template not found"):
        await process_email_job(db_session, email_payload, runtime, now=NOW)


# ============================================================================
# SCRAPING JOBS
# ============================================================================

def record(name, **fields):
    return {"name": name, "address": f"{name} street", "category": "Restaurant", **fields}


@pytest.fixture
def scraping_job(db_session, user):
    def _make(status="pending", sources=None):
        job = ScrapingJob(
            user_id=user.id,
            keywords=["pizza"],
            location="Austin, TX",
            sources=sources or ["google-maps"],
            status=status,
        )
        db_session.add(job)
        db_session.commit()
        return job

    return _make


def scraping_payload(job):
    return {
        "jobId": job.id,
        "userId": job.user_id,
        "keywords": job.keywords,
        "location": job.location,
        "sources": job.sources,
    }


async def no_sleep(seconds):
    return None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_scraping_until_nothing_new(db_session, runtime, make_source, scraping_job, user):
    source = make_source(batches=[
        [record("A", rating=4.5), record("B")],
        [record("B"), record("C")],
        [record("A")],
    ])
    job = scraping_job()

    result = await run_scraping_job(db_session, scraping_payload(job), runtime, sleep=no_sleep)

    assert result == {"status": "completed", "businesses_found": 3, "loops": 3}
    assert source.calls[0].keywords == ["pizza"]
    assert source.calls[0].location == "Austin, TX"
    names = sorted(b.name for b in db_session.query(Business).filter(Business.user_id == user.id))
    assert names == ["A", "B", "C"]

    db_session.refresh(job)
    assert job.status == "completed"
    assert job.progress == 100
    assert job.businesses_found == 3
    assert job.completed_at is not None

    notification = db_session.query(Notification).one()
    assert notification.title == "Scraping Completed"
    assert notification.category == "scraping"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_scraped_business_defaults(db_session, runtime, make_source, scraping_job):
    make_source(batches=[[{"name": "No Category"}, {"address": "nameless"}]])

    await run_scraping_job(db_session, scraping_payload(scraping_job()), runtime, sleep=no_sleep)

    business = db_session.query(Business).one()
    assert business.name == "No Category"
    assert business.category == "Unknown"
    assert business.source == "google-maps"
    assert business.email_sent is False


@pytest.mark.unit
@pytest.mark.asyncio
async def test_scraping_loop_cap(db_session, runtime, make_source, scraping_job):
    make_source(batches=[[record(f"Biz {i}")] for i in range(10)])

    result = await run_scraping_job(db_session, scraping_payload(scraping_job()), runtime, sleep=no_sleep, max_loops=3)

    assert result["loops"] == 3
    assert result["businesses_found"] == 3


class StoppingSource(ScraperSource):
    """Simulates the user pressing stop while the first batch is scraped."""

    name = "google-maps"

    def __init__(self, db, job_id):
        self.db = db
        self.job_id = job_id

    async def scrape(self, options, user_id):
        job = self.db.get(ScrapingJob, self.job_id)
        job.status = "stopped"
        self.db.commit()
        return [record("A"), record("B")]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_scraping_stop_is_respected(db_session, runtime, scrapers, scraping_job):
    job = scraping_job()
    scrapers.register(StoppingSource(db_session, job.id))

    result = await run_scraping_job(db_session, scraping_payload(job), runtime, sleep=no_sleep)

    assert result == {"status": "stopped", "businesses_found": 2, "loops": 1}
    db_session.refresh(job)
    assert job.status == "stopped"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_scraping_waits_while_paused(db_session, runtime, make_source, scraping_job):
    make_source(batches=[[record("A")]])
    job = scraping_job(status="paused")
    sleeps = []

    async def resume_after_wait(seconds):
        sleeps.append(seconds)
        job.status = "running"
        db_session.commit()

    result = await run_scraping_job(db_session, scraping_payload(job), runtime, sleep=resume_after_wait)

    assert sleeps == [5]
    assert result["status"] == "completed"
    assert result["businesses_found"] == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_scraping_stopped_before_start(db_session, runtime, make_source, scraping_job):
    source = make_source(batches=[[record("A")]])

    result = await run_scraping_job(db_session, scraping_payload(scraping_job(status="stopped")), runtime)

    assert result["status"] == "stopped"
    assert source.calls == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_scraping_partial_source_failure(db_session, runtime, make_source, scraping_job):
    make_source("google-maps", batches=[[record("A")]])
    make_source("yelp", error=RuntimeError("blocked"))
    job = scraping_job(sources=["google-maps", "yelp"])

    result = await run_scraping_job(db_session, scraping_payload(job), runtime, sleep=no_sleep)

    assert result["status"] == "completed"
    assert result["businesses_found"] == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_scraping_all_sources_fail(db_session, runtime, make_source, scraping_job):
    make_source(error=RuntimeError("blocked"))
    job = scraping_job()

    with pytest.raises(ScrapingError):
        await run_scraping_job(db_session, scraping_payload(job), runtime, sleep=no_sleep)

    db_session.refresh(job)
    assert job.status == "failed"
    assert "All scraper sources failed" in job.error


@pytest.mark.unit
@pytest.mark.asyncio
async def test_scraping_missing_job(db_session, runtime, user):
    with pytest.raises(ValueError):
        await run_scraping_job(db_session, {"jobId": "gone", "userId": user.id}, runtime)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_scraping_skips_unregistered_source(db_session, runtime, make_source, scraping_job):
    source = make_source("google-maps", batches=[[record("A")]])
    job = scraping_job(sources=["google-maps", "yelp"])

    result = await run_scraping_job(db_session, scraping_payload(job), runtime, sleep=no_sleep)

    assert result["status"] == "completed"
    assert result["businesses_found"] == 1
    assert len(source.calls) == 2


@pytest.mark.unit
@pytest.mark.asyncio
async def test_scraping_without_registered_sources_fails_for_good(db_session, runtime, scraping_job):
    job = scraping_job(sources=["yelp"])

    with pytest.raises(ScrapingError) as exc_info:
        await run_scraping_job(db_session, scraping_payload(job), runtime, sleep=no_sleep)

    assert exc_info.value.retry_allowed is False
    db_session.refresh(job)
    assert job.status == "failed"
    assert job.error == "No scraper registered for yelp"


# ============================================================================
# EXHAUSTED RETRIES
# ============================================================================

@pytest.mark.unit
@pytest.mark.asyncio
async def test_exhausted_workflow_notifies_owner(db_session, user, make_workflow, whatsapp):
    workflow = make_workflow([], [], name="Outreach")

    await notify_job_exhausted(
        db_session, "workflow", {"workflowId": workflow.id, "userId": user.id}, "Failed to send email", whatsapp=whatsapp,
    )

    notification = db_session.query(Notification).one()
    assert notification.title == "Workflow Execution Failed"
    assert notification.level == "error"
    assert notification.message == 'Workflow "Outreach" failed after all retries: Failed to send email'
    whatsapp.send_text.assert_awaited_once_with(
        user.phone, 'AutoLoop alert: Workflow "Outreach" failed after all retries: Failed to send email',
    )


@pytest.mark.unit
@pytest.mark.asyncio
async def test_exhausted_scraping_marks_job_failed(db_session, user, scraping_job, whatsapp):
    job = scraping_job(status="running")

    await notify_job_exhausted(db_session, "scraping", scraping_payload(job), "blocked", whatsapp=whatsapp)

    db_session.refresh(job)
    assert job.status == "failed"
    assert job.error == "blocked"
    assert db_session.query(Notification).one().category == "scraping"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_exhausted_email_without_phone(db_session, user, business, whatsapp):
    user.phone = None
    db_session.commit()

    await notify_job_exhausted(db_session, "email", {"userId": user.id, "businessId": business.id}, "quota", whatsapp=whatsapp)

    assert db_session.query(Notification).one().title == "Email Delivery Failed"
    whatsapp.send_text.assert_not_awaited()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_exhausted_without_user(db_session, whatsapp):
    await notify_job_exhausted(db_session, "email", {}, "quota", whatsapp=whatsapp)

    assert db_session.query(Notification).count() == 0
