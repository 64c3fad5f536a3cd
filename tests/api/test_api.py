"""
Tests for the FastAPI endpoints.

The database dependency is pointed at the in-memory test session and the
job queue at the fake Celery app, so nothing leaves the process.
"""

import pytest
from fastapi.testclient import TestClient

from autoloop.api.main import app, get_db, get_job_queue
from autoloop.models.execution import WorkflowExecutionLog
from autoloop.models.scraping_job import ScrapingJob


@pytest.fixture
def client(db_session, job_queue):
    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[get_job_queue] = lambda: job_queue
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def workflow(make_workflow, linear_workflow):
    return make_workflow(linear_workflow["nodes"], linear_workflow["edges"], target_business_type="Restaurant")


# ============================================================================
# HEALTH & METRICS
# ============================================================================

@pytest.mark.unit
def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.unit
def test_request_id_is_echoed(client):
    response = client.get("/health", headers={"X-Request-ID": "req-42"})

    assert response.headers["X-Request-ID"] == "req-42"


@pytest.mark.unit
def test_detailed_health(client):
    response = client.get("/health/detailed")

    assert response.status_code == 200
    assert response.json()["healthy"] is True


@pytest.mark.unit
def test_metrics(client, user):
    response = client.get("/metrics", params={"user_id": user.id})

    assert response.status_code == 200
    assert response.json()["executions"]["total"] == 0


# ============================================================================
# WORKFLOW EXECUTION
# ============================================================================

@pytest.mark.unit
def test_execute_for_given_businesses(client, db_session, celery_app, workflow, business):
    response = client.post(f"/workflows/{workflow.id}/execute", json={"business_ids": [business.id]})

    assert response.status_code == 202
    body = response.json()
    assert body["status"] == "queued"
    assert body["workflow_name"] == "Restaurant outreach"
    assert body["total"] == 1
    [run] = body["runs"]
    assert run["business_id"] == business.id
    assert db_session.get(WorkflowExecutionLog, run["execution_id"]).status == "pending"
    celery_app.send_task.assert_called_once()


@pytest.mark.unit
def test_execute_selects_outreach_targets(client, workflow, business):
    response = client.post(f"/workflows/{workflow.id}/execute", json={})

    assert response.status_code == 202
    assert [run["business_id"] for run in response.json()["runs"]] == [business.id]


@pytest.mark.unit
def test_execute_unknown_workflow(client):
    response = client.post("/workflows/missing/execute", json={})

    assert response.status_code == 404
    assert response.json() == {"error": "Workflow missing not found", "status_code": 404}


@pytest.mark.unit
def test_execute_unknown_business(client, celery_app, workflow, business):
    response = client.post(f"/workflows/{workflow.id}/execute", json={"business_ids": [business.id, "gone"]})

    assert response.status_code == 404
    assert response.json()["error"] == "Businesses not found: gone"
    celery_app.send_task.assert_not_called()


@pytest.mark.unit
def test_execute_queue_unavailable(client, celery_app, workflow, business):
    celery_app.send_task.side_effect = ConnectionError("redis down")

    response = client.post(f"/workflows/{workflow.id}/execute", json={"business_ids": [business.id]})

    assert response.status_code == 503
    assert response.json()["error"] == "Job queue unavailable: redis down"


# ============================================================================
# EXECUTIONS
# ============================================================================

@pytest.fixture
def executions(db_session, user, workflow, business):
    logs = [
        WorkflowExecutionLog(
            workflow_id=workflow.id, business_id=business.id, user_id=user.id,
            status=status, logs=["Starting workflow execution"],
        )
        for status in ("success", "failed")
    ]
    db_session.add_all(logs)
    db_session.commit()
    return logs


@pytest.mark.unit
def test_list_executions(client, executions, workflow):
    response = client.get("/executions", params={"workflow_id": workflow.id})

    assert response.status_code == 200
    assert response.json()["total"] == 2


@pytest.mark.unit
def test_list_executions_by_status(client, executions):
    body = client.get("/executions", params={"status": "failed"}).json()

    assert body["total"] == 1
    assert body["executions"][0]["id"] == executions[1].id


@pytest.mark.unit
def test_get_execution(client, executions):
    response = client.get(f"/executions/{executions[0].id}")

    assert response.status_code == 200
    assert response.json()["status"] == "success"
    assert response.json()["logs"] == ["Starting workflow execution"]


@pytest.mark.unit
def test_get_unknown_execution(client):
    assert client.get("/executions/missing").status_code == 404


# ============================================================================
# EMAIL
# ============================================================================

@pytest.mark.unit
def test_send_email_is_queued(client, celery_app):
    response = client.post("/emails/send", json={"user_id": "u1", "business_id": "b1", "template_id": "t1"})

    assert response.status_code == 202
    assert response.json() == {"task_id": "task-1", "status": "queued"}
    assert celery_app.send_task.call_args.args[0] == "send_email_task"


# ============================================================================
# SCRAPING
# ============================================================================

@pytest.mark.unit
def test_create_scraping_job(client, db_session, user):
    response = client.post(
        "/scraping/jobs", json={"user_id": user.id, "keywords": ["pizza"], "location": "Austin, TX"},
    )

    assert response.status_code == 202
    body = response.json()
    assert body["status"] == "pending"
    assert body["sources"] == ["google-maps"]
    assert body["businesses_found"] == 0
    assert db_session.get(ScrapingJob, body["id"]) is not None


@pytest.mark.unit
def test_create_scraping_job_requires_keywords(client, user):
    response = client.post("/scraping/jobs", json={"user_id": user.id, "keywords": [], "location": "Austin"})

    assert response.status_code == 422


@pytest.fixture
def scraping_job(db_session, user):
    job = ScrapingJob(user_id=user.id, keywords=["pizza"], location="Austin, TX", sources=["google-maps"], status="running")
    db_session.add(job)
    db_session.commit()
    return job


@pytest.mark.unit
def test_get_scraping_job(client, scraping_job):
    response = client.get(f"/scraping/jobs/{scraping_job.id}")

    assert response.status_code == 200
    assert response.json()["status"] == "running"


@pytest.mark.unit
@pytest.mark.parametrize("action,expected", [("pause", "paused"), ("stop", "stopped")])
def test_control_running_job(client, scraping_job, action, expected):
    response = client.post(f"/scraping/jobs/{scraping_job.id}/control", json={"action": action})

    assert response.status_code == 200
    assert response.json()["status"] == expected


@pytest.mark.unit
def test_resume_paused_job(client, db_session, scraping_job):
    scraping_job.status = "paused"
    db_session.commit()

    response = client.post(f"/scraping/jobs/{scraping_job.id}/control", json={"action": "resume"})

    assert response.json()["status"] == "running"


@pytest.mark.unit
def test_invalid_transition(client, scraping_job):
    response = client.post(f"/scraping/jobs/{scraping_job.id}/control", json={"action": "resume"})

    assert response.status_code == 409
    assert response.json()["error"] == "Cannot resume a job that is running"


@pytest.mark.unit
def test_control_unknown_job(client):
    response = client.post("/scraping/jobs/missing/control", json={"action": "stop"})

    assert response.status_code == 404
