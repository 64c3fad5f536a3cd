"""
FastAPI main application
REST API endpoints for AutoLoop background processing
"""

from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from typing import Optional
import os
import logging
import uuid

from ..database import get_db_session
from ..models.business import Business
from ..models.execution import WorkflowExecutionLog
from ..models.scraping_job import ScrapingJob
from ..models.workflow import Workflow
from ..core.logging_config import setup_logging, set_request_id, clear_request_id
from ..core.metrics import MetricsCollector, check_system_health
from ..core.triggers import select_outreach_targets
from ..workers.queue import JobQueue
from .schemas import (
    ExecutionRequest, ExecutionQueuedResponse, ExecutionResponse, ExecutionListResponse,
    EmailSendRequest, TaskQueuedResponse,
    ScrapingJobCreate, ScrapingControlRequest, ScrapingJobResponse,
)

# ============================================================================
# LOGGING CONFIGURATION
# ============================================================================

setup_logging(
    level=os.getenv("LOG_LEVEL", "INFO"),
    json_logs=os.getenv("JSON_LOGS", "false").lower() == "true",
    log_file=os.getenv("LOG_FILE", None)
)

logger = logging.getLogger(__name__)

# ============================================================================
# FASTAPI APP CONFIGURATION
# ============================================================================

app = FastAPI(
    title="AutoLoop API",
    description="""
# AutoLoop background processing

Queues workflow runs, outreach emails and scraping jobs, and exposes their
execution logs.

## Workflow Execution Flow

1. **POST /workflows/{id}/execute** - queue one run per business (HTTP 202)
2. Each run gets a `pending` execution log immediately
3. **GET /executions/{id}** - poll the log (`running` → `success` / `failed`)
""",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        origin.strip()
        for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
        if origin.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_job_queue = JobQueue()


# Dependency: Get database session
def get_db():
    """Dependency for database session"""
    db = get_db_session()
    try:
        yield db
    finally:
        db.close()


# Dependency: Job queue (overridden in tests)
def get_job_queue() -> JobQueue:
    return _job_queue


# ============================================================================
# MIDDLEWARE - Request ID Tracking
# ============================================================================

@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """
    Tag every log line of a request with its X-Request-ID (generated when
    the caller does not send one) and echo it in the response.
    """
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    set_request_id(request_id)

    logger.info(
        f"{request.method} {request.url.path}",
        extra={
            "method": request.method,
            "path": request.url.path,
            "client_ip": request.client.host if request.client else None,
        }
    )

    try:
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        logger.info(f"Response {response.status_code}", extra={"status_code": response.status_code})
        return response

    except Exception as e:
        logger.exception("Unhandled exception in request", extra={"error": str(e)})
        raise

    finally:
        clear_request_id()


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================

@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.detail,
            "status_code": exc.status_code
        }
    )


# ============================================================================
# HEALTH & METRICS
# ============================================================================

@app.get("/health", tags=["health"], summary="Health check (lightweight)")
def health_check():
    """Lightweight health check - just confirms API is alive"""
    return {
        "status": "healthy",
        "service": "AutoLoop API",
        "version": "0.1.0"
    }


@app.get("/health/detailed", tags=["health"], summary="Detailed health check")
def detailed_health_check(db: Session = Depends(get_db)):
    try:
        health = check_system_health(db)
        if health["healthy"]:
            logger.info("System health check: HEALTHY")
        else:
            logger.warning("System health check: UNHEALTHY", extra={"issues": health["issues"]})
        return health

    except Exception as e:
        logger.exception("Health check failed")
        raise HTTPException(status_code=500, detail=f"Health check failed: {str(e)}")


@app.get(
    "/metrics",
    tags=["health"],
    summary="Execution metrics",
    description="""
    Workflow run statistics (24h), error rate (1h), workflow counts, today's
    outreach volume against the daily cap, scraping job states and database
    health. Pass `user_id` to scope everything to one account.
    """
)
def get_metrics(user_id: Optional[str] = None, db: Session = Depends(get_db)):
    try:
        metrics = MetricsCollector(db, user_id=user_id).get_all_metrics()
        logger.info(
            "Metrics collected",
            extra={
                "success_rate": metrics["executions"]["success_rate"],
                "error_rate": metrics["error_rate"]["error_rate"],
            }
        )
        return metrics

    except Exception as e:
        logger.exception("Failed to collect metrics")
        raise HTTPException(status_code=500, detail=f"Failed to collect metrics: {str(e)}")


# ============================================================================
# WORKFLOW EXECUTION
# ============================================================================

@app.post(
    "/workflows/{workflow_id}/execute",
    status_code=202,
    response_model=ExecutionQueuedResponse,
    tags=["execution"],
    summary="Queue workflow runs",
)
def execute_workflow(
    workflow_id: str,
    execution_request: ExecutionRequest,
    db: Session = Depends(get_db),
    job_queue: JobQueue = Depends(get_job_queue),
):
    """
    Queue one run per business. Returns the execution log ids immediately.
    """
    workflow = db.get(Workflow, workflow_id)
    if not workflow:
        raise HTTPException(status_code=404, detail=f"Workflow {workflow_id} not found")

    if execution_request.business_ids:
        business_ids = [
            row.id for row in db.query(Business.id).filter(
                Business.id.in_(execution_request.business_ids),
                Business.user_id == workflow.user_id,
            ).all()
        ]
        missing = set(execution_request.business_ids) - set(business_ids)
        if missing:
            raise HTTPException(status_code=404, detail=f"Businesses not found: {', '.join(sorted(missing))}")
    else:
        business_ids = select_outreach_targets(db, workflow)

    runs = []
    for business_id in business_ids:
        try:
            execution_id = job_queue.enqueue_workflow(db, workflow, business_id)
        except Exception as e:
            logger.exception(f"Failed to queue workflow {workflow_id} for business {business_id}")
            raise HTTPException(status_code=503, detail=f"Job queue unavailable: {str(e)}")
        runs.append({"business_id": business_id, "execution_id": execution_id})

    logger.info(f"Queued {len(runs)} run(s) of workflow {workflow_id}")
    return {
        "workflow_id": workflow.id,
        "workflow_name": workflow.name,
        "status": "queued",
        "runs": runs,
        "total": len(runs),
    }


# ============================================================================
# EXECUTIONS
# ============================================================================

@app.get(
    "/executions",
    response_model=ExecutionListResponse,
    tags=["executions"],
    summary="List execution logs",
)
def list_executions(
    workflow_id: Optional[str] = None,
    business_id: Optional[str] = None,
    status: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db)
):
    """List execution logs with optional filters (workflow_id, business_id, status)"""
    query = db.query(WorkflowExecutionLog)

    if workflow_id:
        query = query.filter(WorkflowExecutionLog.workflow_id == workflow_id)
    if business_id:
        query = query.filter(WorkflowExecutionLog.business_id == business_id)
    if status:
        query = query.filter(WorkflowExecutionLog.status == status)

    total = query.count()
    executions = query.order_by(WorkflowExecutionLog.created_at.desc()).offset(skip).limit(limit).all()

    return {"executions": executions, "total": total}


@app.get(
    "/executions/{execution_id}",
    response_model=ExecutionResponse,
    tags=["executions"],
    summary="Get execution log",
)
def get_execution(execution_id: str, db: Session = Depends(get_db)):
    execution = db.get(WorkflowExecutionLog, execution_id)
    if not execution:
        raise HTTPException(status_code=404, detail=f"Execution {execution_id} not found")
    return execution


# ============================================================================
# EMAIL
# ============================================================================

@app.post("/emails/send", status_code=202, response_model=TaskQueuedResponse, tags=["email"])
def send_email(request: EmailSendRequest, job_queue: JobQueue = Depends(get_job_queue)):
    """Queue one template email (daily cap applied by the email worker)."""
    task_id = job_queue.enqueue_email({
        "userId": request.user_id,
        "businessId": request.business_id,
        "templateId": request.template_id,
    })
    return {"task_id": task_id, "status": "queued"}


# ============================================================================
# SCRAPING
# ============================================================================

# action -> (allowed current statuses, new status)
SCRAPING_TRANSITIONS = {
    "pause": (("pending", "running"), "paused"),
    "resume": (("paused",), "running"),
    "stop": (("pending", "running", "paused"), "stopped"),
}


@app.post(
    "/scraping/jobs",
    status_code=202,
    response_model=ScrapingJobResponse,
    tags=["scraping"],
    summary="Start a scraping job",
)
def create_scraping_job(
    request: ScrapingJobCreate,
    db: Session = Depends(get_db),
    job_queue: JobQueue = Depends(get_job_queue),
):
    try:
        return job_queue.enqueue_scraping(
            db,
            user_id=request.user_id,
            keywords=request.keywords,
            location=request.location,
            sources=request.sources,
        )
    except Exception as e:
        logger.exception("Failed to queue scraping job")
        raise HTTPException(status_code=503, detail=f"Job queue unavailable: {str(e)}")


@app.get("/scraping/jobs/{job_id}", response_model=ScrapingJobResponse, tags=["scraping"])
def get_scraping_job(job_id: str, db: Session = Depends(get_db)):
    job = db.get(ScrapingJob, job_id)
    if not job:
        raise HTTPException(status_code=404, detail=f"Scraping job {job_id} not found")
    return job


@app.post(
    "/scraping/jobs/{job_id}/control",
    response_model=ScrapingJobResponse,
    tags=["scraping"],
    summary="Pause, resume or stop a scraping job",
    description="The worker picks the new status up on its next loop iteration.",
)
def control_scraping_job(job_id: str, request: ScrapingControlRequest, db: Session = Depends(get_db)):
    job = db.get(ScrapingJob, job_id)
    if not job:
        raise HTTPException(status_code=404, detail=f"Scraping job {job_id} not found")

    allowed, new_status = SCRAPING_TRANSITIONS[request.action]
    if job.status not in allowed:
        raise HTTPException(status_code=409, detail=f"Cannot {request.action} a job that is {job.status}")

    job.status = new_status
    db.commit()
    db.refresh(job)
    logger.info(f"Scraping job {job_id}: {request.action} -> {new_status}")
    return job
