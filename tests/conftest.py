"""
Pytest fixtures for AutoLoop tests

This module provides shared fixtures for all tests:
- Database session fixtures (in-memory SQLite)
- Seeded rows: user, business, email template, workflow
- Fake integrations (Gmail, WhatsApp, scrapers, LinkedIn, code sandbox)
- Fake Celery app / JobQueue
- Builders for workflow definitions in the visual builder's format
"""

import subprocess
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest
from unittest.mock import AsyncMock, Mock
from typing import Any, Dict, List, Optional
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from autoloop.models import Base
from autoloop.models.business import Business
from autoloop.models.email import EmailTemplate
from autoloop.models.user import User
from autoloop.models.workflow import Workflow
from autoloop.core.context import ExecutionContext
from autoloop.core.integrations import E2BCodeRunner, Integrations, SendResult
from autoloop.core.integrations.linkedin import AutomationResult, LinkedInAutomation
from autoloop.core.integrations.scrapers import ScrapeOptions, ScraperRegistry, ScraperSource
from autoloop.workers.jobs import WorkerRuntime
from autoloop.workers.queue import JobQueue


# ============================================================================
# DATABASE FIXTURES
# ============================================================================

@pytest.fixture(scope="function")
def db_engine():
    """
    In-memory SQLite engine shared by every connection of one test.

    StaticPool keeps the single connection alive so the API tests (which
    run requests on another thread) see the same database.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine):
    """
    Create an in-memory SQLite database for testing.
    Each test gets a fresh database that's torn down after the test.
    """
    SessionLocal = sessionmaker(bind=db_engine)
    session = SessionLocal()

    try:
        yield session
    finally:
        session.close()


# ============================================================================
# SEEDED ROWS
# ============================================================================

@pytest.fixture
def user(db_session):
    user = User(
        email="ana@autoloop.test",
        name="Ana",
        access_token="google-token",
        phone="+1 512 555 0100",
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def business(db_session, user):
    business = Business(
        user_id=user.id,
        name="Luigi's Pizza",
        email="hello@luigis.test",
        phone="+1 512 555 0199",
        website="https://luigis.test",
        address="1 Congress Ave",
        category="Restaurant",
        rating=4.8,
        review_count=120,
        source="google-maps",
    )
    db_session.add(business)
    db_session.commit()
    return business


@pytest.fixture
def template(db_session, user):
    template = EmailTemplate(
        user_id=user.id,
        name="Intro",
        subject="Quick question for {brand_name}",
        body="Hi {business.name}, I'm {sender_name}.",
    )
    db_session.add(template)
    db_session.commit()
    return template


@pytest.fixture
def make_workflow(db_session, user):
    """Factory: persist a workflow with the given nodes and edges."""
    def _make(nodes: List[Dict[str, Any]], edges: List[Dict[str, Any]], **fields) -> Workflow:
        workflow = Workflow(
            user_id=user.id,
            name=fields.pop("name", "Restaurant outreach"),
            nodes=nodes,
            edges=edges,
            **fields,
        )
        db_session.add(workflow)
        db_session.commit()
        return workflow

    return _make


# ============================================================================
# WORKFLOW DEFINITION BUILDERS
# ============================================================================

@pytest.fixture
def make_node():
    """Node in the builder's format: {id, type, data: {type, label, config}}."""
    def _make(node_id: str, node_type: str, label: Optional[str] = None, **config) -> Dict[str, Any]:
        return {
            "id": node_id,
            "type": "workflowNode",
            "position": {"x": 0, "y": 0},
            "data": {"type": node_type, "label": label or node_id, "config": config},
        }

    return _make


@pytest.fixture
def make_edge():
    def _make(source: str, target: str, handle: Optional[str] = None) -> Dict[str, Any]:
        edge = {"id": f"{source}->{target}", "source": source, "target": target}
        if handle is not None:
            edge["sourceHandle"] = handle
        return edge

    return _make


@pytest.fixture
def linear_workflow(make_node, make_edge):
    """start -> set -> set"""
    return {
        "nodes": [
            make_node("start", "start", "Start"),
            make_node("first", "set", "First", values={"step": 1}),
            make_node("second", "set", "Second", values={"step": 2}),
        ],
        "edges": [
            make_edge("start", "first"),
            make_edge("first", "second"),
        ],
    }


@pytest.fixture
def business_context():
    """Run context for a business not attached to any database row."""
    return ExecutionContext(
        business_id="biz-1",
        business_data={
            "name": "Luigi's Pizza",
            "email": "hello@luigis.test",
            "phone": "+1 512 555 0199",
            "website": "",
            "category": "Restaurant",
            "rating": 4.8,
            "reviewCount": 120,
            "emailSent": False,
        },
        user_id="user-1",
        workflow_id="wf-1",
    )


# ============================================================================
# FAKE INTEGRATIONS
# ============================================================================

class FakeScraperSource(ScraperSource):
    """Returns one queued batch per call, then nothing."""

    def __init__(self, name: str, batches: Optional[List[List[Dict[str, Any]]]] = None, error: Exception = None):
        self.name = name
        self.batches = list(batches or [])
        self.error = error
        self.calls: List[ScrapeOptions] = []

    async def scrape(self, options: ScrapeOptions, user_id: str) -> List[Dict[str, Any]]:
        self.calls.append(options)
        if self.error is not None:
            raise self.error
        return self.batches.pop(0) if self.batches else []


class LocalSandbox:
    """
    Stands in for an E2B sandbox: files land under a temp directory and
    commands run in a child interpreter, so custom code still executes
    outside the test process.
    """

    sandbox_id = "local-sandbox"

    def __init__(self, root: Path):
        self.root = root
        self.killed = False
        self.commands_run: List[str] = []
        self.files = SimpleNamespace(write=self._write)
        self.commands = SimpleNamespace(run=self._run)

    def _path(self, path: str) -> Path:
        return self.root / path.lstrip("/")

    def _write(self, path: str, data: str) -> None:
        target = self._path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(data, encoding="utf-8")

    def _run(self, cmd: str, timeout: Optional[float] = None):
        self.commands_run.append(cmd)
        _, script = cmd.split(" ", 1)
        completed = subprocess.run(
            [sys.executable, str(self._path(script))],
            capture_output=True, text=True, encoding="utf-8", timeout=timeout,
        )
        return SimpleNamespace(exit_code=completed.returncode, stdout=completed.stdout, stderr=completed.stderr)

    def kill(self) -> None:
        self.killed = True


class FakeLinkedIn(LinkedInAutomation):

    def __init__(self, result: Optional[AutomationResult] = None):
        self.result = result or AutomationResult(success=True, logs=["Opened profile"])
        self.requests = []

    async def send_connection_request(self, session_cookie, profile_url, message):
        self.requests.append((session_cookie, profile_url, message))
        return self.result


@pytest.fixture
def make_source(scrapers):
    """Factory: register a FakeScraperSource on the test registry."""
    def _make(name: str = "google-maps", batches=None, error: Exception = None) -> FakeScraperSource:
        source = FakeScraperSource(name, batches=batches, error=error)
        scrapers.register(source)
        return source

    return _make


@pytest.fixture
def email_sender():
    sender = Mock()
    sender.send = AsyncMock(return_value=SendResult(success=True, message_id="gmail-1"))
    return sender


@pytest.fixture
def whatsapp():
    client = Mock()
    client.send_template = AsyncMock(return_value=SendResult(success=True, message_id="wamid-1"))
    client.send_text = AsyncMock(return_value=SendResult(success=True, message_id="wamid-2"))
    return client


@pytest.fixture
def scrapers():
    return ScraperRegistry()


@pytest.fixture
def sandboxes():
    """Every LocalSandbox created by the code_runner fixture, in order."""
    return []


@pytest.fixture
def code_runner(tmp_path, sandboxes):
    def factory(api_key, template, timeout):
        sandbox = LocalSandbox(tmp_path / f"sandbox-{len(sandboxes)}")
        sandboxes.append(sandbox)
        return sandbox

    return E2BCodeRunner(api_key="e2b-test", sandbox_factory=factory)


@pytest.fixture
def integrations(email_sender, whatsapp, scrapers, code_runner):
    """Integrations wired to fakes; transient email retries do not sleep."""
    return Integrations(
        email_sender=email_sender,
        whatsapp=whatsapp,
        scrapers=scrapers,
        linkedin=FakeLinkedIn(),
        gemini_api_key=None,
        code_runner=code_runner,
        email_retry_delay=0,
    )


# ============================================================================
# QUEUE FIXTURES
# ============================================================================

@pytest.fixture
def celery_app():
    """Stand-in for the Celery app: records send_task calls."""
    app = Mock()
    counter = {"n": 0}

    def send_task(name, args=None, **options):
        counter["n"] += 1
        return Mock(id=f"task-{counter['n']}")

    app.send_task = Mock(side_effect=send_task)
    return app


@pytest.fixture
def job_queue(celery_app):
    return JobQueue(celery_app=celery_app)


@pytest.fixture
def runtime(integrations, job_queue):
    return WorkerRuntime(integrations=integrations, queue=job_queue)
