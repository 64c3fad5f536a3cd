"""
Run state threaded through the graph walk.

- WorkflowRun: transcript, recorded errors and suspensions of one run, plus
  the collaborators handlers need (db session, integrations)
- NodeOutcome: what a handler tells the walker to do next
- ExecutionResult: what the walker returns

Success is decided from the errors recorded on the run, never by scanning
the transcript text.
"""

import logging
import random
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from .context import ExecutionContext
from .exceptions import GraphExecutionError
from .integrations import Integrations
from .nodes import WorkflowGraph

logger = logging.getLogger(__name__)


# ============================================================================
# NODE OUTCOMES
# ============================================================================

@dataclass(frozen=True)
class NodeOutcome:
    """
    CONTINUE: walk the default edges
    STOP:     end this branch (siblings unaffected)
    ROUTE:    walk only edges carrying `handle`
    SUSPEND:  end this branch now and resume its default targets later
    """

    CONTINUE = "continue"
    STOP = "stop"
    ROUTE = "route"
    SUSPEND = "suspend"

    kind: str
    handle: Optional[str] = None
    warn_if_missing: bool = True
    delay_seconds: int = 0

    @classmethod
    def proceed(cls) -> "NodeOutcome":
        return cls(cls.CONTINUE)

    @classmethod
    def stop(cls) -> "NodeOutcome":
        return cls(cls.STOP)

    @classmethod
    def route(cls, handle: str, warn_if_missing: bool = True) -> "NodeOutcome":
        return cls(cls.ROUTE, handle=handle, warn_if_missing=warn_if_missing)

    @classmethod
    def suspend(cls, delay_seconds: int) -> "NodeOutcome":
        return cls(cls.SUSPEND, delay_seconds=delay_seconds)


@dataclass
class Suspension:
    """A branch parked by a delay node, to be re-enqueued after delay_seconds."""

    node_id: str
    resume_node_ids: List[str]
    delay_seconds: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodeId": self.node_id,
            "resumeNodeIds": list(self.resume_node_ids),
            "delaySeconds": self.delay_seconds,
        }


# ============================================================================
# RESULT
# ============================================================================

@dataclass
class ExecutionResult:
    success: bool
    logs: List[str]
    error: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    suspensions: List[Suspension] = field(default_factory=list)
    # False when a failure will not go away on retry (bad definition, user code)
    retryable: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "logs": list(self.logs),
            "error": self.error,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "suspensions": [s.to_dict() for s in self.suspensions],
            "retryable": self.retryable,
        }


# ============================================================================
# RUN
# ============================================================================

class WorkflowRun:
    """
    Mutable state of one graph walk.

    Handlers write to the transcript through:
    - log(msg):        plain trace line
    - warn(msg):       "⚠️ msg", no effect on success
    - soft_error(msg): "❌ msg", non-fatal (AI/HTTP/scraper failures)
    - error(msg):      "❌ msg", marks the run failed but the walk goes on
    """

    def __init__(
        self,
        graph: Optional[WorkflowGraph],
        context: ExecutionContext,
        db_session: Optional[Session] = None,
        integrations: Optional[Integrations] = None,
        random_fn: Callable[[], float] = random.random,
    ):
        self.graph = graph
        self.context = context
        self.db_session = db_session
        self.integrations = integrations or Integrations()
        self.random = random_fn

        self.logs: List[str] = []
        self.errors: List[str] = []
        self.warnings: List[str] = []
        self.suspensions: List[Suspension] = []
        self.retryable = True

        self._user = None
        self._user_loaded = False

    # ------------------------------------------------------------------
    # Transcript
    # ------------------------------------------------------------------

    def log(self, message: str) -> None:
        self.logs.append(message)
        logger.info(message)

    def warn(self, message: str) -> None:
        self.logs.append(f"⚠️ {message}")
        logger.warning(message)

    def soft_error(self, message: str) -> None:
        self.logs.append(f"❌ {message}")
        self.warnings.append(message)
        logger.warning(message)

    def error(self, message: str, retryable: bool = True) -> None:
        self.logs.append(f"❌ {message}")
        self.errors.append(message)
        if not retryable:
            self.retryable = False
        logger.error(message)

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    def require_db(self) -> Session:
        if self.db_session is None:
            raise GraphExecutionError("This node requires a database session")
        return self.db_session

    @property
    def user(self):
        """Workflow owner, loaded once per run (None without a db session)."""
        if not self._user_loaded:
            self._user_loaded = True
            if self.db_session is not None:
                from ..models.user import User
                self._user = self.db_session.get(User, self.context.user_id)
        return self._user

    # ------------------------------------------------------------------
    # Result
    # ------------------------------------------------------------------

    @property
    def success(self) -> bool:
        return not self.errors

    def result(self) -> ExecutionResult:
        return ExecutionResult(
            success=self.success,
            logs=list(self.logs),
            error=self.errors[0] if self.errors else None,
            errors=list(self.errors),
            warnings=list(self.warnings),
            suspensions=list(self.suspensions),
            retryable=self.retryable,
        )
