"""
Graph Engine for AutoLoop Workflow System

The GraphEngine is responsible for:
1. Loading workflow definitions (builder JSON → Node objects)
2. Walking the graph depth-first from the start node, once per business
3. Dispatching each node to its handler and following the edges it selects
4. Classifying the run from the errors recorded on it
5. Writing success / failure notifications

Traversal rules:
- siblings are walked sequentially in edge-list order
- a node reachable through two paths runs once per path (no dedup)
- condition / abSplit / template-error route to handle-specific edges only
- delay nodes park their branch as a Suspension for the worker to re-enqueue

Example:
    engine = GraphEngine(db_session=db, integrations=Integrations.from_env())

    result = await engine.execute(
        workflow.graph_definition,
        ExecutionContext.from_business(business, user_id, workflow.id),
    )
    result.success, result.logs
"""

import logging
import random
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from sqlalchemy.orm import Session

from .context import ExecutionContext
from .exceptions import AutoloopException, GraphExecutionError, GraphValidationError
from .handlers import get_handler
from .integrations import Integrations
from .integrations.notifications import NotificationService
from .nodes import WorkflowGraph
from .run import ExecutionResult, NodeOutcome, Suspension, WorkflowRun

logger = logging.getLogger(__name__)

# Nested node visits allowed in one path; graphs are not required to be acyclic
DEFAULT_MAX_DEPTH = 100

REPEATED_FAILURE_THRESHOLD = 3


def make_json_serializable(obj):
    """
    Recursively convert non-JSON-serializable objects to serializable format.

    Handles:
    - datetime → ISO 8601 string
    - bytes → base64 string (for binary data)
    - sets / tuples → lists
    - custom objects → str(obj)
    """
    import base64

    if isinstance(obj, dict):
        return {k: make_json_serializable(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple, set)):
        return [make_json_serializable(item) for item in obj]
    elif isinstance(obj, datetime):
        return obj.isoformat()
    elif isinstance(obj, bytes):
        return base64.b64encode(obj).decode('ascii')
    elif hasattr(obj, '__dict__'):
        return str(obj)
    else:
        return obj


class GraphEngine:
    """
    Core execution engine for workflow graphs.

    One engine can run many workflows; all per-run state lives in the
    WorkflowRun created by execute().
    """

    def __init__(
        self,
        db_session: Optional[Session] = None,
        integrations: Optional[Integrations] = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
        random_fn: Callable[[], float] = random.random,
    ):
        """
        Initialize GraphEngine.

        Args:
            db_session: SQLAlchemy session used by handlers and notifications (optional)
            integrations: Outbound clients (defaults to unconfigured clients)
            max_depth: Maximum nested node visits before the run is aborted
            random_fn: Source of uniform [0, 1) draws for A/B splits
        """
        self.db_session = db_session
        self.integrations = integrations or Integrations()
        self.max_depth = max_depth
        self.random_fn = random_fn

    def parse_workflow(self, workflow_definition: Dict[str, Any]) -> WorkflowGraph:
        """
        Parse builder JSON ({"nodes": [...], "edges": [...]}) into a graph.

        Raises:
            GraphValidationError: If a node or edge cannot be parsed
        """
        if not isinstance(workflow_definition, dict) or "nodes" not in workflow_definition:
            raise GraphValidationError("Workflow definition missing 'nodes' field")

        try:
            graph = WorkflowGraph.from_definition(
                workflow_definition.get("nodes") or [],
                workflow_definition.get("edges") or [],
            )
        except ValueError as e:
            raise GraphValidationError(str(e))

        logger.info(f"Parsed workflow: {len(graph.nodes)} nodes, {len(graph.edges)} edges")
        return graph

    async def execute(
        self,
        workflow: Union[WorkflowGraph, Dict[str, Any]],
        context: ExecutionContext,
        start_node_ids: Optional[List[str]] = None,
        workflow_name: Optional[str] = None,
    ) -> ExecutionResult:
        """
        Walk the graph for one business.

        Args:
            workflow: Parsed graph or builder JSON
            context: Run context (business snapshot, variables, ids)
            start_node_ids: Resume from these nodes instead of the start node
            workflow_name: Used in notifications

        Returns:
            ExecutionResult. Exceptions raised by handlers are caught,
            logged to the transcript and turned into success=False.
        """
        run = WorkflowRun(None, context, self.db_session, self.integrations, self.random_fn)

        try:
            graph = workflow if isinstance(workflow, WorkflowGraph) else self.parse_workflow(workflow)
        except GraphValidationError as e:
            run.error(f"Error: Invalid workflow: {e.message}", retryable=False)
            return self._finish(run, workflow_name)
        run.graph = graph

        if start_node_ids:
            entry_nodes = [graph.get_node(node_id) for node_id in start_node_ids]
            entry_nodes = [node for node in entry_nodes if node is not None]
            if not entry_nodes:
                run.error(f"Error: Resume nodes not found: {', '.join(start_node_ids)}", retryable=False)
                return self._finish(run, workflow_name)
            run.log(f"Resuming workflow execution for business: {context.business_id}")
        else:
            start_nodes = graph.find_start_nodes()
            if not start_nodes:
                return ExecutionResult(
                    success=False,
                    logs=["Error: No start node found"],
                    error="No start node found",
                    errors=["No start node found"],
                    retryable=False,
                )
            if len(start_nodes) > 1:
                run.error(f"Error: Workflow has {len(start_nodes)} start nodes, expected exactly one", retryable=False)
                return self._finish(run, workflow_name)
            entry_nodes = start_nodes
            run.log(f"Starting workflow execution for business: {context.business_id}")

        try:
            for node in entry_nodes:
                await self._execute_node(node, run, depth=1)
        except AutoloopException as e:
            run.error(f"Error: {e.message}", retryable=e.retry_allowed)
        except Exception as e:
            logger.exception(f"Unexpected error in workflow {context.workflow_id}")
            run.error(f"Error: {e}")

        return self._finish(run, workflow_name)

    async def _execute_node(self, node, run: WorkflowRun, depth: int) -> None:
        if depth > self.max_depth:
            raise GraphExecutionError(
                f"Maximum node depth ({self.max_depth}) exceeded at node {node.id}. Possible cycle?"
            )

        run.log(f"Executing {node.type} node: {node.display_label}")
        handler = get_handler(node.type)
        outcome = await handler(node, run)

        if outcome.kind == NodeOutcome.STOP:
            return

        if outcome.kind == NodeOutcome.SUSPEND:
            targets = [edge.target for edge in run.graph.outgoing(node.id)]
            if targets:
                run.suspensions.append(Suspension(node.id, targets, outcome.delay_seconds))
                run.log(f"⏸️ Branch paused, resumes at {', '.join(targets)}")
            return

        if outcome.kind == NodeOutcome.ROUTE:
            edges = run.graph.outgoing(node.id, outcome.handle)
            if not edges:
                if outcome.warn_if_missing:
                    run.warn(f"No path connected for '{outcome.handle}' branch, stopping")
                return
        else:
            edges = run.graph.outgoing(node.id)

        for edge in edges:
            target = run.graph.get_node(edge.target)
            if target is None:
                logger.warning(f"Edge {edge.id} points to missing node {edge.target}, skipping")
                continue
            await self._execute_node(target, run, depth + 1)

    def _finish(self, run: WorkflowRun, workflow_name: Optional[str]) -> ExecutionResult:
        result = run.result()
        if self.db_session is not None:
            self._notify(run.context, result, workflow_name)
        logger.info(
            f"Workflow {run.context.workflow_id} finished for business {run.context.business_id}: "
            f"{'success' if result.success else 'failed'} ({len(result.logs)} log lines)"
        )
        return result

    def _notify(self, context: ExecutionContext, result: ExecutionResult, workflow_name: Optional[str]) -> None:
        """Success/failure notification, plus a warning when failures keep repeating."""
        from ..models.execution import WorkflowExecutionLog

        name = workflow_name or context.workflow_id
        business = context.business_data.get("name") or context.business_id
        notifications = NotificationService(self.db_session)

        try:
            if result.success:
                notifications.create(
                    context.user_id,
                    "Workflow Completed",
                    f'Workflow "{name}" completed for {business}',
                    level="success",
                    category="workflow",
                )
                return

            notifications.create(
                context.user_id,
                "Workflow Failed",
                f'Workflow "{name}" failed for {business}: {result.error}',
                level="error",
                category="workflow",
            )

            recent_failures = (
                self.db_session.query(WorkflowExecutionLog.id)
                .filter(
                    WorkflowExecutionLog.workflow_id == context.workflow_id,
                    WorkflowExecutionLog.status == "failed",
                )
                .order_by(WorkflowExecutionLog.created_at.desc())
                .limit(REPEATED_FAILURE_THRESHOLD)
                .all()
            )
            if len(recent_failures) >= REPEATED_FAILURE_THRESHOLD:
                notifications.create(
                    context.user_id,
                    "Repeated Workflow Failures",
                    f'Workflow "{name}" has failed {REPEATED_FAILURE_THRESHOLD} or more times recently. '
                    f"Check its configuration.",
                    level="warning",
                    category="workflow",
                )
        except Exception as e:
            self.db_session.rollback()
            logger.error(f"Failed to write workflow notification: {e}")
