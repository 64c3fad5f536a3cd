"""
Execution Context

Per-run state shared by every node of one (workflow, business) run:
- business_data: snapshot of the business row taken when the run starts
- variables: bag written by node handlers (aiResult, apiResponse, ...)
- user_id / workflow_id / business_id: identifiers of the run

The business snapshot is never re-fetched during a run. Writes a handler makes
to the business row (e.g. marking the email as sent) are not reflected here.
"""

import copy
from typing import Any, Dict, Optional


class ExecutionContext:
    """
    Mutable state for a single workflow run.

    Example:
        >>> ctx = ExecutionContext(
        ...     business_id="b1",
        ...     business_data={"name": "Luigi's", "rating": 4.8},
        ...     user_id="u1",
        ...     workflow_id="w1",
        ... )
        >>> ctx.set_variable("aiResult", "Hello Luigi's")
        >>> ctx.variables["aiResult"]
        "Hello Luigi's"
        >>> ctx.business_data["rating"]
        4.8
    """

    def __init__(
        self,
        business_id: Optional[str],
        business_data: Optional[Dict[str, Any]],
        user_id: str,
        workflow_id: str,
        variables: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize the context.

        Args:
            business_id: Business the run targets
            business_data: Snapshot of the business row (copied, not referenced)
            user_id: Owner of the workflow
            workflow_id: Workflow being executed
            variables: Initial variables (used when resuming after a delay node)
        """
        self.business_id = business_id
        self.business_data: Dict[str, Any] = copy.deepcopy(business_data) if business_data else {}
        self.user_id = user_id
        self.workflow_id = workflow_id
        self.variables: Dict[str, Any] = dict(variables) if variables else {}

    @classmethod
    def from_business(cls, business, user_id: str, workflow_id: str,
                      variables: Optional[Dict[str, Any]] = None) -> "ExecutionContext":
        """Build a context from a Business row (see Business.to_snapshot)."""
        return cls(
            business_id=business.id,
            business_data=business.to_snapshot(),
            user_id=user_id,
            workflow_id=workflow_id,
            variables=variables,
        )

    def set_variable(self, key: str, value: Any) -> None:
        self.variables[key] = value

    def update_variables(self, data: Dict[str, Any]) -> None:
        """Merge several variables at once (used by the set node)."""
        self.variables.update(data)

    def replace_variables(self, data: Dict[str, Any]) -> None:
        """Swap in the whole bag (custom code may add and remove keys)."""
        self.variables.clear()
        self.variables.update(data)

    def snapshot(self) -> Dict[str, Any]:
        """
        Deep copy of the run state.

        Persisted to the execution log at the end of the run and carried in
        the payload of a resumed run. Later mutations do not affect it.

        Example:
            >>> snap = ctx.snapshot()
            >>> ctx.set_variable("aiResult", "changed")
            >>> snap["variables"].get("aiResult")  # unchanged
        """
        return {
            "businessId": self.business_id,
            "userId": self.user_id,
            "workflowId": self.workflow_id,
            "businessData": copy.deepcopy(self.business_data),
            "variables": copy.deepcopy(self.variables),
        }

    def __repr__(self) -> str:
        return (
            f"ExecutionContext(workflow_id={self.workflow_id!r}, business_id={self.business_id!r}, "
            f"variables={list(self.variables.keys())})"
        )
