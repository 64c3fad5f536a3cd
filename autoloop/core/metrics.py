"""
Metrics Collection for AutoLoop

Provides dashboard/system metrics including:
- Workflow run statistics (execution logs by status, success rate)
- Error rate over a short window
- Outreach volume (emails sent / failed today)
- Scraping job states
- Database connectivity
"""

import logging
import time
from datetime import datetime, timedelta
from typing import Any, Dict

from sqlalchemy import func, text
from sqlalchemy.orm import Session

from ..models.email import EmailLog
from ..models.execution import WorkflowExecutionLog
from ..models.scraping_job import ScrapingJob
from ..models.workflow import Workflow
from .outreach import get_daily_limit, local_day_bounds

logger = logging.getLogger(__name__)

RUN_STATUSES = ("pending", "running", "success", "failed")


class MetricsCollector:
    """
    Collects and aggregates metrics, optionally scoped to one user.

    Every getter catches its own errors so one failing query never hides the
    rest of the report.
    """

    def __init__(self, db_session: Session, user_id: str = None):
        self.db_session = db_session
        self.user_id = user_id

    def _scoped(self, query, column):
        if self.user_id is not None:
            query = query.filter(column == self.user_id)
        return query

    def get_execution_stats(self, hours: int = 24) -> Dict[str, Any]:
        """
        Workflow run statistics over the last `hours`.

        Returns:
            {"total", "success", "failed", "pending", "running", "success_rate"}
            success_rate is computed over finished runs only.
        """
        result = {status: 0 for status in RUN_STATUSES}
        result.update({"total": 0, "success_rate": 0.0})
        try:
            since = datetime.utcnow() - timedelta(hours=hours)
            query = self.db_session.query(
                WorkflowExecutionLog.status,
                func.count(WorkflowExecutionLog.id).label("count"),
            ).filter(WorkflowExecutionLog.created_at >= since)
            query = self._scoped(query, WorkflowExecutionLog.user_id)

            for status, count in query.group_by(WorkflowExecutionLog.status).all():
                result["total"] += count
                if status in result:
                    result[status] = count

            finished = result["success"] + result["failed"]
            if finished > 0:
                result["success_rate"] = round(result["success"] / finished * 100, 2)
            return result

        except Exception as e:
            logger.error(f"Failed to get execution stats: {e}")
            result["error"] = str(e)
            return result

    def get_error_rate(self, hours: int = 1) -> Dict[str, Any]:
        try:
            since = datetime.utcnow() - timedelta(hours=hours)
            base = self._scoped(
                self.db_session.query(func.count(WorkflowExecutionLog.id)),
                WorkflowExecutionLog.user_id,
            ).filter(
                WorkflowExecutionLog.completed_at.isnot(None),
                WorkflowExecutionLog.completed_at >= since,
            )
            total = base.scalar() or 0
            failed = base.filter(WorkflowExecutionLog.status == "failed").scalar() or 0

            return {
                "period_hours": hours,
                "total_executions": total,
                "failed_executions": failed,
                "error_rate": round(failed / total * 100, 2) if total > 0 else 0.0,
            }

        except Exception as e:
            logger.error(f"Failed to get error rate: {e}")
            return {
                "period_hours": hours,
                "total_executions": 0,
                "failed_executions": 0,
                "error_rate": 0.0,
                "error": str(e),
            }

    def get_workflow_stats(self) -> Dict[str, Any]:
        try:
            query = self._scoped(self.db_session.query(func.count(Workflow.id)), Workflow.user_id)
            total = query.scalar() or 0
            active = query.filter(Workflow.is_active.is_(True)).scalar() or 0
            return {"total_workflows": total, "active_workflows": active}

        except Exception as e:
            logger.error(f"Failed to get workflow stats: {e}")
            return {"total_workflows": 0, "active_workflows": 0, "error": str(e)}

    def get_email_stats(self) -> Dict[str, Any]:
        """Today's outreach volume against the daily cap (local day)."""
        try:
            day_start, _ = local_day_bounds()
            query = self._scoped(
                self.db_session.query(EmailLog.status, func.count(EmailLog.id)),
                EmailLog.user_id,
            ).filter(EmailLog.created_at >= day_start)
            counts = dict(query.group_by(EmailLog.status).all())
            return {
                "sent_today": counts.get("sent", 0),
                "failed_today": counts.get("failed", 0),
                "daily_limit": get_daily_limit(),
            }

        except Exception as e:
            logger.error(f"Failed to get email stats: {e}")
            return {"sent_today": 0, "failed_today": 0, "daily_limit": get_daily_limit(), "error": str(e)}

    def get_scraping_stats(self) -> Dict[str, Any]:
        try:
            query = self._scoped(
                self.db_session.query(ScrapingJob.status, func.count(ScrapingJob.id)),
                ScrapingJob.user_id,
            )
            return {"jobs_by_status": dict(query.group_by(ScrapingJob.status).all())}

        except Exception as e:
            logger.error(f"Failed to get scraping stats: {e}")
            return {"jobs_by_status": {}, "error": str(e)}

    def get_database_health(self) -> Dict[str, Any]:
        try:
            start = time.time()
            self.db_session.execute(text("SELECT 1")).fetchone()
            return {"connected": True, "response_time_ms": round((time.time() - start) * 1000, 2)}

        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return {"connected": False, "response_time_ms": None, "error": str(e)}

    def get_all_metrics(self) -> Dict[str, Any]:
        return {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "executions": self.get_execution_stats(hours=24),
            "error_rate": self.get_error_rate(hours=1),
            "workflows": self.get_workflow_stats(),
            "email": self.get_email_stats(),
            "scraping": self.get_scraping_stats(),
            "database": self.get_database_health(),
        }


def check_system_health(db_session: Session) -> Dict[str, Any]:
    """
    Overall health for the /health endpoint.

    Returns:
        {"healthy", "components", "issues", "metrics"}
    """
    metrics = MetricsCollector(db_session).get_all_metrics()

    issues = []
    components = {}

    components["database"] = metrics["database"]["connected"]
    if not components["database"]:
        issues.append("Database connection failed")

    error_rate = metrics["error_rate"]["error_rate"]
    components["error_rate"] = error_rate < 50.0
    if not components["error_rate"]:
        issues.append(f"High workflow error rate: {error_rate}%")

    return {
        "healthy": all(components.values()),
        "components": components,
        "issues": issues or None,
        "metrics": metrics,
    }
