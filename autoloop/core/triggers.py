"""
Trigger Scheduler

Polled by the `poll_workflow_triggers` beat task. Every due trigger
(is_active and next_run_at <= now) selects its businesses and hands one run
per business to the workflow queue through `enqueue`; nothing is executed
inline.

Trigger types:
- schedule:         businesses not yet emailed, workflow.target_business_type filter
- new_business:     businesses created since the trigger last ran
                    (config: targetBusinessTypes, minRating)
- delay_completion: businesses whose last successful run of the workflow
                    finished at least config.delayHours ago, once per trigger

next_run_at comes from config.cron (or cronExpression) evaluated in
APP_TIMEZONE; without a usable cron expression it is now + 24h.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional
from zoneinfo import ZoneInfo

from apscheduler.triggers.cron import CronTrigger
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..models.business import Business
from ..models.execution import WorkflowExecutionLog
from ..models.trigger import WorkflowTrigger, WorkflowTriggerExecution
from ..models.workflow import Workflow
from .outreach import get_timezone

logger = logging.getLogger(__name__)

BATCH_LIMIT = 50
DEFAULT_INTERVAL = timedelta(hours=24)
DEFAULT_DELAY_HOURS = 24

TRIGGER_TYPES = ("schedule", "new_business", "delay_completion")

# (db, workflow, business_id) -> execution log id
EnqueueFn = Callable[[Session, Workflow, str], str]


def calculate_next_run(
    config: Optional[Dict[str, Any]],
    now: Optional[datetime] = None,
    tz: Optional[ZoneInfo] = None,
) -> datetime:
    """
    Next fire time strictly after `now`, as a naive UTC datetime.

    Example:
        >>> calculate_next_run({"cron": "0 9 * * *"}, datetime(2025, 1, 1, 10, 0))
        datetime(2025, 1, 2, 9, 0)
    """
    now = now or datetime.utcnow()
    config = config or {}
    expression = config.get("cron") or config.get("cronExpression")
    if not expression:
        return now + DEFAULT_INTERVAL

    tz = tz or get_timezone()
    utc = ZoneInfo("UTC")
    try:
        cron = CronTrigger.from_crontab(expression, timezone=tz)
    except ValueError as e:
        logger.warning(f"Invalid cron expression '{expression}': {e}. Falling back to 24h")
        return now + DEFAULT_INTERVAL

    aware_now = now.replace(tzinfo=utc) + timedelta(seconds=1)
    next_fire = cron.get_next_fire_time(None, aware_now)
    if next_fire is None:
        return now + DEFAULT_INTERVAL
    return next_fire.astimezone(utc).replace(tzinfo=None)


def select_outreach_targets(db: Session, workflow: Workflow, limit: int = BATCH_LIMIT) -> List[str]:
    """Businesses not emailed yet, in the workflow's target category when it has one."""
    query = db.query(Business.id).filter(
        Business.user_id == workflow.user_id,
        Business.email_sent.is_(False),
    )
    if workflow.target_business_type:
        query = query.filter(Business.category == workflow.target_business_type)
    return [row.id for row in query.order_by(Business.created_at).limit(limit).all()]


class TriggerScheduler:
    """
    Fires due triggers through the workflow queue.

    Example:
        scheduler = TriggerScheduler(db, enqueue=job_queue.enqueue_workflow)
        fired = scheduler.process_due_triggers()
    """

    def __init__(self, db_session: Session, enqueue: EnqueueFn):
        self.db = db_session
        self.enqueue = enqueue

    def process_due_triggers(self, now: Optional[datetime] = None) -> int:
        """Returns the number of runs enqueued."""
        now = now or datetime.utcnow()
        due = (
            self.db.query(WorkflowTrigger)
            .filter(
                WorkflowTrigger.is_active.is_(True),
                WorkflowTrigger.next_run_at.isnot(None),
                WorkflowTrigger.next_run_at <= now,
            )
            .order_by(WorkflowTrigger.next_run_at)
            .all()
        )
        if due:
            logger.info(f"Processing {len(due)} due trigger(s)")

        total = 0
        for trigger in due:
            try:
                total += self.fire(trigger, now)
            except Exception as e:
                self.db.rollback()
                logger.exception(f"Error executing trigger {trigger.id}: {e}")
        return total

    def fire(self, trigger: WorkflowTrigger, now: Optional[datetime] = None) -> int:
        now = now or datetime.utcnow()
        workflow = self.db.get(Workflow, trigger.workflow_id)
        if workflow is None:
            logger.warning(f"Trigger {trigger.id} points to missing workflow {trigger.workflow_id}, deactivating")
            trigger.is_active = False
            self.db.commit()
            return 0

        business_ids = self.select_businesses(trigger, workflow, now)
        logger.info(
            f"Trigger {trigger.id} ({trigger.trigger_type}) selected {len(business_ids)} "
            f"business(es) for workflow {workflow.id}"
        )

        queued = 0
        for business_id in business_ids:
            record = WorkflowTriggerExecution(
                trigger_id=trigger.id,
                workflow_id=workflow.id,
                business_id=business_id,
                executed_at=now,
            )
            try:
                record.execution_id = self.enqueue(self.db, workflow, business_id)
                record.status = "queued"
                queued += 1
            except Exception as e:
                logger.error(f"Trigger {trigger.id}: failed to enqueue business {business_id}: {e}")
                record.status = "failed"
                record.error = str(e)[:1000]
            self.db.add(record)

        trigger.last_run_at = now
        trigger.next_run_at = calculate_next_run(trigger.config, now)
        self.db.commit()
        logger.info(f"Trigger {trigger.id}: queued {queued} run(s), next run at {trigger.next_run_at.isoformat()}")
        return queued

    def select_businesses(self, trigger: WorkflowTrigger, workflow: Workflow, now: datetime) -> List[str]:
        config = trigger.config or {}
        if trigger.trigger_type == "schedule":
            return self._schedule_targets(workflow)
        if trigger.trigger_type == "new_business":
            return self._new_business_targets(trigger, workflow, config)
        if trigger.trigger_type == "delay_completion":
            return self._delay_completion_targets(trigger, workflow, config, now)

        logger.warning(f"Unknown trigger type '{trigger.trigger_type}' on trigger {trigger.id}")
        return []

    # ------------------------------------------------------------------
    # Selection per trigger type
    # ------------------------------------------------------------------

    def _schedule_targets(self, workflow: Workflow) -> List[str]:
        return select_outreach_targets(self.db, workflow)

    def _new_business_targets(self, trigger: WorkflowTrigger, workflow: Workflow, config: Dict[str, Any]) -> List[str]:
        since = trigger.last_run_at or trigger.created_at
        types = config.get("targetBusinessTypes") or (
            [workflow.target_business_type] if workflow.target_business_type else []
        )

        query = self.db.query(Business.id).filter(
            Business.user_id == workflow.user_id,
            Business.email_sent.is_(False),
        )
        if since is not None:
            query = query.filter(Business.created_at > since)
        if types:
            query = query.filter(Business.category.in_(types))
        if config.get("minRating") is not None:
            query = query.filter(Business.rating >= float(config["minRating"]))
        return [row.id for row in query.order_by(Business.created_at).limit(BATCH_LIMIT).all()]

    def _delay_completion_targets(
        self,
        trigger: WorkflowTrigger,
        workflow: Workflow,
        config: Dict[str, Any],
        now: datetime,
    ) -> List[str]:
        delay_hours = float(config.get("delayHours", DEFAULT_DELAY_HOURS))
        cutoff = now - timedelta(hours=delay_hours)

        processed = select(WorkflowTriggerExecution.business_id).where(
            WorkflowTriggerExecution.trigger_id == trigger.id,
            WorkflowTriggerExecution.status == "queued",
            WorkflowTriggerExecution.business_id.isnot(None),
        )

        rows = (
            self.db.query(WorkflowExecutionLog.business_id)
            .filter(
                WorkflowExecutionLog.workflow_id == workflow.id,
                WorkflowExecutionLog.status == "success",
                WorkflowExecutionLog.business_id.isnot(None),
                WorkflowExecutionLog.business_id.notin_(processed),
            )
            .group_by(WorkflowExecutionLog.business_id)
            .having(func.max(WorkflowExecutionLog.completed_at) <= cutoff)
            .limit(BATCH_LIMIT)
            .all()
        )
        return [row.business_id for row in rows]
