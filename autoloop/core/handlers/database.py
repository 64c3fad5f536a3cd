"""
database node handler.

insert / update / upsert / delete against an allow-listed table with an
interpolated JSON payload. Rows are always scoped to the workflow owner when
the table has a user_id column. Failures are non-fatal.
"""

import json
import os
from typing import Any, Dict, Set

from sqlalchemy import and_
from sqlalchemy.exc import SQLAlchemyError

from ...models import Base
from ..resolver import interpolate
from ..run import NodeOutcome, WorkflowRun

DEFAULT_ALLOWED_TABLES = "businesses"


def allowed_tables() -> Set[str]:
    raw = os.getenv("DATABASE_NODE_TABLES", DEFAULT_ALLOWED_TABLES)
    return {name.strip() for name in raw.split(",") if name.strip()}


def _parse_payload(raw: Any, run: WorkflowRun) -> Dict[str, Any]:
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return {k: interpolate(v, run.context) if isinstance(v, str) else v for k, v in raw.items()}
    parsed = json.loads(interpolate(raw, run.context))
    if not isinstance(parsed, dict):
        raise ValueError("payload must be a JSON object")
    return parsed


async def handle_database(node, run: WorkflowRun) -> NodeOutcome:
    config = node.config
    ctx = run.context
    db = run.require_db()

    table_name = config.table_name
    if not table_name or table_name not in allowed_tables():
        run.soft_error(f"Database operation skipped: table '{table_name}' is not allowed")
        return NodeOutcome.proceed()
    table = Base.metadata.tables[table_name]

    try:
        payload = _parse_payload(config.data, run)
    except ValueError as e:
        run.soft_error(f"Database operation skipped: invalid data ({e})")
        return NodeOutcome.proceed()

    unknown = sorted(set(payload) - set(table.c.keys()))
    if unknown:
        run.warn(f"Ignoring unknown columns for {table_name}: {', '.join(unknown)}")
    values = {k: v for k, v in payload.items() if k in table.c}

    scope = []
    if "user_id" in table.c:
        values["user_id"] = ctx.user_id
        scope.append(table.c.user_id == ctx.user_id)

    match_field = config.match_field
    operation = config.operation

    try:
        if operation == "insert":
            rowcount = db.execute(table.insert().values(**values)).rowcount
        else:
            if match_field not in table.c or values.get(match_field) is None:
                run.soft_error(f"Database {operation} needs a value for '{match_field}'")
                return NodeOutcome.proceed()
            where = and_(table.c[match_field] == values[match_field], *scope)
            if operation == "delete":
                rowcount = db.execute(table.delete().where(where)).rowcount
            else:
                changes = {k: v for k, v in values.items() if k != match_field}
                rowcount = db.execute(table.update().where(where).values(**changes)).rowcount
                if operation == "upsert" and rowcount == 0:
                    rowcount = db.execute(table.insert().values(**values)).rowcount
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        run.soft_error(f"Database {operation} on {table_name} failed: {e}")
        return NodeOutcome.proceed()

    ctx.set_variable("dbResult", {"operation": operation, "table": table_name, "rowcount": rowcount})
    run.log(f"✅ Database {operation} on {table_name} affected {rowcount} row(s)")
    return NodeOutcome.proceed()
