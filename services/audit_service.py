import json
import logging

from extensions import db
from models import AuditLog
from models.audit_log import AUDIT_ACTIONS

logger = logging.getLogger(__name__)


def _dump(values):
    if values is None:
        return None
    return json.dumps(values, default=str, sort_keys=True)


def record(action, table_name, record_id=None, old_values=None, new_values=None):
    """Add an audit row to the current session; the caller owns the commit."""
    action = action.upper()
    if action not in AUDIT_ACTIONS:
        raise ValueError(f"Invalid audit action {action!r}")

    entry = AuditLog(
        action=action,
        table_name=table_name,
        record_id=record_id,
        old_values=_dump(old_values),
        new_values=_dump(new_values),
    )
    db.session.add(entry)
    logger.debug("audit %s %s:%s", action, table_name, record_id)
    return entry


def entries_for(table_name, record_id=None):
    query = AuditLog.query.filter_by(table_name=table_name)
    if record_id is not None:
        query = query.filter_by(record_id=record_id)
    return query.order_by(AuditLog.audit_id.asc()).all()
