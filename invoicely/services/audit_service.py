"""Audit trail helpers.

log_audit() adds a row to the current session and flushes; the caller owns
the commit, so the audit row lands in the same transaction as the change
it describes.
"""

import logging

from invoicely.extensions import db
from invoicely.models.audit import AuditLog

logger = logging.getLogger(__name__)


def log_audit(tenant_id, action, entity_type=None, entity_id=None,
              metadata=None, user_id=None):
    """Append an audit row. Returns the AuditLog (flushed, not committed)."""
    entry = AuditLog(
        tenant_id=tenant_id,
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        metadata_=metadata or {},
    )
    db.session.add(entry)
    db.session.flush()
    logger.info(f"Audit {action} tenant={tenant_id} {entity_type}={entity_id}")
    return entry


def list_audit_logs(tenant_id, limit=50):
    return (
        AuditLog.query
        .filter_by(tenant_id=tenant_id)
        .order_by(AuditLog.created_at.desc())
        .limit(limit)
        .all()
    )
