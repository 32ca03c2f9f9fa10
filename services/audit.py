"""
services/audit.py - Audit trail for report card changes
"""

import json
import logging

from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import AuditLog

logger = logging.getLogger(__name__)


def log_audit(action, entity_type, entity_id, user_id=None, details=None):
    """
    Record an audit entry. Fire-and-forget: a failure here is logged and
    never reaches the caller. Call it after the business change is committed.
    """
    try:
        entry = AuditLog(
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            user_id=user_id,
            details=json.dumps(details, default=str) if details else None
        )
        db.session.add(entry)
        db.session.commit()
        return entry
    except (SQLAlchemyError, TypeError, ValueError) as e:
        db.session.rollback()
        logger.warning("Audit log write failed for %s %s:%s: %s", action, entity_type, entity_id, e)
        return None
