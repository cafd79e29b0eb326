"""
Audit Service - append-only trail of sensitive back-office actions.

Role changes and subscription actions (renew, pause, resume, drop-in
credits) are recorded here and listed on the admin dashboard.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select

from atom_portal.database.orm_models import AuditLog
from atom_portal.services.base import BaseService

logger = logging.getLogger(__name__)


class AuditService(BaseService):

    ACTION_CREATE = "CREATE"
    ACTION_UPDATE = "UPDATE"
    ACTION_ROLE_CHANGE = "ROLE_CHANGE"
    ACTION_RENEW = "RENEW"
    ACTION_PAUSE = "PAUSE"
    ACTION_RESUME = "RESUME"
    ACTION_ADD_DROPIN = "ADD_DROPIN"
    ACTION_EXPIRE = "EXPIRE"

    def log(
        self,
        action: str,
        table_name: str,
        record_id: Any = None,
        actor_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditLog:
        """Stage an audit row in the current transaction.

        The caller commits together with the audited change.
        """
        entry = AuditLog(
            actor_id=actor_id,
            action=action,
            table_name=table_name,
            record_id=str(record_id) if record_id is not None else None,
            details=details or {},
        )
        self.db.add(entry)
        logger.info(f"AUDIT {action} {table_name}:{record_id} by {actor_id}")
        return entry

    def recent(self, limit: int = 20) -> List[Dict[str, Any]]:
        rows = self.db.scalars(
            select(AuditLog).order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(int(limit))
        ).all()
        return [
            {
                "id": r.id,
                "actor_id": r.actor_id,
                "action": r.action,
                "table_name": r.table_name,
                "record_id": r.record_id,
                "details": r.details,
                "created_at": r.created_at.isoformat() if r.created_at else None,
            }
            for r in rows
        ]
