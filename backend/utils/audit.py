"""
Audit trail for IPAM mutations.

This module provides an AuditLogger that does two things for every event:
- appends an AuditLog row (the persisted, paginated audit trail)
- emits a structured JSON line on the dedicated 'audit' logger

Key features:
- request_id / actor propagation across async calls via contextvars
- Change sets for UPDATE contain only the fields that actually changed
- Writes are best-effort: a failure is rolled back, logged, and handed
  back as an AuditWriteResult instead of an exception, so the operation
  being described is never aborted by its own audit entry
"""

import json
import logging
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from models import AuditAction, AuditLog, AuditSource


# Context variable for tracking request_id across async calls
_request_id_context: ContextVar[Optional[str]] = ContextVar(
    'request_id', default=None
)

# Context variable for tracking actor across async calls
_actor_context: ContextVar[Optional[str]] = ContextVar(
    'actor', default=None
)

logger = logging.getLogger(__name__)


@dataclass
class AuditWriteResult:
    """Outcome of an audit write. Callers are free to ignore it."""

    ok: bool
    entry_id: Optional[int] = None
    error: Optional[str] = None


def diff_changes(before: Mapping[str, Any], after: Mapping[str, Any]) -> Dict[str, Dict[str, Any]]:
    """
    Build an UPDATE change set.

    Args:
        before: Field values prior to the update
        after: Field values submitted/applied by the update

    Returns:
        {field: {"from": old, "to": new}} for fields whose value differs;
        unchanged fields are omitted
    """
    changes = {}
    for field, new_value in after.items():
        old_value = before.get(field)
        if old_value != new_value:
            changes[field] = {"from": old_value, "to": new_value}
    return changes


def _value(v: Any) -> Any:
    return v.value if hasattr(v, "value") else v


class AuditLogger:
    """
    Records audit events to the database and the 'audit' logger.
    """

    def __init__(self):
        """Initialize the AuditLogger with a dedicated 'audit' logger."""
        self.logger = logging.getLogger('audit')

    def set_request_id(self, request_id: str) -> None:
        """Set the request_id for the current context."""
        _request_id_context.set(request_id)

    def get_request_id(self) -> Optional[str]:
        return _request_id_context.get()

    def set_actor(self, actor: str) -> None:
        _actor_context.set(actor)

    def get_actor(self) -> Optional[str]:
        return _actor_context.get()

    def log(
        self,
        action: str,
        entity_type: str,
        entity_id: Optional[str],
        source: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Emit one structured JSON audit line."""
        event = {
            'timestamp': datetime.utcnow().isoformat() + 'Z',
            'action': action,
            'actor': self.get_actor() or source.lower(),
            'resource': entity_type,
            'resource_id': entity_id,
            'source': source,
            'request_id': self.get_request_id(),
            'details': details or {},
        }
        self.logger.info(json.dumps(event, default=str))

    async def record(
        self,
        db: AsyncSession,
        action: AuditAction,
        entity_type: str,
        entity_id: Optional[Any] = None,
        entity_name: Optional[str] = None,
        changes: Optional[Dict[str, Any]] = None,
        source: AuditSource = AuditSource.USER,
    ) -> AuditWriteResult:
        """
        Append an audit entry.

        Call this after the described operation has been committed: on
        failure the session is rolled back, which must only discard the
        audit row itself.

        Args:
            db: Database session
            action: CREATE/UPDATE/DELETE/SYNC/POPULATE
            entity_type: Network/IPAddress/Device/Setting
            entity_id: Optional id of the affected record
            entity_name: Optional human-readable label
            changes: Optional change set, stored JSON-encoded
            source: USER or SYSTEM

        Returns:
            AuditWriteResult; never raises
        """
        action_value = _value(action)
        source_value = _value(source)
        entity_id_value = str(entity_id) if entity_id is not None else None

        try:
            entry = AuditLog(
                action=action_value,
                entity_type=entity_type,
                entity_id=entity_id_value,
                entity_name=entity_name,
                changes=json.dumps(changes, default=str) if changes else None,
                source=source_value,
            )
            db.add(entry)
            await db.commit()
        except Exception as e:
            logger.error(f"Audit write failed ({action_value} {entity_type}:{entity_id_value}): {e}")
            try:
                await db.rollback()
            except Exception as rollback_error:
                logger.error(f"Audit rollback failed: {rollback_error}")
            return AuditWriteResult(ok=False, error=str(e))

        self.log(
            action=action_value,
            entity_type=entity_type,
            entity_id=entity_id_value,
            source=source_value,
            details={'entity_name': entity_name, 'changes': changes} if changes else {'entity_name': entity_name},
        )
        return AuditWriteResult(ok=True, entry_id=entry.id)


# Global audit logger instance for convenient import
audit = AuditLogger()
