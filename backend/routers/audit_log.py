"""
Audit log browsing endpoint (read-only).
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models import AuditLog
from schemas import AuditLogPage, AuditLogResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auditlog", tags=["auditlog"])


def _decode_changes(raw: Optional[str]):
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning(f"Audit entry has undecodable changes: {raw[:80]}")
        return raw


@router.get("", response_model=AuditLogPage)
async def list_audit_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    entity_type: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Audit entries, newest first, with optional entity/action filters."""
    filters = []
    if entity_type:
        filters.append(AuditLog.entity_type == entity_type)
    if action:
        filters.append(AuditLog.action == action.upper())

    total_result = await db.execute(select(func.count(AuditLog.id)).where(*filters))
    total = total_result.scalar() or 0

    result = await db.execute(
        select(AuditLog)
        .where(*filters)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )

    logs = []
    for entry in result.scalars().all():
        response = AuditLogResponse.model_validate(entry)
        response.changes = _decode_changes(entry.changes)
        logs.append(response)

    return AuditLogPage(total=total, page=page, limit=limit, logs=logs)
