"""
Settings endpoints. Secrets are never returned in clear text.
"""

import logging
from typing import Dict

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models import AuditAction
from schemas import SettingsUpdate
from services.settings_store import get_masked_settings, update_settings
from utils.audit import audit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/settings", tags=["settings"])


@router.get("")
async def read_settings(db: AsyncSession = Depends(get_db)) -> Dict[str, str]:
    """Current settings, stored values first, environment as fallback."""
    return await get_masked_settings(db)


@router.put("")
async def save_settings(payload: SettingsUpdate, db: AsyncSession = Depends(get_db)) -> Dict[str, str]:
    """Save settings and return the masked view."""
    try:
        changes = await update_settings(db, payload.as_updates())
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    masked = await get_masked_settings(db)
    if changes:
        await audit.record(
            db,
            AuditAction.UPDATE,
            "Setting",
            entity_name="settings",
            changes=changes,
        )
    return masked
