"""
Persisted settings with environment fallback.

Stored values (saved through /api/settings) take precedence over the
environment. Resolution is an explicit walk over an ordered list of
sources; nothing here caches or mutates global state.
"""

import logging
from typing import Dict, Mapping, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from models import Setting

logger = logging.getLogger(__name__)

UNIFI_URL = "UNIFI_URL"
UNIFI_API_KEY = "UNIFI_API_KEY"

KNOWN_KEYS = (UNIFI_URL, UNIFI_API_KEY)

# Keys whose values are masked in reads
SENSITIVE_KEYS = frozenset({UNIFI_API_KEY})
PLACEHOLDER = "***"


def resolve_layered(key: str, sources: Sequence[Mapping[str, Optional[str]]]) -> Optional[str]:
    """
    Return the first non-empty value for key across ordered sources.

    Args:
        key: Setting key
        sources: Mappings searched in order, highest precedence first

    Returns:
        The first present value, or None
    """
    for source in sources:
        value = source.get(key)
        if value:
            return value
    return None


def environment_source() -> Dict[str, Optional[str]]:
    """Environment fallbacks, as loaded by config.Settings."""
    return {
        UNIFI_URL: settings.UNIFI_URL,
        UNIFI_API_KEY: settings.UNIFI_API_KEY,
    }


async def load_stored_settings(db: AsyncSession) -> Dict[str, Optional[str]]:
    result = await db.execute(select(Setting).where(Setting.key.in_(KNOWN_KEYS)))
    return {row.key: row.value for row in result.scalars().all()}


async def resolve_setting(db: AsyncSession, key: str) -> Optional[str]:
    stored = await load_stored_settings(db)
    return resolve_layered(key, [stored, environment_source()])


async def get_masked_settings(db: AsyncSession) -> Dict[str, str]:
    """All known settings with secrets replaced by the placeholder."""
    stored = await load_stored_settings(db)
    env = environment_source()

    result = {}
    for key in KNOWN_KEYS:
        # A stored row wins even when it is empty (explicitly cleared)
        raw = stored[key] if key in stored else env.get(key)
        raw = raw or ""
        result[key] = PLACEHOLDER if key in SENSITIVE_KEYS and raw else raw
    return result


async def update_settings(db: AsyncSession, updates: Mapping[str, Optional[str]]) -> Dict[str, Dict]:
    """
    Save settings and return the change set (secrets masked).

    A sensitive key submitted with the placeholder is left unchanged.
    Empty strings are stored as NULL.

    Raises:
        ValueError: for an unknown key
    """
    unknown = [key for key in updates if key not in KNOWN_KEYS]
    if unknown:
        raise ValueError(f"Unknown setting(s): {', '.join(sorted(unknown))}")

    changes: Dict[str, Dict] = {}
    for key, value in updates.items():
        if key in SENSITIVE_KEYS and value == PLACEHOLDER:
            continue

        new_value = value or None
        row = await db.get(Setting, key)
        old_value = row.value if row else None
        if row is None:
            db.add(Setting(key=key, value=new_value))
        else:
            row.value = new_value

        if old_value != new_value:
            if key in SENSITIVE_KEYS:
                changes[key] = {"from": PLACEHOLDER if old_value else None,
                                "to": PLACEHOLDER if new_value else None}
            else:
                changes[key] = {"from": old_value, "to": new_value}

    await db.commit()
    logger.info(f"Saved settings: {', '.join(changes) or 'no changes'}")
    return changes
