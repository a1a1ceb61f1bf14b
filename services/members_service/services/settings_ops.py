"""Club settings: typed key/value lookups, toggles and defaults."""

from typing import Optional

from fastapi import HTTPException, status
from libs.common.logging import get_logger
from services.members_service.models import ClubSetting, SettingType
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

WAITLIST_OPEN = "waitlist_open"
INSURANCE_FORM_LINK = "hema_insurance_form_link"
SUBSCRIPTION_MAX_PAUSE_MONTHS = "subscription_max_pause_months"
SUBSCRIPTION_MIN_PAUSE_DAYS = "subscription_min_pause_days"

# key -> (default value, type, description)
DEFAULT_SETTINGS: dict[str, tuple[str, SettingType, str]] = {
    WAITLIST_OPEN: ("true", SettingType.BOOLEAN, "Whether the public waitlist accepts sign-ups"),
    INSURANCE_FORM_LINK: ("", SettingType.TEXT, "Link to the HEMA insurance form"),
    SUBSCRIPTION_MAX_PAUSE_MONTHS: ("6", SettingType.TEXT, "Longest allowed subscription pause"),
    SUBSCRIPTION_MIN_PAUSE_DAYS: ("14", SettingType.TEXT, "Shortest allowed subscription pause"),
}

BOOLEAN_VALUES = ("true", "false")


async def get_setting(db: AsyncSession, key: str) -> Optional[ClubSetting]:
    result = await db.execute(select(ClubSetting).where(ClubSetting.key == key))
    return result.scalar_one_or_none()


async def get_setting_or_404(db: AsyncSession, key: str) -> ClubSetting:
    setting = await get_setting(db, key)
    if not setting:
        raise HTTPException(status_code=404, detail=f"Setting '{key}' not found")
    return setting


async def list_settings(
    db: AsyncSession, keys: Optional[list[str]] = None
) -> list[ClubSetting]:
    query = select(ClubSetting).order_by(ClubSetting.key)
    if keys:
        query = query.where(ClubSetting.key.in_(keys))
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_value(db: AsyncSession, key: str) -> str:
    """Stored value, falling back to the built-in default."""
    setting = await get_setting(db, key)
    if setting is not None:
        return setting.value
    return DEFAULT_SETTINGS[key][0]


async def get_int(db: AsyncSession, key: str) -> int:
    value = await get_value(db, key)
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Setting {key} is not an integer: {value!r}, using default")
        return int(DEFAULT_SETTINGS[key][0])


async def update_setting(
    db: AsyncSession, key: str, value: str, *, updated_by: Optional[str]
) -> ClubSetting:
    setting = await get_setting_or_404(db, key)
    if setting.type == SettingType.BOOLEAN and value not in BOOLEAN_VALUES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Boolean settings must be 'true' or 'false'",
        )
    setting.value = value
    setting.updated_by = updated_by
    await db.commit()
    await db.refresh(setting)
    logger.info(f"Setting {key} updated by {updated_by}")
    return setting


async def toggle_setting(
    db: AsyncSession, key: str, *, updated_by: Optional[str]
) -> ClubSetting:
    setting = await get_setting_or_404(db, key)
    if setting.type != SettingType.BOOLEAN:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only boolean settings can be toggled",
        )
    return await update_setting(
        db, key, "false" if setting.as_bool else "true", updated_by=updated_by
    )


async def is_waitlist_open(db: AsyncSession) -> bool:
    return await get_value(db, WAITLIST_OPEN) == "true"


async def ensure_default_settings(db: AsyncSession) -> int:
    """Insert any missing default settings. Returns how many were created."""
    existing = {s.key for s in await list_settings(db)}
    created = 0
    for key, (value, setting_type, description) in DEFAULT_SETTINGS.items():
        if key in existing:
            continue
        db.add(
            ClubSetting(key=key, value=value, type=setting_type, description=description)
        )
        created += 1
    if created:
        await db.commit()
    return created
