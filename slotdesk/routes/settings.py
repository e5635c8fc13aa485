"""
settings.py
-----------
Purpose:
    Administrator access to the `system_settings` key/value table.

Usage:
    GET /api/settings         - All settings
    PUT /api/settings/{key}   - Overwrite one existing setting
"""

from fastapi import APIRouter, Depends, Request

from slotdesk.auth.hierarchy import Role
from slotdesk.auth.verify import require_roles
from slotdesk.db.pool import DatabasePoolManager, get_db
from slotdesk.models.api.settings_request import SettingUpdateRequest
from slotdesk.models.domain.settings_domain import SystemSetting
from slotdesk.models.domain.user_domain import CurrentUser
from slotdesk.services import settings_service
from slotdesk.utils.activity_helpers import record_activity

router = APIRouter(prefix="/api/settings", tags=["settings"])

_admin = require_roles(Role.ADMIN)


@router.get("", response_model=list[SystemSetting])
async def list_settings(
    user: CurrentUser = Depends(_admin),
    db: DatabasePoolManager = Depends(get_db),
):
    return await settings_service.list_settings(db)


@router.put("/{setting_key}", response_model=SystemSetting)
async def update_setting(
    setting_key: str,
    payload: SettingUpdateRequest,
    request: Request,
    user: CurrentUser = Depends(_admin),
    db: DatabasePoolManager = Depends(get_db),
):
    setting = await settings_service.update_setting(db, setting_key, payload.setting_value)

    await record_activity(
        request,
        db,
        user.id,
        "setting_updated",
        "system_setting",
        None,
        {"setting_key": setting_key, "setting_value": payload.setting_value},
    )

    return setting
