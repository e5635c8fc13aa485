from datetime import datetime

from pydantic import BaseModel, ConfigDict


class SystemSetting(BaseModel):
    """One `system_settings` row; values are text, typed by the reader."""

    model_config = ConfigDict(extra="ignore")

    setting_key: str
    setting_value: str | None = None
    description: str | None = None
    updated_at: datetime | None = None
