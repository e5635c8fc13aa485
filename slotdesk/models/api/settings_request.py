from pydantic import BaseModel, Field


class SettingUpdateRequest(BaseModel):
    setting_value: str = Field(..., max_length=1000)
