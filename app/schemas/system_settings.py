from pydantic import BaseModel, ConfigDict, Field


class MaintenanceValue(BaseModel):
    model_config = ConfigDict(extra="allow")

    enabled: bool = False
    message: str = ""


class SystemSettingUpdate(BaseModel):
    setting_key: str = Field(min_length=1)
    setting_value: MaintenanceValue
    updated_by: str | None = None
