from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator


class GenerateRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    template_uuid: str | None = None
    template_id: str | None = None
    input_data: dict[str, Any] | None = None
    session_id: str | None = None

    @field_validator("template_id", "session_id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        # Storefront sends numeric template ids
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class GenerateResponse(BaseModel):
    success: bool
    image_url: str | None
    session_id: str
