from pydantic import BaseModel, ConfigDict, Field


class BatchCreate(BaseModel):
    # Accepts the form layer's camelCase names as well as snake_case
    model_config = ConfigDict(populate_by_name=True)

    video_count: int = Field(alias="videoCount")
    custom_instructions: str | None = Field(default=None, alias="customInstructions")
    brief_id: str | None = Field(default=None, alias="briefId")
    branding_asset_refs: list[str] = Field(default_factory=list, alias="brandingAssetRefs")


class BatchOut(BaseModel):
    success: bool = True
    batch_id: str
    request_ids: list[str]
    replayed: bool = False
