"""Request and response models for the HTTP API."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..providers.base import ChatMessage


class ChatRequest(BaseModel):
    """Request model for the chat endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    messages: list[ChatMessage] = Field(..., min_length=1)
    mode: str | None = Field("default", description="Chat mode: default or workflow")
    has_file: bool = Field(False, alias="hasFile")
    data: dict[str, Any] = Field(default_factory=dict, description="Optional file payload")
    resource_id: str | None = Field(None, description="Resource to retrieve context from")

    @model_validator(mode="after")
    def resource_id_from_data(self) -> "ChatRequest":
        if self.resource_id is None and isinstance(self.data.get("resource_id"), str):
            self.resource_id = self.data["resource_id"]
        return self


class WorkflowRequest(BaseModel):
    """Request model for the plain workflow endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    workflow_input: str = Field(..., alias="workflowInput", min_length=1)


class ResourceRequest(BaseModel):
    """Document text to chunk and embed."""

    content: str = Field(..., min_length=1)
    resource_id: str | None = None


class ResourceResponse(BaseModel):
    message: str
    resource_id: str | None


class ResourceDeletedResponse(BaseModel):
    message: str


class PseudonymizationRequest(BaseModel):
    """Text whose personal data should be replaced."""

    message: str


class PseudonymizationResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    original_length: int = Field(..., alias="originalLength")
    anonymized_length: int = Field(..., alias="anonymizedLength")


class HealthResponse(BaseModel):
    """Response model for health endpoint."""

    status: str
    version: str
    config_hash: str
    uptime_seconds: float
    components: dict[str, str]
    metrics: dict[str, Any] = Field(default_factory=dict)
