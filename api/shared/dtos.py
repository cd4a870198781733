"""Shared DTOs for the chat relay API."""
from datetime import datetime
from typing import Dict

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class BaseDTO(BaseModel):
    """Base DTO: snake_case attributes, camelCase on the wire."""

    class Config:
        from_attributes = True
        alias_generator = to_camel
        populate_by_name = True


class HealthCheckResponse(BaseDTO):
    """Health check response DTO."""
    status: str = Field(description="Service status")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    version: str = Field(default="0.1.0")
    dependencies: Dict[str, str] = Field(default_factory=dict)


class TaskResponse(BaseDTO):
    """Response DTO for background tasks."""
    task_id: str = Field(description="Task identifier")
    status: str = Field(description="Task status")
    message: str = Field(description="Status message")
