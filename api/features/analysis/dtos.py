"""DTOs for the Analysis feature."""
from typing import Optional

from pydantic import Field

from api.shared.dtos import BaseDTO


class AnalyzeRequest(BaseDTO):
    conversation_id: Optional[str] = Field(default=None, description="Conversation identifier")
    analysis_type: Optional[str] = Field(
        default=None, description="One of: sentiment, summary, topics"
    )
    background: bool = Field(
        default=False, description="Enqueue on the worker instead of running inline"
    )


class AnalysisResult(BaseDTO):
    type: str = Field(description="Analysis type")
    result: str = Field(description="Model output")
    timestamp: int = Field(description="Completion time, ms since epoch")


class AnalyzeResponse(BaseDTO):
    success: bool = Field(default=True)
    conversation_id: str = Field(description="Conversation identifier")
    analysis: AnalysisResult
