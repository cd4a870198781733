"""Controller for the Analysis feature."""
import logging

from api.features.analysis.dtos import AnalyzeRequest, AnalyzeResponse
from api.shared.dtos import TaskResponse
from api.shared.exceptions import ValidationError
from relay.pipeline.analysis_workflow import (
    AnalysisWorkflowParams,
    ConversationAnalysisWorkflow,
)
from relay.prompts.analysis.analysis_prompt import AnalysisType

logger = logging.getLogger("chat_relay.analysis")


class AnalysisController:
    def __init__(self, analysis_workflow: ConversationAnalysisWorkflow):
        self.analysis_workflow = analysis_workflow

    @staticmethod
    def _validate(request: AnalyzeRequest) -> AnalysisWorkflowParams:
        if not request.conversation_id or not request.analysis_type:
            raise ValidationError("Missing conversationId or analysisType")
        try:
            analysis_type = AnalysisType(request.analysis_type)
        except ValueError:
            raise ValidationError(
                f"Unsupported analysisType '{request.analysis_type}'",
                {"allowed": [t.value for t in AnalysisType]},
            ) from None
        return AnalysisWorkflowParams(
            conversation_id=request.conversation_id, analysis_type=analysis_type
        )

    async def analyze(self, request: AnalyzeRequest) -> AnalyzeResponse:
        params = self._validate(request)
        result = await self.analysis_workflow.start(params)
        return AnalyzeResponse.model_validate(result)

    def enqueue(self, request: AnalyzeRequest) -> TaskResponse:
        params = self._validate(request)
        # Imported lazily so the API process only needs Celery when enqueuing
        from workers.tasks import run_analysis_workflow

        task = run_analysis_workflow.delay(
            params.conversation_id, params.analysis_type.value
        )
        logger.info(f"Enqueued analysis {task.id} for {params.conversation_id}")
        return TaskResponse(
            task_id=task.id, status="queued", message="Analysis enqueued"
        )
