"""Router for the Analysis feature."""
from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from di.container import ApplicationContainer as DependencyContainer
from api.features.analysis.controller import AnalysisController
from api.features.analysis.dtos import AnalyzeRequest, AnalyzeResponse

router = APIRouter()


@router.post("/analyze", response_model=AnalyzeResponse)
@inject
async def analyze_conversation(
    request: AnalyzeRequest,
    controller: AnalysisController = Depends(
        Provide[DependencyContainer.controllers.analysis_controller]
    ),
):
    """Run sentiment / summary / topics analysis over a stored conversation."""
    if request.background:
        task = controller.enqueue(request)
        return JSONResponse(
            status_code=202, content=task.model_dump(mode="json", by_alias=True)
        )
    return await controller.analyze(request)
