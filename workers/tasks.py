"""Celery entry points for the conversation and analysis workflows.

The workflow instance id defaults to the Celery task id, so a redelivered task
(acks_late) resumes from the last completed step instead of appending twice.
"""
import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

import structlog
from billiard.exceptions import SoftTimeLimitExceeded

from di.container import build_container, init_storage, shutdown_storage
from relay.pipeline.analysis_workflow import AnalysisWorkflowParams
from relay.pipeline.conversation_workflow import ConversationWorkflowParams
from .celery_app import app

log = structlog.get_logger("chat_relay.workers")


def _run_workflow(
    label: str,
    instance_id: str,
    start: Callable[[Any], Awaitable[Dict[str, Any]]],
) -> Dict[str, Any]:
    """Run a workflow coroutine with its own container and event loop."""

    async def _run() -> Dict[str, Any]:
        container = build_container()
        await init_storage(container)
        try:
            return await start(container)
        finally:
            try:
                await shutdown_storage(container)
            except Exception as e:
                log.warning(f"{label}.cleanup_failed", error=str(e))

    log.info(f"{label}.started", instance_id=instance_id)
    try:
        result = asyncio.run(_run())
    except SoftTimeLimitExceeded:
        log.warning(f"{label}.soft_time_limit_exceeded", instance_id=instance_id)
        raise
    log.info(f"{label}.finished", instance_id=instance_id)
    return result


@app.task(name="workers.tasks.run_conversation_workflow", bind=True)
def run_conversation_workflow(
    self, conversation_id: str, user_message: str, instance_id: Optional[str] = None
) -> Dict[str, Any]:
    instance_id = instance_id or self.request.id

    async def start(container):
        store = container.services.conversation_store()
        session = await store.get_or_create(conversation_id)
        params = ConversationWorkflowParams(
            conversation_id=conversation_id,
            user_message=user_message,
            history=session.messages,
        )
        return await container.services.conversation_workflow().start(
            params, instance_id=instance_id
        )

    return _run_workflow("conversation_workflow", instance_id, start)


@app.task(name="workers.tasks.run_analysis_workflow", bind=True)
def run_analysis_workflow(
    self, conversation_id: str, analysis_type: str, instance_id: Optional[str] = None
) -> Dict[str, Any]:
    instance_id = instance_id or self.request.id

    async def start(container):
        params = AnalysisWorkflowParams(
            conversation_id=conversation_id, analysis_type=analysis_type
        )
        return await container.services.analysis_workflow().start(
            params, instance_id=instance_id
        )

    return _run_workflow("analysis_workflow", instance_id, start)
