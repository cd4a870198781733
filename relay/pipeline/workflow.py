"""Sequential workflows built from named, checkpointed steps.

Each completed step stores its JSON result under
``workflow:{workflow}:{instance}:{step}``. Running the same instance again
replays finished steps from their checkpoints and only executes what is left,
so a failed run can be retried without repeating side effects such as appends.
Checkpoints are deleted once a run completes; only interrupted runs keep them.
"""
from __future__ import annotations

import asyncio
import time
import uuid
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, TypeVar

import structlog

from infra.storage import StorageBackend

log = structlog.get_logger("chat_relay.workflow")

P = TypeVar("P")


class WorkflowRun:
    """Step executor for one workflow instance."""

    def __init__(self, storage: StorageBackend, workflow_name: str, instance_id: str):
        self.storage = storage
        self.workflow_name = workflow_name
        self.instance_id = instance_id
        self._keys: List[str] = []

    def checkpoint_key(self, step_name: str) -> str:
        return f"workflow:{self.workflow_name}:{self.instance_id}:{step_name}"

    async def do(self, step_name: str, fn: Callable[[], Awaitable[Any]]) -> Any:
        """Run fn once per instance; its result must be JSON-serializable."""
        key = self.checkpoint_key(step_name)
        if key not in self._keys:
            self._keys.append(key)
        checkpoint = await self.storage.get(key)
        if checkpoint is not None:
            log.info(f"{step_name}.replayed", instance_id=self.instance_id)
            return checkpoint["result"]

        log.info(f"{step_name}.started", instance_id=self.instance_id)
        start = time.time()
        result = await fn()
        await self.storage.put(
            key, {"result": result, "completedAt": int(time.time() * 1000)}
        )
        log.info(
            f"{step_name}.finished",
            instance_id=self.instance_id,
            processing_time_ms=(time.time() - start) * 1000,
        )
        return result

    async def sleep(self, step_name: str, seconds: float) -> None:
        """Pacing step; skipped on replay once it has completed."""

        async def _pause() -> None:
            if seconds > 0:
                await asyncio.sleep(seconds)

        await self.do(step_name, _pause)

    async def clear(self) -> None:
        """Drop every checkpoint this run touched."""
        for key in self._keys:
            await self.storage.delete(key)
        log.info(
            f"{self.workflow_name}.checkpoints_cleared",
            instance_id=self.instance_id,
            steps=len(self._keys),
        )
        self._keys.clear()


class Workflow(ABC, Generic[P]):
    name: str

    def __init__(self, storage: StorageBackend):
        self.storage = storage

    async def start(self, params: P, instance_id: Optional[str] = None) -> Dict[str, Any]:
        instance_id = instance_id or self.new_instance_id(params)
        run = WorkflowRun(self.storage, self.name, instance_id)
        log.info(f"{self.name}.run", instance_id=instance_id)
        result = await self.run(params, run)
        await run.clear()
        return result

    def new_instance_id(self, params: P) -> str:
        return str(uuid.uuid4())

    @abstractmethod
    async def run(self, params: P, step: WorkflowRun) -> Dict[str, Any]:
        ...
