"""Conversation store: one persisted session per conversation id.

Every read-modify-write for an id runs under that id's lock, so appends to the
same conversation are applied in call order even when several requests (or
several worker processes sharing a Redis backend) touch it concurrently.
"""
from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from api.features.conversation.dtos import ConversationMessage, ConversationSession
from api.shared.exceptions import NotFoundError
from infra.storage import KeyedLocks, StorageBackend

logger = logging.getLogger("chat_relay.conversation.store")

KEY_PREFIX = "conversation:"

# Patch may touch these; id, messages and createdAt are owned by the store
PATCHABLE_FIELDS = ("title", "metadata")


def now_ms() -> int:
    return int(time.time() * 1000)


def session_key(conversation_id: str) -> str:
    return f"{KEY_PREFIX}{conversation_id}"


class ConversationStore:
    def __init__(
        self,
        storage: StorageBackend,
        clock: Callable[[], int] = now_ms,
    ):
        self.storage = storage
        self.clock = clock
        self._locks = KeyedLocks()

    @asynccontextmanager
    async def _exclusive(self, conversation_id: str) -> AsyncIterator[None]:
        key = session_key(conversation_id)
        async with self._locks.hold(key):
            async with self.storage.lock(key):
                yield

    async def _load(self, conversation_id: str) -> Optional[ConversationSession]:
        raw = await self.storage.get(session_key(conversation_id))
        return ConversationSession.model_validate(raw) if raw is not None else None

    async def _save(self, session: ConversationSession) -> None:
        await self.storage.put(
            session_key(session.id), session.model_dump(mode="json", by_alias=True)
        )

    def _new_session(self, conversation_id: str) -> ConversationSession:
        now = self.clock()
        return ConversationSession(
            id=conversation_id, messages=[], created_at=now, updated_at=now
        )

    async def get_or_create(self, conversation_id: str) -> ConversationSession:
        """Return the session, creating and persisting an empty one on first access."""
        session = await self._load(conversation_id)
        if session is not None:
            return session
        async with self._exclusive(conversation_id):
            # Another writer may have created it while we waited
            session = await self._load(conversation_id)
            if session is None:
                session = self._new_session(conversation_id)
                await self._save(session)
                logger.info(f"Created conversation {conversation_id}")
            return session

    async def append(
        self, conversation_id: str, message: ConversationMessage
    ) -> ConversationSession:
        """Append one message at the end of the session, creating it if needed.

        The store assigns a missing id and always stamps the timestamp; a
        caller-provided timestamp is discarded. Appending an id that is already
        in the session is a no-op, so retried workflow steps do not duplicate.
        """
        async with self._exclusive(conversation_id):
            session = await self._load(conversation_id)
            if session is None:
                session = self._new_session(conversation_id)
            elif message.id and any(m.id == message.id for m in session.messages):
                logger.info(
                    f"Message {message.id} already in conversation {conversation_id}"
                )
                return session

            now = self.clock()
            if session.messages:
                now = max(now, session.messages[-1].timestamp or 0)
            stored = message.model_copy(
                update={"id": message.id or str(uuid.uuid4()), "timestamp": now}
            )
            session.messages.append(stored)
            session.updated_at = max(now, session.created_at)

            await self._save(session)
            return session

    async def patch(
        self, conversation_id: str, fields: Dict[str, Any]
    ) -> ConversationSession:
        """Merge metadata fields into an existing session. Never creates one."""
        async with self._exclusive(conversation_id):
            session = await self._load(conversation_id)
            if session is None:
                raise NotFoundError("Conversation", conversation_id)

            updates = {k: v for k, v in fields.items() if k in PATCHABLE_FIELDS}
            updates["updated_at"] = max(self.clock(), session.created_at)
            session = session.model_copy(update=updates)

            await self._save(session)
            return session

    async def remove(self, conversation_id: str) -> None:
        """Delete the session. Deleting an unknown id succeeds."""
        async with self._exclusive(conversation_id):
            await self.storage.delete(session_key(conversation_id))
        logger.info(f"Deleted conversation {conversation_id}")

    async def list(self) -> List[ConversationSession]:
        """All sessions, most recently updated first."""
        sessions = [
            ConversationSession.model_validate(raw)
            for raw in await self.storage.list(KEY_PREFIX)
        ]
        return sorted(sessions, key=lambda s: s.updated_at, reverse=True)
