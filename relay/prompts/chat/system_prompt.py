"""Chat prompt builder.

System instruction, then the recent history, then the new user message.
"""
from __future__ import annotations

from typing import Dict, List, Sequence

from api.features.conversation.dtos import ConversationMessage

SYSTEM_PROMPT = (
    "You are a helpful AI assistant. Provide clear, concise, and accurate responses."
)


def build_chat_messages(
    *,
    message: str,
    history: Sequence[ConversationMessage],
    window: int,
) -> List[Dict[str, str]]:
    recent = list(history)[-window:] if window > 0 else []
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        *({"role": m.role, "content": m.content} for m in recent),
        {"role": "user", "content": message},
    ]
