"""Analysis prompt builder.

The instruction for the requested analysis goes in the system slot; the whole
transcript, one ``role: content`` line per message, goes in the user slot.
"""
from __future__ import annotations

from enum import Enum
from typing import Dict, List, Sequence

from api.features.conversation.dtos import ConversationMessage


class AnalysisType(str, Enum):
    SENTIMENT = "sentiment"
    SUMMARY = "summary"
    TOPICS = "topics"


ANALYSIS_INSTRUCTIONS: Dict[AnalysisType, str] = {
    AnalysisType.SENTIMENT: (
        "Analyze the sentiment of this conversation. Provide a brief summary of "
        "the overall tone and emotional context."
    ),
    AnalysisType.SUMMARY: (
        "Provide a concise summary of the key points discussed in this conversation."
    ),
    AnalysisType.TOPICS: (
        "Identify the main topics and themes discussed in this conversation. "
        "List them as bullet points."
    ),
}


def render_transcript(messages: Sequence[ConversationMessage]) -> str:
    return "\n".join(f"{m.role}: {m.content}" for m in messages)


def build_analysis_messages(
    *, analysis_type: AnalysisType, messages: Sequence[ConversationMessage]
) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": ANALYSIS_INSTRUCTIONS[AnalysisType(analysis_type)]},
        {"role": "user", "content": render_transcript(messages)},
    ]
