"""Title prompt builder: a short title from the opening user message."""
from __future__ import annotations

from typing import Dict, List


def build_title_messages(*, first_message: str) -> List[Dict[str, str]]:
    return [
        {
            "role": "system",
            "content": (
                "Generate a short, descriptive title (max 5 words) for this "
                "conversation based on the first message."
            ),
        },
        {"role": "user", "content": first_message},
    ]
