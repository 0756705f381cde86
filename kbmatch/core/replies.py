"""
Chat reply rendering for a MatchResult.

Each follow-up message has its own threshold gate; the gates are independent
and several can fire for the same result.
"""

from dataclasses import dataclass, field
from typing import List, Sequence

from ..vector.types import MatchResult
from .config import (
    ALTERNATIVES_HEADER,
    RELATED_QUESTION_TEMPLATE,
    SPECIFIC_TIP_TEMPLATE,
    WAIT_FOR_LOAD_MESSAGE,
    MatchSettings,
)


@dataclass
class ChatMessage:
    kind: str  # answer | related | alternatives | tip
    text: str


@dataclass
class ChatReply:
    status: str
    confidence: float
    messages: List[ChatMessage] = field(default_factory=list)

    @property
    def reply(self) -> str:
        return self.messages[0].text if self.messages else ""


def wait_for_load_reply() -> ChatReply:
    """Reply for input received before the engine is ready."""
    return ChatReply(status="loading", confidence=0.0,
                     messages=[ChatMessage(kind="answer", text=WAIT_FOR_LOAD_MESSAGE)])


def render_reply(result: MatchResult, settings: MatchSettings, topics: Sequence[str] = ()) -> ChatReply:
    """Build the ordered chat messages for one query result."""
    messages = [ChatMessage(kind="answer", text=result.answer)]
    confidence = result.confidence

    if confidence >= settings.related_hint_threshold and result.matched_text:
        messages.append(ChatMessage(
            kind="related",
            text=RELATED_QUESTION_TEMPLATE.format(text=result.matched_text)
        ))

    if result.alternatives and confidence < settings.alternatives_max_confidence:
        lines = [ALTERNATIVES_HEADER, ""]
        for index, alt in enumerate(result.alternatives[:settings.alternatives_display_max], start=1):
            lines.append(f"{index}. {alt.text}")
        messages.append(ChatMessage(kind="alternatives", text="\n".join(lines)))

    if confidence < settings.specific_hint_threshold:
        messages.append(ChatMessage(
            kind="tip",
            text=SPECIFIC_TIP_TEMPLATE.format(terms=", ".join(topics))
        ))

    return ChatReply(status=result.status, confidence=confidence, messages=messages)
