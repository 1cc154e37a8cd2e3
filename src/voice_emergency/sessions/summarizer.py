"""Conversation summary and action-item extraction for ended sessions."""

import re
from collections.abc import Iterable

from voice_emergency.services.constants import DEFAULTS
from voice_emergency.sessions.models import TranscriptionRecord

NO_CONVERSATION = "No conversation recorded."

ACTION_PHRASES = (
    "need to",
    "should",
    "will",
    "going to",
    "plan to",
    "create document",
    "contact lawyer",
    "schedule",
    "follow up",
)

_SENTENCE_SPLIT = re.compile(r"[.!?]")


def summarize_conversation(
    transcriptions: Iterable[TranscriptionRecord], max_chars: int = DEFAULTS["summary_max_chars"]
) -> str:
    """Join transcript text, truncating with '...' beyond max_chars."""
    full_text = " ".join(t.text for t in transcriptions).strip()
    if not full_text:
        return NO_CONVERSATION
    if len(full_text) > max_chars:
        return full_text[: max_chars - 3] + "..."
    return full_text


def extract_action_items(transcriptions: Iterable[TranscriptionRecord]) -> tuple[str, ...]:
    """
    Pull out sentences containing action phrases.

    For each transcription and each action phrase present, the first
    sentence containing the phrase is kept if it is longer than ten
    characters. Duplicates are removed, first occurrence wins.
    """
    items: list[str] = []
    for record in transcriptions:
        text = record.text.lower()
        sentences = _SENTENCE_SPLIT.split(text)
        for phrase in ACTION_PHRASES:
            if phrase not in text:
                continue
            sentence = next((s for s in sentences if phrase in s), None)
            if sentence and len(sentence.strip()) > 10:
                items.append(sentence.strip())
    return tuple(dict.fromkeys(items))
