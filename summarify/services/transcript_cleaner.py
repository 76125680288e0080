"""
Summarify Backend — Transcript Cleaning and Prompt Building
=============================================================

What:  Turns a captured meeting transcript into the text sent to the AI
       completion service.
How:   Builds "speaker: text" lines from the structured capture, drops
       exact repeats (case-insensitive) and small-talk filler, then wraps
       the result in the default summary prompt or the caller's own prompt.
Who:   JobRunner, right before calling the AI adapter.

Capture format (as sent by the meeting-recorder client):
    {"entries": [{"speaker": "Alice", "text": "Let's review Q3."}, ...]}
"""

import re
from typing import Any, List, Optional

from summarify.config import settings

EMPTY_MEETING_SUMMARY = "The meeting contained no substantive discussion to summarise."

# Whole-line small talk only; "Okay so the launch moves" is content
FILLER_PATTERNS = [
    re.compile(r"^okay[.,!]?$", re.IGNORECASE),
    re.compile(r"^how are you\??$", re.IGNORECASE),
    re.compile(r"^i'?m fine[.,!]?$", re.IGNORECASE),
    re.compile(r"^nothing much[.,!]?$", re.IGNORECASE),
    re.compile(r"^sure,? go ahead[.,!]?$", re.IGNORECASE),
    re.compile(r"^yes[.,!]?$", re.IGNORECASE),
]

DEFAULT_PROMPT = """You are an expert meeting summarizer.
The following transcript may contain repetitions, casual chatter, or filler.
Your job:
- Ignore irrelevant, repeated, or meaningless lines.
- Focus ONLY on exchanges with concrete information, questions, or answers.
- If the meeting had little substance, still summarise what actually happened in 1-2 sentences.

Format:
## Meeting Overview
Brief 2-3 sentence summary.

## Key Points Discussed
- Bullet points of important topics, decisions, or clarifications.

## Action Items (if any)
- [Task] - [Owner] - [Due Date]

## Next Steps (if any)
- Upcoming plans or follow-ups."""

CUSTOM_PROMPT_SUFFIX = (
    "Please analyze this cleaned meeting transcript and provide a summary "
    "based on your custom requirements:"
)


def _is_filler(text: str) -> bool:
    return any(pattern.search(text) for pattern in FILLER_PATTERNS)


def clean_transcript(transcript_json: Any, fallback_text: str = "") -> str:
    """
    Clean a structured transcript into newline-separated dialogue.

    Falls back to `fallback_text` (the plain capture) when the JSON has no
    usable entries. Returns "" when nothing meaningful is left.

    >>> clean_transcript({"entries": [
    ...     {"speaker": "A", "text": "Okay"},
    ...     {"speaker": "A", "text": "Budget is approved"},
    ...     {"speaker": "A", "text": "budget is approved"},
    ... ]})
    'A: Budget is approved'
    """
    entries = transcript_json.get("entries") if isinstance(transcript_json, dict) else None
    if not entries or not isinstance(entries, list):
        return (fallback_text or "").strip()

    seen = set()
    lines: List[str] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        text = str(entry.get("text") or "").strip()
        if not text or _is_filler(text):
            continue
        speaker = str(entry.get("speaker") or "Unknown").strip()
        line = f"{speaker}: {text}"
        key = line.lower()
        if key in seen:
            continue
        seen.add(key)
        lines.append(line)

    return "\n".join(lines)


def build_prompt(custom_prompt: Optional[str] = None) -> str:
    """Instruction part of the AI request: the default prompt or the caller's own."""
    if custom_prompt and custom_prompt.strip():
        return f"{custom_prompt.strip()}\n\n{CUSTOM_PROMPT_SUFFIX}"
    return f"{DEFAULT_PROMPT}\n\nTranscript:"


def truncate_for_model(cleaned_transcript: str) -> str:
    """Content part of the AI request, cut to settings.summary_max_input_chars."""
    return cleaned_transcript[: settings.summary_max_input_chars]
