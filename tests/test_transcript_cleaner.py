"""
Summarify Backend — Transcript Cleaner Tests
==============================================

What:  Pure functions that prepare transcripts and prompts for the AI.
How:   No database, no fixtures.
"""

import pytest

from summarify.config import settings
from summarify.services.transcript_cleaner import (
    CUSTOM_PROMPT_SUFFIX,
    DEFAULT_PROMPT,
    build_prompt,
    clean_transcript,
    truncate_for_model,
)


class TestCleanTranscript:

    def test_drops_filler_and_repeats(self):
        capture = {
            "entries": [
                {"speaker": "Alice", "text": "Okay"},
                {"speaker": "Bob", "text": "How are you?"},
                {"speaker": "Alice", "text": "Let's review Q3."},
                {"speaker": "alice", "text": "let's review q3."},
                {"speaker": "Bob", "text": "Revenue is up 12%."},
            ]
        }
        assert clean_transcript(capture) == "Alice: Let's review Q3.\nBob: Revenue is up 12%."

    def test_same_text_from_different_speakers_is_kept(self):
        capture = {"entries": [{"speaker": "A", "text": "Agreed"}, {"speaker": "B", "text": "Agreed"}]}
        assert clean_transcript(capture) == "A: Agreed\nB: Agreed"

    def test_missing_speaker_is_unknown(self):
        assert clean_transcript({"entries": [{"text": "Ship it"}]}) == "Unknown: Ship it"

    @pytest.mark.parametrize("capture", [None, {}, {"entries": []}, {"entries": "oops"}, ["a", "b"]])
    def test_falls_back_to_plain_text(self, capture):
        assert clean_transcript(capture, "  Alice: hi  ") == "Alice: hi"

    def test_only_filler_is_empty(self):
        capture = {"entries": [{"speaker": "A", "text": "Okay"}, {"speaker": "B", "text": "Yes."}, {"bad": 1}]}
        assert clean_transcript(capture, "ignored") == ""

    @pytest.mark.parametrize("text", ["Okay", "okay.", "Yes!", "How are you?", "I'm fine.", "im fine", "Nothing much", "Sure, go ahead"])
    def test_whole_line_small_talk_is_filler(self, text):
        assert clean_transcript({"entries": [{"speaker": "A", "text": text}]}) == ""

    def test_content_starting_with_a_filler_word_is_kept(self):
        capture = {
            "entries": [
                {"speaker": "Ana", "text": "Okay so the launch moves to March 3rd"},
                {"speaker": "Bo", "text": "Yes, and marketing owns the press release"},
                {"speaker": "Cy", "text": "I'm fine with moving the demo"},
            ]
        }
        assert clean_transcript(capture) == (
            "Ana: Okay so the launch moves to March 3rd\n"
            "Bo: Yes, and marketing owns the press release\n"
            "Cy: I'm fine with moving the demo"
        )

    def test_non_dict_entries_are_skipped(self):
        assert clean_transcript({"entries": ["noise", {"speaker": "A", "text": "Real"}]}) == "A: Real"


class TestPrompts:

    def test_default_prompt(self):
        prompt = build_prompt()
        assert prompt.startswith(DEFAULT_PROMPT)
        assert prompt.endswith("Transcript:")

    def test_blank_custom_prompt_uses_default(self):
        assert build_prompt("   ") == build_prompt(None)

    def test_custom_prompt(self):
        assert build_prompt("  Bullet points only ") == f"Bullet points only\n\n{CUSTOM_PROMPT_SUFFIX}"

    def test_truncate_for_model(self, monkeypatch):
        monkeypatch.setattr(settings, "summary_max_input_chars", 1000)
        assert len(truncate_for_model("x" * 5000)) == 1000
        assert truncate_for_model("short") == "short"
